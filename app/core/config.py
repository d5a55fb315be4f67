import logging
import os
import secrets
from pathlib import Path

logger = logging.getLogger(__name__)

# Base directory of the project (parent of 'app')
BASE_DIR = Path(__file__).resolve().parent.parent.parent

# Database Directory
DB_DIR = Path(os.getenv("DB_DIR", str(BASE_DIR / "db")))

DATABASE_URL = os.getenv(
    "DATABASE_URL",
    f"sqlite+aiosqlite:///{DB_DIR / 'security.db'}"
)
SQL_DEBUG = os.getenv("SQL_DEBUG", "false").lower() == "true"

# JWT
JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY")
if not JWT_SECRET_KEY:
    # Random per-process key: tokens do not survive a restart
    JWT_SECRET_KEY = secrets.token_urlsafe(32)
    logger.warning("Using auto-generated JWT_SECRET_KEY. Set JWT_SECRET_KEY env var in production!")

JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60"))
REFRESH_TOKEN_EXPIRE_DAYS = int(os.getenv("REFRESH_TOKEN_EXPIRE_DAYS", "7"))
TOKEN_ISSUER = os.getenv("TOKEN_ISSUER", "securityauthapi")
TOKEN_AUDIENCE = os.getenv("TOKEN_AUDIENCE", "securityauthclient")

# Roles
DEFAULT_ROLE_NAME = os.getenv("DEFAULT_ROLE_NAME", "Usuario")
ADMIN_ROLE_NAME = os.getenv("ADMIN_ROLE_NAME", "Administrador")
ADMIN_REDIRECT_URL = os.getenv("ADMIN_REDIRECT_URL", "/admin/person.html")
USER_REDIRECT_URL = os.getenv("USER_REDIRECT_URL", "/admin/rolUser.html")

# Passwords
PASSWORD_MIN_LENGTH = int(os.getenv("PASSWORD_MIN_LENGTH", "6"))

# HTTP
ENABLE_DOCS = os.getenv("ENABLE_DOCS", "true").lower() == "true"
ENABLE_HSTS = os.getenv("ENABLE_HSTS", "false").lower() == "true"
TRUSTED_HOSTS = [h.strip() for h in os.getenv("TRUSTED_HOSTS", "*").split(",") if h.strip()]

# Audit
AUDIT_IN_BACKGROUND = os.getenv("AUDIT_IN_BACKGROUND", "true").lower() == "true"


def get_cors_allow_origins() -> list[str]:
    """Origins allowed by CORS, from the comma-separated CORS_ALLOW_ORIGINS env var."""
    raw = os.getenv("CORS_ALLOW_ORIGINS", "http://127.0.0.1:5500,http://localhost:5500")
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


# Ensure DB directory exists
os.makedirs(DB_DIR, exist_ok=True)
