"""
Password hashing with Argon2id.

Argon2id is the recommended password hashing algorithm because:
- Memory-hard (resists GPU/ASIC attacks)
- Side-channel resistant (id variant)
- Winner of the Password Hashing Competition

Digests are salted, so hashing the same password twice gives different
strings; compare with verify_password, never with ==.

Accounts migrated from the previous system still hold unsalted SHA-256 hex
digests. Those verify here and needs_rehash() reports them so a successful
login can replace them with an Argon2id digest.
"""

import hashlib
import hmac
import re

from argon2 import PasswordHasher
from argon2.exceptions import VerifyMismatchError, InvalidHashError, VerificationError

from app.core.config import PASSWORD_MIN_LENGTH

# Configure Argon2id with secure parameters
ph = PasswordHasher(
    time_cost=3,        # Number of iterations
    memory_cost=65536,  # 64 MB memory usage
    parallelism=4,      # Number of parallel threads
    hash_len=32,        # Length of the hash in bytes
    salt_len=16,        # Length of the random salt
)

_LEGACY_SHA256 = re.compile(r"^[0-9a-f]{64}$")


def is_legacy_digest(password_hash: str) -> bool:
    """True for the unsalted SHA-256 hex digests stored by the previous system."""
    return bool(password_hash) and bool(_LEGACY_SHA256.match(password_hash))


def legacy_sha256(password: str) -> str:
    return hashlib.sha256(password.encode("utf-8")).hexdigest()


def hash_password(password: str) -> str:
    """
    Hash a password using Argon2id.

    Args:
        password: The plaintext password to hash

    Returns:
        The hashed password string (includes algorithm, params, salt, and hash)
    """
    return ph.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify a password against its hash.

    Args:
        password: The plaintext password to verify
        password_hash: The stored hash to verify against

    Returns:
        True if password matches, False otherwise
    """
    if not password_hash:
        return False

    if is_legacy_digest(password_hash):
        return hmac.compare_digest(legacy_sha256(password), password_hash)

    try:
        return ph.verify(password_hash, password)
    except VerifyMismatchError:
        return False
    except (InvalidHashError, VerificationError):
        # Hash is malformed - treat as verification failure
        return False


def needs_rehash(password_hash: str) -> bool:
    """
    Check if a password hash needs to be rehashed.

    True for legacy digests and for Argon2 hashes made with outdated
    parameters. After a successful login, check this and rehash if needed.
    """
    if is_legacy_digest(password_hash):
        return True
    try:
        return ph.check_needs_rehash(password_hash)
    except InvalidHashError:
        return True


def validate_password_strength(password: str) -> tuple[bool, list[str]]:
    """
    Validate password meets minimum requirements.

    Returns:
        Tuple of (is_valid, list_of_issues)
    """
    issues = []

    if len(password) < PASSWORD_MIN_LENGTH:
        issues.append(f"Password must be at least {PASSWORD_MIN_LENGTH} characters long")

    if password != password.strip():
        issues.append("Password must not start or end with whitespace")

    if len(password) > 128:
        issues.append("Password must be at most 128 characters long")

    return len(issues) == 0, issues
