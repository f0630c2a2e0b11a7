"""Password and PIN hashing using bcrypt directly.

Uses bcrypt directly instead of passlib to avoid compatibility issues
between passlib and bcrypt 4.x+ on Python 3.13.
"""

import bcrypt


def _hash(secret: str) -> str:
    return bcrypt.hashpw(secret.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def _check(secret: str, hashed: str) -> bool:
    return bcrypt.checkpw(secret.encode("utf-8"), hashed.encode("utf-8"))


def hash_password(password: str) -> str:
    """Hash a plain-text password using bcrypt.

    Args:
        password: The plain-text password to hash.

    Returns:
        The bcrypt hash string.
    """
    return _hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a plain-text password against a bcrypt hash.

    Args:
        plain_password: The plain-text password to check.
        hashed_password: The bcrypt hash to verify against.

    Returns:
        True if the password matches the hash, False otherwise.
    """
    return _check(plain_password, hashed_password)


def hash_pin(pin: str) -> str:
    """Hash a child's numeric PIN for storage."""
    return _hash(pin)


def verify_pin_hash(pin: str, pin_hash: str) -> bool:
    """Check a PIN attempt against a stored hash."""
    return _check(pin, pin_hash)
