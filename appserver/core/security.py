"""
Security utilities for appserver

Random token generation for session identifiers and secret key checks.
"""

import logging
import secrets
import string

logger = logging.getLogger(__name__)

SPECIAL_CHARACTERS = "~!@#$%^&*()_+-={}[]:;<>,.?/"


def generate_random_string(
    length: int,
    lower: bool = True,
    upper: bool = True,
    digits: bool = True,
    special: bool = False,
) -> str:
    """
    Generate a cryptographically secure random string.

    Args:
        length: Number of characters
        lower: Include lowercase letters
        upper: Include uppercase letters
        digits: Include digits
        special: Include punctuation

    Returns:
        Random string drawn from the selected alphabet

    Raises:
        ValueError: If the alphabet is empty or length is negative
    """
    alphabet = ""
    if lower:
        alphabet += string.ascii_lowercase
    if upper:
        alphabet += string.ascii_uppercase
    if digits:
        alphabet += string.digits
    if special:
        alphabet += SPECIAL_CHARACTERS
    if not alphabet:
        raise ValueError("Empty alphabet for random string")
    if length < 0:
        raise ValueError("Random string length cannot be negative")
    return "".join(secrets.choice(alphabet) for _ in range(length))


def generate_secure_secret_key(length: int = 64) -> str:
    """
    Generate a cryptographically secure secret key.

    Args:
        length: Length of the secret key (default: 64 characters)

    Returns:
        A secure random string suitable for signing session tokens
    """
    alphabet = string.ascii_letters + string.digits + "-_"
    return "".join(secrets.choice(alphabet) for _ in range(length))


def validate_secret_key(secret_key: str) -> None:
    """
    Validate that a secret key meets security requirements.

    Args:
        secret_key: The secret key to validate

    Raises:
        ValueError: If the secret key doesn't meet requirements
    """
    if not secret_key:
        raise ValueError("Secret key cannot be empty")

    if len(secret_key) < 32:
        raise ValueError("Secret key must be at least 32 characters long")

    insecure_defaults = ["change-me", "secret", "password", "123456", "admin"]
    if secret_key.lower() in insecure_defaults:
        raise ValueError("Secret key appears to be an insecure default value")

    if len(set(secret_key.lower())) < 8:
        raise ValueError("Secret key has insufficient entropy (too repetitive)")

    logger.debug("Secret key validation passed")
