"""
Security Utilities for the StoryTime Web API

Provides PIN hashing, input sanitization, and request helpers.
"""

import hashlib
import hmac
import logging
import re
import secrets
from typing import Optional

from fastapi import Request

from config import settings
from subscription.errors import ValidationFailed

logger = logging.getLogger(__name__)


# ============================================================================
# PIN HASHING
# ============================================================================

PIN_SALT_BYTES = 16
PIN_KEY_BYTES = 64
PIN_DIGEST = "sha512"
PIN_PATTERN = re.compile(r"^\d{4}$")


def hash_pin(pin: str, iterations: Optional[int] = None) -> str:
    """
    Hash a parent PIN with PBKDF2-HMAC-SHA512.

    Returns:
        "salt_hex:hash_hex"
    """
    iterations = iterations or settings.PIN_HASH_ITERATIONS
    salt = secrets.token_bytes(PIN_SALT_BYTES)
    derived = hashlib.pbkdf2_hmac(PIN_DIGEST, pin.encode("utf-8"), salt, iterations, PIN_KEY_BYTES)
    return f"{salt.hex()}:{derived.hex()}"


def verify_pin(pin: str, stored_hash: str, iterations: Optional[int] = None) -> bool:
    """Check a PIN against a stored "salt_hex:hash_hex" value in constant time"""
    iterations = iterations or settings.PIN_HASH_ITERATIONS
    try:
        salt_hex, hash_hex = stored_hash.split(":", 1)
        salt = bytes.fromhex(salt_hex)
        expected = bytes.fromhex(hash_hex)
    except (AttributeError, ValueError):
        logger.warning("Stored PIN hash is malformed")
        return False

    derived = hashlib.pbkdf2_hmac(PIN_DIGEST, pin.encode("utf-8"), salt, iterations, len(expected))
    return hmac.compare_digest(derived, expected)


def is_valid_pin_format(pin: Optional[str]) -> bool:
    return bool(pin) and PIN_PATTERN.match(pin) is not None


# ============================================================================
# INPUT SANITIZATION
# ============================================================================

def sanitize_title(title: str, max_length: int = 200) -> str:
    """
    Sanitize a story or checkpoint title.

    Args:
        title: The title to sanitize
        max_length: Maximum allowed length

    Returns:
        Sanitized title
    """
    if not title:
        raise ValidationFailed("Title cannot be empty")

    # Control characters only; titles are displayed, never used as paths
    sanitized = re.sub(r"[\x00-\x1f]", " ", title).strip()

    if len(sanitized) > max_length:
        sanitized = sanitized[:max_length]

    if not sanitized:
        raise ValidationFailed("Title contains only invalid characters")

    return sanitized


def sanitize_text_input(text: Optional[str], max_length: int = 50000) -> str:
    """
    Sanitize free text input (story content, summaries, descriptions).

    Args:
        text: The text to sanitize
        max_length: Maximum allowed length

    Returns:
        Sanitized text
    """
    if not text:
        return ""

    # Remove null bytes
    text = text.replace("\x00", "")

    # Limit length
    if len(text) > max_length:
        text = text[:max_length]

    return text


# ============================================================================
# REQUEST HELPERS
# ============================================================================

def get_client_ip(request: Request) -> str:
    """Client address, honoring the first X-Forwarded-For hop when present"""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip

    if request.client:
        return request.client.host

    return "unknown"
