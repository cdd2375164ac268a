"""
StoryTime API Utilities

PIN hashing, input sanitization and error mapping for the API.
"""

from .security import (
    hash_pin,
    verify_pin,
    is_valid_pin_format,
    sanitize_title,
    sanitize_text_input,
    get_client_ip,
)
from .http_errors import (
    to_http_exception,
    handle_errors,
)

__all__ = [
    "hash_pin",
    "verify_pin",
    "is_valid_pin_format",
    "sanitize_title",
    "sanitize_text_input",
    "get_client_ip",
    "to_http_exception",
    "handle_errors",
]
