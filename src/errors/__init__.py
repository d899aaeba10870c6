"""
User-facing error classification
"""

from src.errors.error_types import AIErrorDetails, ErrorCategory
from src.errors.error_parser import (
    classify_error,
    format_error_message,
    get_retry_delay,
    should_retry,
)

__all__ = [
    "AIErrorDetails",
    "ErrorCategory",
    "classify_error",
    "format_error_message",
    "get_retry_delay",
    "should_retry",
]
