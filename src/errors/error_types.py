"""
Error type definitions for user-facing error classification.

Failures from the model provider or from action execution are normalized
into a small set of semantic categories. Each category carries the text the
user sees and whether trying again is likely to help.
"""

from enum import Enum
from dataclasses import dataclass, field
from typing import Any, Dict, Optional


class ErrorCategory(Enum):
    """
    Semantic error categories, in the order they are matched.
    """
    # Action-level failures (raised by our own executors)
    MISSING_PARAMETER = "missing_parameter"
    RESOURCE_NOT_FOUND = "resource_not_found"
    SERVICE_AUTH = "service_auth"
    UNKNOWN_ACTION = "unknown_action"
    SERVICE_RATE_LIMITED = "service_rate_limited"
    SERVICE_UNAVAILABLE = "service_unavailable"
    ACTION_FAILED = "action_failed"

    # Provider-level failures
    QUOTA_EXCEEDED = "quota_exceeded"
    OVERLOADED = "overloaded"
    AUTHENTICATION = "authentication"
    MODEL_UNAVAILABLE = "model_unavailable"
    TIMEOUT = "timeout"
    CONTENT_POLICY = "content_policy"
    NETWORK = "network"
    SERVER_ERROR = "server_error"
    INVALID_REQUEST = "invalid_request"

    # Catch-all for unrecognized errors
    UNKNOWN = "unknown"


@dataclass
class AIErrorDetails:
    """
    User-facing description of a failure.

    Attributes:
        message: Short headline shown in bold
        is_retryable: True when the same request may succeed later
        user_action: Remediation text shown under the headline
        category: Semantic category that matched
        raw_message: Original error text (for logs only)

    Example:
        >>> details = AIErrorDetails(
        ...     message="You have reached your API quota limit.",
        ...     is_retryable=False,
        ...     category=ErrorCategory.QUOTA_EXCEEDED,
        ... )
        >>> details.is_retryable
        False
    """
    message: str
    is_retryable: bool
    user_action: Optional[str] = None
    category: ErrorCategory = ErrorCategory.UNKNOWN
    raw_message: str = ""
    details: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        """Validate that category is an ErrorCategory enum member."""
        if not isinstance(self.category, ErrorCategory):
            raise TypeError(f"category must be ErrorCategory, got {type(self.category)}")
