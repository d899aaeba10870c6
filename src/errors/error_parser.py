"""
Error parser - converts arbitrary failures to user-facing error details.

This module is the ONLY place where we match against provider-specific error
strings and codes. The orchestrator works with AIErrorDetails objects, so the
user always gets a short explanation, a remediation hint and a retry hint.

The classifier never raises: anything it cannot recognise falls through to
the generic, retryable category.
"""

import asyncio
import re
from collections.abc import Mapping
from typing import Any, Dict, List, Optional

from loguru import logger

from src.config.settings import settings
from src.errors.error_types import AIErrorDetails, ErrorCategory
from src.utils.errors import (
    ActionExecutionError,
    MissingApiKeyError,
    MissingParameterError,
    ResourceNotFoundError,
    ServiceAuthError,
    UnknownActionError,
)


DEFAULT_RETRY_DELAY_SECONDS = 5.0

QUOTA_SOLUTIONS = (
    "\n\n🔧 **Quick Solutions:**\n"
    "1. Switch to a different AI model\n"
    "2. Wait until tomorrow (quota resets daily)\n"
    "3. Check your API key billing status\n"
    "4. Consider upgrading your plan"
)


def classify_error(error: Any) -> AIErrorDetails:
    """
    Map a failure to a user-facing error description.

    Checks run in a fixed order; the first match wins. Typed errors from our own code
    are recognised first, then provider signals (structured fields such as
    ``status``/``code`` and substrings of the error text).

    Args:
        error: Exception, parsed JSON error body, or any other object

    Returns:
        AIErrorDetails with message, retryability and remediation text

    Example:
        >>> classify_error({"status": "RESOURCE_EXHAUSTED"}).is_retryable
        False
        >>> classify_error(object()).is_retryable
        True
    """
    try:
        return _classify(error)
    except Exception as e:  # the classifier itself must never break a turn
        logger.warning(f"Error classification failed, using generic message: {e}")
        return _unknown(str(error))


def format_error_message(error_details: AIErrorDetails) -> str:
    """
    Render error details as markdown for the chat stream.

    Layout: bold headline, remediation text, retry/action footer and, when
    the headline is about a quota or limit, a fixed list of quick solutions.
    """
    message = f"**{error_details.message}**"

    if error_details.user_action:
        message += f"\n\n{error_details.user_action}"

    if error_details.is_retryable:
        message += "\n\n💡 **Tip:** This issue may resolve itself, so please try again."
    else:
        message += "\n\n⚠️ **Note:** This issue requires action on your part to resolve."

    headline = error_details.message.lower()
    if "quota" in headline or "limit" in headline:
        message += QUOTA_SOLUTIONS

    return message


def should_retry(error: Any) -> bool:
    """True when the classified error is retryable."""
    return classify_error(error).is_retryable


def get_retry_delay(error: Any) -> float:
    """
    Suggested delay in seconds before retrying.

    Reads a ``RetryInfo`` detail (e.g. ``{"retryDelay": "49s"}``) when the
    provider sends one, otherwise returns the default delay.
    """
    try:
        fields = _extract_fields(error)
        for detail in fields["details"]:
            if "RetryInfo" in str(_get(detail, "@type") or ""):
                match = re.match(r"(\d+(?:\.\d+)?)s", str(_get(detail, "retryDelay") or ""))
                if match:
                    return float(match.group(1))
    except Exception as e:
        logger.debug(f"Could not read retry delay: {e}")
    return DEFAULT_RETRY_DELAY_SECONDS


# ============================================================================
# Classification
# ============================================================================

def _classify(error: Any) -> AIErrorDetails:
    typed = _classify_typed_error(error)
    if typed is not None:
        return typed

    fields = _extract_fields(error)
    text = fields["text"]
    raw = fields["raw"]
    status = fields["status"]
    code = fields["http_status"]

    logger.debug(
        f"Classifying error: type={type(error).__name__}, status={status}, code={code}, text={raw[:200]}"
    )

    if _is_quota_exceeded(status, code, text):
        return _quota_details(fields)

    if _is_overloaded(status, code, text):
        return AIErrorDetails(
            message="The AI service is currently experiencing high demand.",
            is_retryable=True,
            user_action="Please wait a moment and try again.",
            category=ErrorCategory.OVERLOADED,
            raw_message=raw,
        )

    if _is_authentication(code, text):
        return AIErrorDetails(
            message="There was an issue with the AI service authentication.",
            is_retryable=False,
            user_action="Please check your API key settings and try again.",
            category=ErrorCategory.AUTHENTICATION,
            raw_message=raw,
        )

    if _is_model_unavailable(code, text):
        return AIErrorDetails(
            message="The selected AI model is currently unavailable.",
            is_retryable=False,
            user_action="Please try a different model or contact support.",
            category=ErrorCategory.MODEL_UNAVAILABLE,
            raw_message=raw,
        )

    if _is_timeout(error, text):
        return AIErrorDetails(
            message="The request took too long to process.",
            is_retryable=True,
            user_action="Please try again with a shorter message or wait a moment.",
            category=ErrorCategory.TIMEOUT,
            raw_message=raw,
        )

    if _is_content_policy(text):
        return AIErrorDetails(
            message="Your request was blocked due to content policy restrictions.",
            is_retryable=False,
            user_action="Please rephrase your request and try again.",
            category=ErrorCategory.CONTENT_POLICY,
            raw_message=raw,
        )

    if _is_network(error, text):
        return AIErrorDetails(
            message="There was a network connection issue.",
            is_retryable=True,
            user_action="Please check your internet connection and try again.",
            category=ErrorCategory.NETWORK,
            raw_message=raw,
        )

    if _is_server_error(code, text):
        return AIErrorDetails(
            message="The AI service is experiencing technical difficulties.",
            is_retryable=True,
            user_action="Please wait a moment and try again. This is a server-side issue.",
            category=ErrorCategory.SERVER_ERROR,
            raw_message=raw,
        )

    if _is_invalid_request(text):
        return AIErrorDetails(
            message="The request format was invalid.",
            is_retryable=False,
            user_action="Please check your message and try again with a different approach.",
            category=ErrorCategory.INVALID_REQUEST,
            raw_message=raw,
        )

    return _unknown(raw)


def _classify_typed_error(error: Any) -> Optional[AIErrorDetails]:
    """Typed failures raised by our own code (model factory, action executors)."""
    if isinstance(error, MissingParameterError):
        return AIErrorDetails(
            message="Some details needed for this action are missing.",
            is_retryable=False,
            user_action=f"{error}. Please provide them and I'll try again.",
            category=ErrorCategory.MISSING_PARAMETER,
            raw_message=str(error),
            details={"missing": error.missing},
        )
    if isinstance(error, ResourceNotFoundError):
        return AIErrorDetails(
            message="I couldn't find what you were referring to.",
            is_retryable=False,
            user_action=f"{error}. Please check the name and try again.",
            category=ErrorCategory.RESOURCE_NOT_FOUND,
            raw_message=str(error),
        )
    if isinstance(error, ServiceAuthError):
        return AIErrorDetails(
            message=f"Your {error.service_name} connection is no longer valid.",
            is_retryable=False,
            user_action=(
                f"Please reconnect {error.service_name} from the Apps page "
                f"({settings.apps_page_url}) and try again."
            ),
            category=ErrorCategory.SERVICE_AUTH,
            raw_message=str(error),
        )
    if isinstance(error, UnknownActionError):
        return AIErrorDetails(
            message="I don't know how to perform that action yet.",
            is_retryable=False,
            user_action=f"{error}. Please rephrase your request.",
            category=ErrorCategory.UNKNOWN_ACTION,
            raw_message=str(error),
        )
    if isinstance(error, ActionExecutionError):
        return _service_failure_details(error)
    if isinstance(error, MissingApiKeyError):
        return AIErrorDetails(
            message=f"No {error.provider} API key was provided for the selected model.",
            is_retryable=False,
            user_action=(
                f"Please add your {error.provider} API key in the API key settings, "
                "or choose a model whose key you have already added."
            ),
            category=ErrorCategory.AUTHENTICATION,
            raw_message=str(error),
        )
    return None


def _service_failure_details(error: ActionExecutionError) -> AIErrorDetails:
    """Google API failures, mapped by HTTP status so they never read as model problems."""
    code = error.status_code
    if code == 429:
        return AIErrorDetails(
            message="The Google service is receiving too many requests from your account right now.",
            is_retryable=False,
            user_action="Please wait a few minutes before asking me to try this action again.",
            category=ErrorCategory.SERVICE_RATE_LIMITED,
            raw_message=str(error),
        )
    if code is not None and code >= 500:
        return AIErrorDetails(
            message="The Google service is having technical difficulties.",
            is_retryable=True,
            user_action="Please wait a moment and try again. This is a problem on Google's side.",
            category=ErrorCategory.SERVICE_UNAVAILABLE,
            raw_message=str(error),
        )
    return AIErrorDetails(
        message="The action could not be completed.",
        is_retryable=False,
        user_action=f"{error}. Please check the details and try again.",
        category=ErrorCategory.ACTION_FAILED,
        raw_message=str(error),
    )


def _quota_details(fields: Dict[str, Any]) -> AIErrorDetails:
    """Quota / rate limit details, with free-tier specifics when the provider sends them."""
    text = fields["text"]
    quota_failure = next(
        (d for d in fields["details"] if "QuotaFailure" in str(_get(d, "@type") or "")),
        None,
    )

    if quota_failure is not None or "free_tier" in text or "you exceeded your current quota" in text:
        quota_info = ""
        violations = _get(quota_failure, "violations") if quota_failure is not None else None
        if violations:
            violation = violations[0]
            metric = str(_get(violation, "quotaMetric") or "")
            dimensions = _get(violation, "quotaDimensions") or {}
            quota_info = (
                f"\n\n**Quota Details:**\n"
                f"- Limit: {_get(violation, 'quotaValue')} {metric.split('/')[-1] or 'requests'}\n"
                f"- Model: {_get(dimensions, 'model') or 'Unknown'}"
            )
        return AIErrorDetails(
            message="You have reached your free tier API quota limit for today.",
            is_retryable=False,
            user_action=(
                "You have used all your free requests for today. Please upgrade your plan or try "
                "again tomorrow. You can also switch to a different AI model if available."
                f"{quota_info}"
            ),
            category=ErrorCategory.QUOTA_EXCEEDED,
            raw_message=fields["raw"],
        )

    return AIErrorDetails(
        message="You have reached your API quota limit.",
        is_retryable=False,
        user_action=(
            "Please check your billing plan or try again tomorrow. "
            "You can also switch to a different AI model if available."
        ),
        category=ErrorCategory.QUOTA_EXCEEDED,
        raw_message=fields["raw"],
    )


def _unknown(raw: str) -> AIErrorDetails:
    return AIErrorDetails(
        message="I encountered an unexpected issue while processing your request.",
        is_retryable=True,
        user_action="Please try again. If the problem persists, contact support.",
        category=ErrorCategory.UNKNOWN,
        raw_message=raw,
    )


# ============================================================================
# Pattern Detection Functions
# ============================================================================

def _is_quota_exceeded(status: str, code: Optional[int], text: str) -> bool:
    return (
        status == "RESOURCE_EXHAUSTED" or
        code == 429 or
        "resource_exhausted" in text or
        "quota" in text or
        "rate limit" in text or
        "rate_limit" in text
    )


def _is_overloaded(status: str, code: Optional[int], text: str) -> bool:
    return (
        status == "UNAVAILABLE" or
        code in (503, 529) or
        "overloaded" in text or
        "high demand" in text or
        "temporarily unavailable" in text
    )


def _is_authentication(code: Optional[int], text: str) -> bool:
    return (
        code == 401 or
        "invalid key" in text or
        "invalid api key" in text or
        "invalid_api_key" in text or
        "api key not valid" in text or
        "authentication" in text or
        "unauthorized" in text
    )


def _is_model_unavailable(code: Optional[int], text: str) -> bool:
    return (
        code == 400 or
        "model not found" in text or
        "invalid model" in text or
        "not available" in text or
        "model_not_found" in text or
        ("model" in text and "does not exist" in text)
    )


def _is_timeout(error: Any, text: str) -> bool:
    return (
        isinstance(error, (TimeoutError, asyncio.TimeoutError)) or
        "timeout" in text or
        "timed out" in text or
        "deadline" in text
    )


def _is_content_policy(text: str) -> bool:
    return (
        "content policy" in text or
        "safety" in text or
        "blocked" in text
    )


def _is_network(error: Any, text: str) -> bool:
    return (
        isinstance(error, ConnectionError) or
        "network" in text or
        "connection" in text or
        "fetch" in text
    )


def _is_server_error(code: Optional[int], text: str) -> bool:
    return (
        (code is not None and code >= 500) or
        "internal server error" in text or
        "server error" in text
    )


def _is_invalid_request(text: str) -> bool:
    return "bad request" in text or "invalid request" in text


# ============================================================================
# Field Extraction
# ============================================================================

def _get(source: Any, key: str) -> Any:
    """Read a key from a mapping or an attribute from an object."""
    if source is None:
        return None
    if isinstance(source, Mapping):
        return source.get(key)
    return getattr(source, key, None)


def _as_http_status(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.isdigit():
        return int(value)
    return None


def _extract_fields(error: Any) -> Dict[str, Any]:
    """
    Collect the structured fields providers attach to errors.

    Looks at ``error.data.error`` and ``error.error`` (JSON error bodies)
    before the error object itself, and at the HTTP status exposed by
    SDK exceptions (``status_code``, ``http_status``, ``resp.status``).
    """
    nested = _get(_get(error, "data"), "error")
    if nested is None:
        nested = _get(error, "error")
    if nested is None:
        body = _get(error, "body")
        nested = _get(body, "error") if isinstance(body, Mapping) and "error" in body else body
    if isinstance(nested, (str, bytes)):
        nested = None

    sources = [s for s in (nested, error) if s is not None]

    status = ""
    http_status: Optional[int] = None
    message = ""
    details: List[Any] = []
    code_text = ""

    for source in sources:
        if not status and isinstance(_get(source, "status"), str):
            status = _get(source, "status")
        if http_status is None:
            for key in ("code", "status_code", "http_status", "status"):
                http_status = _as_http_status(_get(source, key))
                if http_status is not None:
                    break
        if not code_text and isinstance(_get(source, "code"), str):
            code_text = _get(source, "code")
        if not message and isinstance(_get(source, "message"), str):
            message = _get(source, "message")
        if not details and isinstance(_get(source, "details"), list):
            details = _get(source, "details")

    if http_status is None:
        http_status = _as_http_status(_get(_get(error, "resp"), "status"))

    if isinstance(error, BaseException):
        raw = str(error) or type(error).__name__
    elif isinstance(error, str):
        raw = error
    else:
        raw = message or str(error)

    text = " ".join(part for part in (raw, message, status, code_text) if part).lower()

    return {
        "status": status,
        "http_status": http_status,
        "message": message,
        "details": details,
        "raw": raw,
        "text": text,
    }
