"""
Thin wrapper around google-api-python-client.

The discovery client is blocking, so every call runs in a worker thread.
HTTP failures are translated into action errors here so executors only deal
with the happy path.
"""

import asyncio
from typing import Any, Callable, TypeVar

from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from loguru import logger

from src.utils.errors import ActionExecutionError, ResourceNotFoundError, ServiceAuthError

T = TypeVar("T")


def build_service(api: str, version: str, access_token: str):
    """Discovery client authorized with a bare access token."""
    credentials = Credentials(token=access_token)
    return build(api, version, credentials=credentials, cache_discovery=False)


def _http_status(error: HttpError) -> int:
    status = getattr(error, "status_code", None)
    if status is None and error.resp is not None:
        status = error.resp.status
    return int(status or 0)


async def google_call(
    access_token: str,
    api: str,
    version: str,
    service_label: str,
    operation: str,
    fn: Callable[[Any], T],
) -> T:
    """
    Build the service and run ``fn(service)`` off the event loop.

    Args:
        access_token: OAuth access token for the user
        api: Discovery API name ("gmail", "calendar", "docs", "drive")
        version: API version ("v1", "v3")
        service_label: Name shown to the user on auth failures ("Gmail")
        operation: Verb phrase for error messages ("send email")
        fn: Blocking function receiving the built service

    Raises:
        ServiceAuthError: The API answered 401, or 403 for missing scopes
        ResourceNotFoundError: The API answered 404
        ActionExecutionError: Any other API failure
    """
    def _run():
        service = build_service(api, version, access_token)
        return fn(service)

    try:
        return await asyncio.to_thread(_run)
    except HttpError as e:
        status = _http_status(e)
        logger.warning(f"{service_label} API error during '{operation}': HTTP {status}")
        if status == 401 or (status == 403 and "insufficient" in str(e).lower()):
            raise ServiceAuthError(service_label) from e
        if status == 404:
            raise ResourceNotFoundError(f"Failed to {operation}: the requested item was not found") from e
        raise ActionExecutionError(f"Failed to {operation}: {e}", status_code=status or None) from e
