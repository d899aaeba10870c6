"""
Custom error classes for the application
"""

from typing import Iterable, Optional


class AgentError(Exception):
    """Base exception for agent errors"""
    pass


class ClassificationError(AgentError):
    """The intent classifier failed or returned no decision"""
    pass


class MissingApiKeyError(AgentError):
    """No model API key was supplied for a provider that requires one"""

    def __init__(self, provider: str):
        self.provider = provider
        super().__init__(f"A {provider} API key is required to use this model")


class ActionError(AgentError):
    """Base class for failures raised while executing an action"""
    pass


class UnknownActionError(ActionError):
    """Action name is not present in the registry"""

    def __init__(self, action_name: str):
        self.action_name = action_name
        super().__init__(f"Unknown action: {action_name}")


class MissingParameterError(ActionError):
    """Required action parameters were absent or empty"""

    def __init__(self, action_name: str, missing: Iterable[str]):
        self.action_name = action_name
        self.missing = list(missing)
        super().__init__(
            f"Missing required parameter(s) for {action_name}: {', '.join(self.missing)}"
        )


class ResourceNotFoundError(ActionError):
    """A lookup (e.g. document by title) found nothing"""
    pass


class ServiceAuthError(ActionError):
    """The external service rejected the access token"""

    def __init__(self, service_name: str):
        self.service_name = service_name
        super().__init__(
            f"Authentication failed: Invalid or expired {service_name} credentials. "
            f"Please reconnect {service_name} to continue."
        )


class ActionExecutionError(ActionError):
    """Any other failure reported by the external service"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class ConversationNotFoundError(AgentError):
    """Thread does not exist, is soft-deleted, or belongs to another user"""
    pass


class ConversationDeletedError(AgentError):
    """Thread exists but has been soft-deleted"""
    pass
