"""Error taxonomy shared by the services and the HTTP layer."""
from typing import Optional


class ChatServiceError(Exception):
    """Base exception carrying the HTTP status it maps to."""

    status_code: int = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)


class ValidationError(ChatServiceError):
    """A required request field is missing or empty."""
    status_code = 400


class UnknownModelError(ChatServiceError):
    """The model id does not match any provider family prefix."""

    def __init__(self, model_id: str):
        self.model_id = model_id
        super().__init__(f"Unknown model: {model_id}")


class ConfigurationError(ChatServiceError):
    """A required provider credential is missing from the environment."""

    def __init__(self, message: str, missing_key: Optional[str] = None):
        self.missing_key = missing_key
        super().__init__(message)


class UpstreamProviderError(ChatServiceError):
    """The completion stream failed mid-flight."""
    status_code = 502


class StorageError(ChatServiceError):
    """A session store operation failed."""


class ThreadNotFoundError(StorageError):
    status_code = 404

    def __init__(self, thread_id: str):
        self.thread_id = thread_id
        super().__init__(f"Thread not found: {thread_id}")
