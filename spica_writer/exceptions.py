"""
Exception hierarchy for Spica Writer.

Every failure raised by the LLM client or the project store derives from
SpicaError so callers can catch the whole family in one place.
"""

from pathlib import Path
from typing import Optional, Union


class SpicaError(Exception):
    """Base exception for Spica Writer errors"""
    pass


class ConfigError(SpicaError):
    """Raised when a required setting (e.g. the API key) is missing or unreadable"""
    pass


class LLMError(SpicaError):
    """Base exception for chat-completion failures"""
    pass


class NetworkError(LLMError):
    """Raised when the request never produced an HTTP response (connect, DNS, TLS, timeout)"""
    pass


class UpstreamError(LLMError):
    """
    Raised when the provider answered with a structured error envelope.

    Attributes:
        message: Provider-supplied error message
        code: Provider-supplied error code (may be None)
        error_type: Provider-supplied error type (may be None)
        status: HTTP status code
    """

    def __init__(self, message: str, code: Optional[str] = None,
                 error_type: Optional[str] = None, status: Optional[int] = None):
        self.message = message
        self.code = code
        self.error_type = error_type
        self.status = status
        super().__init__(f"OpenAI API Error ({status}): {message} ({code})")


class ApiError(LLMError):
    """
    Raised for a non-success response without an error envelope, or a
    success response that is not a usable completions envelope.

    Attributes:
        status: HTTP status code
        body: Raw response body text
    """

    def __init__(self, status: int, body: str, reason: Optional[str] = None):
        self.status = status
        self.body = body
        self.reason = reason
        detail = f"{reason}: " if reason else ""
        super().__init__(f"HTTP Error {status}: {detail}{body}")


class StorageError(SpicaError):
    """Base exception for project file I/O failures"""

    action = "Storage error at"

    def __init__(self, path: Union[str, Path], cause: Union[str, BaseException]):
        self.path = Path(path)
        self.cause = cause
        super().__init__(f"{self.action} {self.path}: {cause}")


class LoadError(StorageError):
    """Raised when a project file cannot be read or deserialized"""
    action = "Failed to load project from"


class SaveError(StorageError):
    """Raised when a project file cannot be written"""
    action = "Failed to save project to"
