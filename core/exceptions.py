"""
Custom Exception Classes for the Magnify fetch service.

This module defines the exception hierarchy used by the profile fetch pipeline.
Every error carries a message, a stable error code and an optional details
dictionary, so the orchestrator can report failures as structured data and the
HTTP layer can translate them without inspecting message text.

Key Components:
- `MagnifyError`: The base exception from which all other errors inherit.
- `ValidationError`: Bad identifier input, rejected before any I/O.
- `ConfigurationError` / `MissingCredentialError`: Startup configuration
  problems. A missing credential is fatal at startup, never retried per fetch.
- `RequestError`: Network failure or non-success status, scoped to the single
  operation that issued it (profile fetch or one asset download).
- `DecodeError`: The remote response does not match the expected schema.
- `StorageError`: Local cache I/O failure.
- `to_http_exception`: Maps a `MagnifyError` onto FastAPI's `HTTPException`.
"""

from typing import Optional, Dict, Any
from fastapi import HTTPException


class MagnifyError(Exception):
    """Base exception class for the fetch service"""

    def __init__(
        self,
        message: str,
        error_code: str = "MAGNIFY_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(MagnifyError):
    """Raised when input validation fails"""

    def __init__(self, field: str, value: Any, reason: str):
        super().__init__(
            f"Validation failed for field '{field}': {reason}",
            "VALIDATION_ERROR",
            {"field": field, "value": str(value), "reason": reason},
        )


class ConfigurationError(MagnifyError):
    """Raised when process configuration is invalid"""

    def __init__(self, setting: str, reason: str, error_code: str = "CONFIGURATION_ERROR"):
        super().__init__(
            f"Invalid configuration for '{setting}': {reason}",
            error_code,
            {"setting": setting, "reason": reason},
        )


class MissingCredentialError(ConfigurationError):
    """Raised when the API credential is absent"""

    def __init__(self, setting: str = "DISCORD_BOT_TOKEN"):
        super().__init__(setting, "credential is not set", "MISSING_CREDENTIAL")


class RequestError(MagnifyError):
    """Raised when a remote request fails or returns a non-success status"""

    def __init__(self, url: str, reason: str, status: Optional[int] = None):
        details: Dict[str, Any] = {"url": url, "reason": reason}
        if status is not None:
            details["status"] = status
        super().__init__(
            f"Request to {url} failed: {reason}",
            "REQUEST_ERROR",
            details,
        )
        self.status = status


class DecodeError(MagnifyError):
    """Raised when a response body does not match the expected schema"""

    def __init__(self, identifier: str, reason: str):
        super().__init__(
            f"Could not decode profile for {identifier}: {reason}",
            "DECODE_ERROR",
            {"identifier": identifier, "reason": reason},
        )


class StorageError(MagnifyError):
    """Raised when the local asset cache cannot be written"""

    def __init__(self, path: str, reason: str):
        super().__init__(
            f"Storage operation on '{path}' failed: {reason}",
            "STORAGE_ERROR",
            {"path": path, "reason": reason},
        )


def to_http_exception(exc: MagnifyError) -> HTTPException:
    """Convert MagnifyError to FastAPI HTTPException"""

    status_code_map = {
        "VALIDATION_ERROR": 400,
        "REQUEST_ERROR": 502,
        "DECODE_ERROR": 502,
        "STORAGE_ERROR": 500,
        "CONFIGURATION_ERROR": 500,
        "MISSING_CREDENTIAL": 500,
    }

    status_code = status_code_map.get(exc.error_code, 500)

    return HTTPException(status_code=status_code, detail=exc.to_dict())
