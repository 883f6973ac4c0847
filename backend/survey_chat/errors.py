"""Exception taxonomy shared by the API routes and their handlers."""

from __future__ import annotations

from typing import Any


class ChatServiceError(Exception):
    """Base error carrying the HTTP status it should be rendered with."""

    status_code: int = 500

    def __init__(self, message: str, *, extra: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.extra = extra or {}

    def to_payload(self) -> dict[str, Any]:
        return {"error": self.message, **self.extra}


class InputValidationError(ChatServiceError):
    """Missing or malformed caller input."""

    status_code = 400


class ThreadBusyError(ChatServiceError):
    """Another run is still active on the thread; the caller should retry."""

    status_code = 409


class UpstreamRunError(ChatServiceError):
    """The assistant run ended in a state other than ``completed``."""

    status_code = 500


class ConfigurationError(ChatServiceError):
    status_code = 500
