# src/storefront_sync/core/errors.py

from __future__ import annotations

"""
Error taxonomy shared by the polling engine, the sync engines and the HTTP adapters.

Engines never throw these across the subscription boundary: polling failures are
captured in snapshots. Only commands (start / send_message / reset ...) raise
synchronously, and only ValidationError / InvalidStateError.
"""

from enum import StrEnum


class StorefrontSyncError(Exception):
    """Base class for all package errors."""


class ValidationError(StorefrontSyncError):
    """Caller supplied incomplete input; raised before any network call."""

    def __init__(self, problems: list[str] | str) -> None:
        if isinstance(problems, str):
            problems = [problems]
        self.problems = list(problems)
        super().__init__("; ".join(self.problems) or "Invalid input")


class InvalidStateError(StorefrontSyncError):
    """Command is not allowed in the current state."""


class TransportError(StorefrontSyncError):
    """
    Network failure, abort, non-2xx status, undecodable body or per-call timeout.

    Retryable inside a poll loop.
    """

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class ProtocolError(StorefrontSyncError):
    """Well-formed response whose payload is semantically invalid."""


class ApplicationError(StorefrontSyncError):
    """The server explicitly reports a job/business failure."""


class DeadlineExceededError(StorefrontSyncError):
    """Overall elapsed-time budget exceeded (distinct from per-call timeouts)."""


class FailureKind(StrEnum):
    SUBMISSION = "submission"
    TRANSPORT = "transport"
    MALFORMED = "malformed"
    REJECTED = "rejected"
    TIMEOUT = "timeout"


def is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, TransportError)


def friendly_error_message(err: BaseException) -> str:
    """Short, user-facing text for an engine/backend error."""
    msg = str(err).strip()
    if isinstance(err, ValidationError):
        return f"Missing or invalid input: {msg}"
    if isinstance(err, InvalidStateError):
        return msg or "Not allowed right now."
    if isinstance(err, TransportError):
        if err.status_code is not None:
            return f"Server returned HTTP {err.status_code}. Try again later."
        return f"Network problem: {msg or 'request failed'}. Try again later."
    if isinstance(err, ProtocolError):
        return f"Unexpected server response: {msg or 'malformed response'}"
    if isinstance(err, ApplicationError):
        return msg or "Request rejected by server."
    if isinstance(err, DeadlineExceededError):
        return msg or "Took too long. Try again."
    return msg or err.__class__.__name__
