"""Error types raised by the documentation sync layer."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any


class DocSyncError(RuntimeError):
    """Base class for every error surfaced by :mod:`hidesync.docsync`.

    Mirrors the ``{message, status, data}`` shape returned by the HideSync API.
    """

    def __init__(self, message: str, *, status: int | None = None, data: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.status = status
        self.data = data

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"kind": type(self).__name__, "message": self.message}
        if self.status is not None:
            payload["status"] = self.status
        if self.data is not None:
            payload["data"] = self.data
        return payload


class NetworkError(DocSyncError):
    """The remote service could not be reached or timed out."""


class ServerError(DocSyncError):
    """The remote service answered with a non-2xx status."""


class NotFoundError(DocSyncError):
    """The resource is absent remotely and in the mirror."""


class ValidationError(DocSyncError):
    """The remote service rejected the payload."""


class ConflictError(DocSyncError):
    """A replayed operation targets a resource changed or removed by another client."""

    def __init__(
        self,
        message: str,
        *,
        operation_id: str | None = None,
        status: int | None = None,
        data: Any = None,
    ) -> None:
        super().__init__(message, status=status, data=data)
        self.operation_id = operation_id


class StorageError(DocSyncError):
    """Local persistence failed; the change was not saved on this device."""


def error_for_status(status: int, message: str | None = None, data: Any = None) -> DocSyncError:
    """Map an HTTP status and response body onto the matching error type."""

    if not message and isinstance(data, Mapping):
        detail = data.get("message") or data.get("detail")
        message = str(detail) if detail else None
    text = message or f"HTTP {status}"
    if status == 404:
        return NotFoundError(text, status=status, data=data)
    if status == 409:
        return ConflictError(text, status=status, data=data)
    if status in (400, 422):
        return ValidationError(text, status=status, data=data)
    return ServerError(text, status=status, data=data)


__all__ = [
    "ConflictError",
    "DocSyncError",
    "NetworkError",
    "NotFoundError",
    "ServerError",
    "StorageError",
    "ValidationError",
    "error_for_status",
]
