"""Domain error taxonomy shared by the HTTP and websocket layers."""

from __future__ import annotations

from fastapi import status


class ChatError(Exception):
    """Base class for errors reported back to the acting client."""

    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_payload(self) -> dict[str, str]:
        return {"msg": self.message}


class ValidationError(ChatError):
    """Missing field, bad enum value, oversized media or an empty patch."""

    status_code = status.HTTP_400_BAD_REQUEST


class PermissionDeniedError(ChatError):
    """Blocked relationship, non-admin action or non-participant actor."""

    status_code = status.HTTP_403_FORBIDDEN


class NotFoundError(ChatError):
    status_code = status.HTTP_404_NOT_FOUND


class UploadError(ChatError):
    """The media store failed; nothing was persisted."""

    status_code = status.HTTP_502_BAD_GATEWAY


class ConcurrencyConflict(ChatError):
    """A unique-key race lost against a concurrent writer."""

    status_code = status.HTTP_409_CONFLICT
