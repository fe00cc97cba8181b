from __future__ import annotations

from fastapi import status


class ChatRelayError(Exception):
    """Base error carrying the HTTP status and the ``{error, message}`` envelope."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    error: str = "Internal server error"

    def __init__(self, message: str = "", *, error: str | None = None) -> None:
        super().__init__(message or self.error)
        self.message = message or self.error
        if error is not None:
            self.error = error

    def to_dict(self) -> dict[str, str]:
        return {"error": self.error, "message": self.message}


class BadRequestError(ChatRelayError):
    status_code = status.HTTP_400_BAD_REQUEST
    error = "Bad request"


class NotFoundError(ChatRelayError):
    status_code = status.HTTP_404_NOT_FOUND
    error = "Not found"


class UpstreamError(ChatRelayError):
    """Inference or storage collaborator failure."""

    error = "Upstream service error"


class InternalError(ChatRelayError):
    pass
