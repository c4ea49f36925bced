"""Errors that map to HTTP responses."""

from __future__ import annotations

from http import HTTPStatus


class AppError(Exception):
    """An error raised while handling a request.

    With a status it renders as that status and its reason phrase; without one
    it renders as an internal server error that carries the cause's message.
    """

    def __init__(self, cause: BaseException | str, status: HTTPStatus | None = None) -> None:
        super().__init__(str(cause))
        self.cause = cause
        self.status = status

    @property
    def status_code(self) -> int:
        """The HTTP status code of the response."""
        if self.status is None:
            return int(HTTPStatus.INTERNAL_SERVER_ERROR)
        return int(self.status)

    @property
    def body(self) -> str:
        """The plain-text body of the response."""
        if self.status is not None:
            return f"{self.status.value} {self.status.phrase}"
        return f"Something went wrong: {self.cause}"


def not_found() -> AppError:
    """Return the error for a missing resource, ready to be raised."""
    status = HTTPStatus.NOT_FOUND
    return AppError(f"{status.value} {status.phrase}", status)