"""
Error types raised by request handlers.

Every error carries the HTTP status it maps to; the app turns them into
``{"success": false, "message": ...}`` responses.
"""


class AppError(Exception):
    status_code = 500

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class BadRequestError(AppError):
    status_code = 400


class AuthenticationError(AppError):
    status_code = 401


class NotFoundError(AppError):
    status_code = 404


class UpstreamError(AppError):
    """An external dependency (media host) failed."""

    status_code = 502


class NotificationError(AppError):
    """Outbound mail could not be delivered."""

    status_code = 500
