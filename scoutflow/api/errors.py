"""
Application exceptions

Business errors raise AppError; main.py renders them in the common
{"code", "message", "data"} envelope.
"""
from __future__ import annotations


class AppError(Exception):
    """
    Business error

    - code: application error code, distinguishes errors for the client
    - message: human readable message
    - status_code: HTTP status (400, 401, 404, 500 ...)

    Example:
        raise AppError(code=404101, message="No subscription found", status_code=404)
    """

    def __init__(self, *, code: int, message: str, status_code: int = 400) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code


def subscription_not_found() -> AppError:
    return AppError(code=404101, message="No subscription found", status_code=404)


def payment_configuration_error() -> AppError:
    return AppError(code=500101, message="Payment configuration error", status_code=500)


def provider_error(message: str) -> AppError:
    # 502: the billing provider, not this service, failed.
    return AppError(code=502101, message=message, status_code=502)
