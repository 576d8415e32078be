"""Domain exceptions. Each carries the HTTP status the API answers with."""

from __future__ import annotations


class RoomStayError(Exception):
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(RoomStayError):
    status_code = 400


class RoomUnavailableError(RoomStayError):
    status_code = 400


class InvalidTransitionError(RoomStayError):
    status_code = 400


class InvalidSignatureError(RoomStayError):
    status_code = 403


class NotFoundError(RoomStayError):
    status_code = 404


class PaymentGatewayError(RoomStayError):
    """Gateway unreachable, misconfigured, or it rejected the request."""

    status_code = 502
