"""Domain errors raised by the services and mapped to HTTP responses in main.py."""
from typing import Optional


class StoreError(Exception):
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(StoreError):
    status_code = 404


class InvalidRequestError(StoreError):
    status_code = 400


class AuthenticationError(StoreError):
    status_code = 401


class PermissionDeniedError(StoreError):
    status_code = 403


class PaymentError(StoreError):
    """The payment provider answered, but the capture cannot be accepted."""

    status_code = 400


class PaymentProviderError(PaymentError):
    """The payment provider failed or answered with something unusable."""

    status_code = 502

    def __init__(self, message: str, provider_status: Optional[int] = None):
        super().__init__(message)
        self.provider_status = provider_status
