"""Domain errors raised by service functions.

The API layer maps these to HTTP responses; ``message`` is shown to the
user verbatim, so keep it short and human readable.
"""

from fastapi import status


class DomainError(Exception):
    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class BookingActionError(DomainError):
    pass


class WalletError(DomainError):
    pass


class InsufficientFundsError(WalletError):
    pass


class EscrowError(DomainError):
    pass


class ModerationError(DomainError):
    pass


class TrackingError(DomainError):
    pass


class PaymentGatewayError(DomainError):
    status_code = status.HTTP_502_BAD_GATEWAY


class EarningsError(DomainError):
    pass
