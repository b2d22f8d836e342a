# app/x402/errors.py
"""
Error taxonomy for the x402 payment gate.

Gate-facing errors map to an HTTP status and always render as
``{"error": ..., "message": ...}``. Ledger-side errors (``LedgerError``
subclasses) are raised only by owner-privileged ledger operations and never
reach the gating path.
"""
from typing import Any, Dict, Optional


class PaymentError(Exception):
    """Base class for all payment gate errors."""

    status_code = 500
    error = "Payment error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.error, "message": self.message}


class InvalidIdentity(PaymentError):
    """The caller-supplied wallet address is not a valid 20-byte address."""

    status_code = 400
    error = "Invalid wallet address"


class MissingIdentity(PaymentError):
    """The identity header is absent or empty on a restricted route."""

    status_code = 400
    error = "Missing wallet address"


class LedgerUnavailable(PaymentError):
    """
    A ledger read failed (network error, timeout or malformed response).

    The underlying exception is kept on ``cause`` and is also chained as
    ``__cause__`` when raised with ``raise ... from``.
    """

    status_code = 500
    error = "Payment verification failed"

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause

    def to_dict(self) -> Dict[str, Any]:
        body = super().to_dict()
        if self.cause is not None:
            body["cause"] = f"{type(self.cause).__name__}: {self.cause}"
        return body


class LedgerError(PaymentError):
    """Base class for errors raised by the ledger's own mutation rules."""

    status_code = 400
    error = "Ledger error"


class InvalidAmount(LedgerError):
    error = "Invalid amount"


class Unauthorized(LedgerError):
    status_code = 403
    error = "Unauthorized"


class InsufficientBalance(LedgerError):
    error = "Insufficient balance"


class NothingToWithdraw(LedgerError):
    error = "Nothing to withdraw"
