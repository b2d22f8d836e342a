# app/x402/verifier.py
"""
On-chain payment verification.

``PaymentVerifier.verify`` validates the caller's address locally, then reads
four contract views concurrently and assembles a ``VerificationResult``.

The four reads are independent queries, not one atomic snapshot. A payment
or deduction committing between them can yield a result whose fields
disagree (for example ``has_paid=True`` next to a balance that no longer
covers a request). The first failing read fails the whole verification; the
remaining reads are left to finish on their own.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from app.x402.errors import InvalidIdentity, LedgerUnavailable
from app.x402.ledger import PaymentLedger, is_valid_address

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VerificationResult:
    """Payment status of one identity as read from the ledger."""
    identity: str
    balance: int
    price_per_request: int
    has_paid: bool
    available_requests: int

    def to_payment_info(self) -> Dict[str, Any]:
        """Payment info attached to the request for downstream handlers."""
        return {
            "walletAddress": self.identity,
            "balance": str(self.balance),
            "availableRequests": self.available_requests,
            "pricePerRequest": str(self.price_per_request),
        }


class PaymentVerifier:
    """
    Verifies payment status against a ``PaymentLedger``.

    No retries are attempted; a failed or timed-out read is reported as
    ``LedgerUnavailable`` and never as an unpaid result.
    """

    def __init__(self, ledger: PaymentLedger, timeout: Optional[float] = None):
        self.ledger = ledger
        self.timeout = timeout

    async def verify(self, identity: str, timeout: Optional[float] = None) -> VerificationResult:
        """
        Read the payment status of ``identity``.

        Args:
            identity: 0x-prefixed wallet address
            timeout: Seconds to wait for all reads. Falls back to the
                verifier's default; ``None`` waits indefinitely.

        Raises:
            InvalidIdentity: If the address is malformed (no ledger call made)
            LedgerUnavailable: If any read fails or the timeout expires
        """
        if not is_valid_address(identity):
            raise InvalidIdentity("Invalid wallet address format")

        if timeout is None:
            timeout = self.timeout

        reads = asyncio.gather(
            self.ledger.has_paid(identity),
            self.ledger.get_payment_balance(identity),
            self.ledger.get_available_requests(identity),
            self.ledger.price_per_request(),
        )

        try:
            has_paid, balance, available_requests, price_per_request = await asyncio.wait_for(
                reads, timeout=timeout
            )
        except asyncio.TimeoutError as e:
            logger.error(f"Ledger read timed out after {timeout}s for {identity}")
            raise LedgerUnavailable(f"Ledger read timed out after {timeout}s", cause=e) from e
        except Exception as e:
            logger.error(f"Error verifying payment for {identity}: {e}")
            raise LedgerUnavailable(
                f"Unable to verify payment status: {e}", cause=e
            ) from e

        return VerificationResult(
            identity=identity,
            balance=int(balance),
            price_per_request=int(price_per_request),
            has_paid=bool(has_paid),
            available_requests=int(available_requests),
        )
