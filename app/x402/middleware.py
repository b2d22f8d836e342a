# app/x402/middleware.py
"""
FastAPI middleware gating paid routes behind an on-chain balance.

For every request this middleware:
1. Looks up (method, path) in the paid route table
2. Passes unrestricted routes straight through
3. Reads the caller's wallet address from the x-wallet-address header
4. Verifies the prepaid balance on the PayPerAPI contract
5. Returns 402 Payment Required with payment instructions when unpaid,
   or attaches the payment info to ``request.state`` and calls the handler

A single qualifying balance grants access until the contract owner deducts
from it: nothing here consumes balance per request (see
``deduct_payment_after_request``).
"""
import logging
from typing import Any, Callable, Dict, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

from app.core.config import settings
from app.x402.errors import InvalidIdentity, LedgerUnavailable, MissingIdentity, PaymentError
from app.x402.instructions import InstructionGenerator, format_rbtc
from app.x402.routes import RoutePolicyTable
from app.x402.verifier import PaymentVerifier, VerificationResult

logger = logging.getLogger(__name__)

PAYMENT_REQUIRED_STATUS = 402


def get_wallet_address(request: Request, header_name: Optional[str] = None) -> str:
    """
    Extract the caller's wallet address from the identity header.

    Raises:
        MissingIdentity: If the header is absent or blank
    """
    header_name = header_name or settings.X402_WALLET_HEADER
    wallet_address = (request.headers.get(header_name) or "").strip()
    if not wallet_address:
        raise MissingIdentity(
            f"Please include your wallet address in the {header_name} header"
        )
    return wallet_address


def create_error_response(error: PaymentError) -> JSONResponse:
    """Render a payment error as ``{error, message}`` with its status code."""
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


def create_402_body(
    instructions: Dict[str, Any],
    result: VerificationResult,
) -> Dict[str, Any]:
    """
    Build the x402 Payment Required body.

    ``availableRequests`` is always reported as 0 here: an unpaid balance is
    below one request's price by definition.
    """
    return {
        "status": PAYMENT_REQUIRED_STATUS,
        "message": "Payment Required",
        **instructions,
        "currentStatus": {
            "walletAddress": result.identity,
            "balance": str(result.balance),
            "balanceFormatted": format_rbtc(result.balance),
            "hasPaid": False,
            "availableRequests": 0,
        },
    }


def create_402_response(
    instructions: Dict[str, Any],
    result: VerificationResult,
) -> JSONResponse:
    return JSONResponse(
        status_code=PAYMENT_REQUIRED_STATUS,
        content=create_402_body(instructions, result),
    )


async def deduct_payment_after_request(wallet_address: str, amount: int) -> None:
    """
    Placeholder for per-request balance consumption.

    Deducting requires the contract owner's key. The gate never calls this,
    so one payment covering a single request grants unlimited access until
    the owner deducts manually.
    """
    logger.info(f"[Optional] Would deduct {format_rbtc(amount)} RBTC from {wallet_address}")


class RouteGateMiddleware(BaseHTTPMiddleware):
    """
    Payment gate for FastAPI.

    Holds no per-request state; the route table is fixed at construction.
    When X402_ENABLED=false, all requests pass through unchanged.
    """

    def __init__(
        self,
        app,
        routes: RoutePolicyTable,
        verifier: PaymentVerifier,
        instruction_generator: Optional[InstructionGenerator] = None,
        identity_header: Optional[str] = None,
    ):
        super().__init__(app)
        self.routes = routes
        self.verifier = verifier
        self.instruction_generator = instruction_generator or InstructionGenerator()
        self.identity_header = identity_header or settings.X402_WALLET_HEADER

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Response]
    ) -> Response:
        # Skip if the gate is disabled
        if not settings.X402_ENABLED:
            return await call_next(request)

        route_policy = self.routes.lookup(request.method, request.url.path)
        if route_policy is None:
            return await call_next(request)

        logger.info(f"x402: Processing protected request: {request.method} {request.url.path}")

        try:
            wallet_address = get_wallet_address(request, self.identity_header)
        except MissingIdentity as e:
            logger.warning(f"x402: No wallet address header on {request.method} {request.url.path}")
            return create_error_response(e)

        try:
            result = await self.verifier.verify(wallet_address)
        except InvalidIdentity as e:
            logger.warning(f"x402: Invalid wallet address {wallet_address!r}")
            return create_error_response(e)
        except LedgerUnavailable as e:
            logger.error(f"x402: Payment verification error for {wallet_address}: {e}")
            return create_error_response(e)

        if not result.has_paid:
            logger.info(
                f"x402: {wallet_address} has not paid (balance {result.balance} wei), returning 402"
            )
            instructions = self.instruction_generator.render(result.price_per_request)
            return create_402_response(instructions, result)

        logger.info(
            f"x402: Payment verified for {wallet_address} "
            f"({result.available_requests} request(s) available)"
        )
        request.state.payment_info = result.to_payment_info()
        request.state.route_policy = route_policy

        return await call_next(request)
