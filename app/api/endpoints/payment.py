# app/api/endpoints/payment.py
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
import logging

from app.api.models.payment import PaymentStatusResponse
from app.x402.errors import InvalidIdentity, LedgerUnavailable, MissingIdentity
from app.x402.instructions import format_rbtc
from app.x402.middleware import get_wallet_address

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get(
    "/payment/status",
    response_model=PaymentStatusResponse,
    responses={400: {"description": "Missing or invalid wallet address"}, 500: {"description": "Ledger unavailable"}},
)
async def get_payment_status(request: Request):
    """
    Check a wallet's payment status without calling a paid endpoint.

    This endpoint is not gated: it reports the balance whether or not the
    wallet has paid.

    Returns:
        PaymentStatusResponse: Balance, available requests and price

    Raises:
        400 if the x-wallet-address header is missing or malformed
        500 if the ledger cannot be read
    """
    try:
        wallet_address = get_wallet_address(request, request.app.state.identity_header)
        result = await request.app.state.verifier.verify(wallet_address)
    except (MissingIdentity, InvalidIdentity) as e:
        logger.warning(f"Payment status request rejected: {e.message}")
        return JSONResponse(status_code=e.status_code, content=e.to_dict())
    except LedgerUnavailable as e:
        logger.error(f"Failed to check payment status: {e}")
        body = e.to_dict()
        body["error"] = "Failed to check payment status"
        return JSONResponse(status_code=500, content=body)

    logger.info(f"Payment status for {wallet_address}: hasPaid={result.has_paid}")
    return PaymentStatusResponse(
        walletAddress=result.identity,
        hasPaid=result.has_paid,
        balance=str(result.balance),
        balanceFormatted=format_rbtc(result.balance),
        availableRequests=result.available_requests,
        pricePerRequest=str(result.price_per_request),
        pricePerRequestFormatted=format_rbtc(result.price_per_request),
    )
