# app/main.py
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exception_handlers import http_exception_handler
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
import logging
import uvicorn

from app.core.config import settings
from app.core.version import VERSION
from app.api.endpoints import data, payment
from app.services.rootstock_rpc import RootstockLedgerClient
from app.x402.instructions import InstructionGenerator, format_rbtc
from app.x402.ledger import InMemoryLedger, PaymentLedger
from app.x402.middleware import RouteGateMiddleware
from app.x402.routes import RouteConfig, RoutePolicyTable
from app.x402.verifier import PaymentVerifier

# Configure basic logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# Paid routes, declared up front
PAYMENT_ROUTES = {
    "GET /api/data": {
        "accepts": ["rootstock"],
        "description": "Protected data API",
    },
    "GET /api/weather": {
        "accepts": ["rootstock"],
        "description": "Weather data API",
    },
    "POST /api/ai/infer": {
        "accepts": ["rootstock"],
        "description": "AI inference service",
    },
}


def build_ledger() -> PaymentLedger:
    """Create the ledger backend selected by LEDGER_BACKEND."""
    if settings.LEDGER_BACKEND == "memory":
        logger.warning("Using in-memory ledger - balances are not persisted")
        return InMemoryLedger(
            price_per_request=settings.LEDGER_MEMORY_PRICE_WEI,
            owner=settings.LEDGER_OWNER_ADDRESS,
            address=settings.CONTRACT_ADDRESS,
        )

    return RootstockLedgerClient(
        rpc_url=str(settings.ROOTSTOCK_TESTNET_RPC_URL),
        contract_address=settings.CONTRACT_ADDRESS,
        timeout=settings.X402_LEDGER_TIMEOUT_SECONDS,
    )


def create_app(
    route_config: Optional[RouteConfig] = None,
    ledger: Optional[PaymentLedger] = None,
    identity_header: Optional[str] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        route_config: Paid route declarations (defaults to PAYMENT_ROUTES)
        ledger: Ledger to verify payments against (defaults to build_ledger())
        identity_header: Wallet address header shared by the gate and the
            status route (defaults to X402_WALLET_HEADER)
    """
    routes = RoutePolicyTable.from_config(PAYMENT_ROUTES if route_config is None else route_config)
    ledger = ledger if ledger is not None else build_ledger()
    verifier = PaymentVerifier(ledger, timeout=settings.X402_LEDGER_TIMEOUT_SECONDS)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await ledger.aclose()

    app = FastAPI(title=settings.PROJECT_NAME, version=VERSION, lifespan=lifespan)
    app.state.ledger = ledger
    app.state.verifier = verifier
    app.state.routes = routes
    app.state.identity_header = identity_header or settings.X402_WALLET_HEADER

    app.add_middleware(
        RouteGateMiddleware,
        routes=routes,
        verifier=verifier,
        instruction_generator=InstructionGenerator(contract_address=ledger.address),
        identity_header=app.state.identity_header,
    )

    app.include_router(data.router, prefix="/api", tags=["paid"])
    app.include_router(payment.router, prefix="/api", tags=["payment"])

    @app.get("/health", summary="Health Check", tags=["default"])
    async def health():
        """ Health check endpoint (no payment required). """
        logger.info("Health endpoint '/health' accessed.")
        body = {
            "status": "ok",
            "message": "x402 Pay-Per-API Server is running",
            "contract": ledger.address,
            "network": settings.CHAIN_NAME,
            "chainId": settings.CHAIN_ID,
            "version": VERSION,
        }
        try:
            body["contractBalance"] = format_rbtc(await ledger.get_contract_balance())
        except Exception as e:
            # Health stays up when the RPC node is unreachable
            logger.warning(f"Failed to fetch contract balance: {e}")
            body["contractBalance"] = f"Failed to fetch contract balance: {e}"
        return body

    @app.exception_handler(StarletteHTTPException)
    async def not_found_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404 and exc.detail == "Not Found":
            return JSONResponse(
                status_code=404,
                content={
                    "error": "Not found",
                    "message": f"Route {request.method} {request.url.path} not found",
                },
            )
        return await http_exception_handler(request, exc)

    @app.exception_handler(Exception)
    async def server_error_handler(request: Request, exc: Exception):
        logger.error(f"Server error: {exc}")
        return JSONResponse(
            status_code=500,
            content={"error": "Internal server error", "message": str(exc)},
        )

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=settings.PORT)
