# app/api/endpoints/data.py
"""
Example paid endpoints.

These handlers only run after the payment gate has verified the caller's
balance; they echo the payment info the gate attached to the request.
"""
import logging
import random
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Body, Request
from fastapi.responses import JSONResponse

from app.api.models.data import InferenceRequest, PaymentInfo

logger = logging.getLogger(__name__)
router = APIRouter()


def _payment_info(request: Request) -> Optional[PaymentInfo]:
    # Absent when the gate is disabled or the route is not configured as paid
    payment_info = getattr(request.state, "payment_info", None)
    return PaymentInfo(**payment_info) if payment_info else None


@router.get("/data")
async def get_protected_data(request: Request):
    """Return protected example data."""
    payment_info = _payment_info(request)

    payment = None
    if payment_info:
        payment = {
            "walletAddress": payment_info.walletAddress,
            "availableRequests": payment_info.availableRequests,
            "balanceRemaining": payment_info.balance,
            "message": f"You have {payment_info.availableRequests} request(s) remaining",
        }

    return {
        "success": True,
        "message": "Payment verified - here is your data",
        "data": {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "value": random.random() * 100,
            "description": "This is protected API data that requires payment",
        },
        "payment": payment,
    }


@router.get("/weather")
async def get_weather(request: Request):
    """Return simulated weather data."""
    return {
        "success": True,
        "weather": {
            "location": "San Francisco",
            "temperature": "72°F",
            "condition": "Sunny",
            "humidity": "65%",
        },
        "payment": _payment_info(request),
    }


@router.post("/ai/infer")
async def run_inference(request: Request, payload: Optional[InferenceRequest] = Body(default=None)):
    """Run simulated AI inference on a prompt."""
    if payload is None or not payload.prompt:
        logger.warning("Inference request without prompt")
        return JSONResponse(status_code=400, content={"error": "Missing prompt in request body"})

    return {
        "success": True,
        "inference": {
            "prompt": payload.prompt,
            "response": f'AI response to: "{payload.prompt}"',
            "model": "example-model",
            "tokens": 150,
        },
        "payment": _payment_info(request),
    }
