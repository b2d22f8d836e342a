# app/api/models/data.py
from pydantic import BaseModel, Field
from typing import Optional


class InferenceRequest(BaseModel):
    """Request model for the AI inference endpoint."""
    prompt: Optional[str] = Field(
        default=None,
        description="Prompt to run inference on",
        examples=["Summarize the x402 payment flow"]
    )


class PaymentInfo(BaseModel):
    """Payment details attached by the payment gate to verified requests."""
    walletAddress: str
    balance: str = Field(..., description="Prepaid balance in wei")
    availableRequests: int
    pricePerRequest: str = Field(..., description="Price per request in wei")
