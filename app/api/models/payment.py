# app/api/models/payment.py
from pydantic import BaseModel, Field


class PaymentStatusResponse(BaseModel):
    """
    Response model for the payment status endpoint.
    """
    walletAddress: str
    hasPaid: bool
    balance: str = Field(..., description="Prepaid balance in wei")
    balanceFormatted: str = Field(..., description="Prepaid balance in RBTC")
    availableRequests: int
    pricePerRequest: str = Field(..., description="Price per request in wei")
    pricePerRequestFormatted: str = Field(..., description="Price per request in RBTC")
