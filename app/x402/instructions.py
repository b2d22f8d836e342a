# app/x402/instructions.py
"""
x402 payment instructions for HTTP 402 responses.

Renders the machine-readable "how to pay" payload a client needs to top up
its balance on the PayPerAPI contract. Rendering is a pure function of the
price: the same price always produces the same payload.
"""
import copy
from typing import Any, Dict, List, Optional

from app.core.config import settings

# x402 metadata
X402_STANDARD = "x402"
X402_VERSION = "1.0"
X402_ENDPOINT = "PayPerAPI on Rootstock"

RBTC_DECIMALS = 18

PAY_FUNCTION_ABI: List[Dict[str, Any]] = [
    {
        "inputs": [],
        "name": "pay",
        "outputs": [],
        "stateMutability": "payable",
        "type": "function",
    },
]


def format_rbtc(wei: int, decimals: int = RBTC_DECIMALS) -> str:
    """
    Format a wei amount as a decimal RBTC string.

    Trailing zeros of the fractional part are dropped, and the fractional
    part is omitted entirely for whole amounts: 10**18 -> "1",
    10**14 -> "0.0001", 0 -> "0".
    """
    wei = int(wei)
    sign = "-" if wei < 0 else ""
    whole, fraction = divmod(abs(wei), 10 ** decimals)
    fraction_str = str(fraction).rjust(decimals, "0").rstrip("0")
    if fraction_str:
        return f"{sign}{whole}.{fraction_str}"
    return f"{sign}{whole}"


class InstructionGenerator:
    """Builds the x402 ``payment``/``metadata`` sections for a given price."""

    def __init__(
        self,
        contract_address: Optional[str] = None,
        chain_id: Optional[int] = None,
        chain_name: Optional[str] = None,
        currency: Optional[str] = None,
        endpoint: str = X402_ENDPOINT,
    ):
        self.contract_address = (contract_address or settings.CONTRACT_ADDRESS).lower()
        self.chain_id = chain_id if chain_id is not None else settings.CHAIN_ID
        self.chain_name = chain_name or settings.CHAIN_NAME
        self.currency = currency or settings.CHAIN_CURRENCY
        self.endpoint = endpoint

    def render(self, price_per_request: int) -> Dict[str, Any]:
        """
        Render payment instructions for ``price_per_request`` wei.

        Returns:
            Dict with ``payment`` and ``metadata`` keys, ready to be merged
            into a 402 response body.
        """
        formatted = format_rbtc(price_per_request)

        return {
            "payment": {
                "network": {
                    "chainId": self.chain_id,
                    "name": self.chain_name,
                    "currency": self.currency,
                },
                "contract": {
                    "address": self.contract_address,
                    "function": "pay",
                    "abi": copy.deepcopy(PAY_FUNCTION_ABI),
                },
                "amount": {
                    "value": str(price_per_request),
                    "formatted": formatted,
                    "currency": self.currency,
                },
                "instructions": {
                    "description": f"Send {self.currency} payment to the PayPerAPI contract",
                    "steps": [
                        "Call the pay() function on the contract",
                        f"Send at least {formatted} {self.currency}",
                        "Wait for transaction confirmation",
                        "Retry your API request",
                    ],
                },
            },
            "metadata": {
                "standard": X402_STANDARD,
                "version": X402_VERSION,
                "endpoint": self.endpoint,
            },
        }
