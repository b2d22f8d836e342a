# app/services/rootstock_rpc.py
"""
Read-only client for the PayPerAPI contract on Rootstock.

Contract views are read with ``eth_call`` over JSON-RPC. Each method issues
exactly one HTTP round trip, so concurrent callers get independent (and
possibly inconsistent) snapshots of the contract state.
"""
import itertools
import logging
from typing import Any, List, Optional, Sequence

import httpx
from eth_abi import decode, encode
from web3 import Web3

from app.x402.ledger import PaymentLedger, normalize_address

logger = logging.getLogger(__name__)


class RpcError(Exception):
    """The JSON-RPC endpoint returned an error or an unusable payload."""


def function_selector(signature: str) -> str:
    """Return the 4-byte selector for a function signature as hex (no 0x)."""
    return bytes(Web3.keccak(text=signature)[:4]).hex()


def encode_call(signature: str, arg_types: Sequence[str] = (), args: Sequence[Any] = ()) -> str:
    """ABI-encode a contract call into ``eth_call`` data."""
    data = function_selector(signature)
    if arg_types:
        data += encode(list(arg_types), list(args)).hex()
    return "0x" + data


def decode_result(output_type: str, result: Any) -> Any:
    """Decode a single ABI return value from an ``eth_call`` hex result."""
    if not isinstance(result, str) or not result.startswith("0x"):
        raise RpcError(f"Invalid eth_call result: {result!r}")

    raw = bytes.fromhex(result[2:])
    if not raw:
        # Calls to an address without code return empty data
        raise RpcError("Empty eth_call result (is the contract deployed?)")

    return decode([output_type], raw)[0]


class RootstockLedgerClient(PaymentLedger):
    """
    ``PaymentLedger`` backed by the deployed contract.

    The ``httpx.AsyncClient`` is created lazily on first use unless one is
    injected.
    """

    def __init__(
        self,
        rpc_url: str,
        contract_address: str,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.rpc_url = rpc_url
        self.address = normalize_address(contract_address.lower())
        self.timeout = timeout
        self._client = client
        self._ids = itertools.count(1)

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _rpc(self, method: str, params: List[Any]) -> Any:
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params,
            "id": next(self._ids),
        }
        response = await self.client.post(self.rpc_url, json=payload)
        response.raise_for_status()

        body = response.json()
        if "error" in body:
            raise RpcError(f"RPC error: {body['error']}")
        if "result" not in body:
            raise RpcError("Invalid RPC response: missing 'result' field")
        return body["result"]

    async def _call(
        self,
        signature: str,
        output_type: str,
        arg_types: Sequence[str] = (),
        args: Sequence[Any] = (),
    ) -> Any:
        data = encode_call(signature, arg_types, args)
        result = await self._rpc("eth_call", [{"to": self.address, "data": data}, "latest"])
        value = decode_result(output_type, result)
        logger.debug(f"eth_call {signature} -> {value}")
        return value

    async def has_paid(self, payer: str) -> bool:
        return await self._call("hasPaid(address)", "bool", ["address"], [normalize_address(payer)])

    async def get_payment_balance(self, payer: str) -> int:
        return await self._call("getPaymentBalance(address)", "uint256", ["address"], [normalize_address(payer)])

    async def get_available_requests(self, payer: str) -> int:
        return await self._call("getAvailableRequests(address)", "uint256", ["address"], [normalize_address(payer)])

    async def price_per_request(self) -> int:
        return await self._call("pricePerRequest()", "uint256")

    async def get_contract_balance(self) -> int:
        return await self._call("getContractBalance()", "uint256")
