# app/x402/ledger.py
"""
Payment ledger contract and reference model.

The ledger is the authoritative store of prepaid balances. On Rootstock it is
the PayPerAPI smart contract; this module defines:

- the read interface the payment gate depends on (``PaymentLedger``)
- the account, pricing and event value objects
- ``InMemoryLedger``, a local model of the contract's mutation rules used for
  development (``LEDGER_BACKEND=memory``) and tests

Mutation rules follow the deployed contract, including its gaps: ``withdraw``
moves the held value to the owner without touching per-account balances, and
nothing in the gating path ever calls ``deduct_payment``.
"""
import logging
import re
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Union

from web3 import Web3

from app.x402.errors import (
    InvalidAmount,
    InvalidIdentity,
    InsufficientBalance,
    NothingToWithdraw,
    Unauthorized,
)

logger = logging.getLogger(__name__)

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

_ADDRESS_PATTERN = re.compile(r"^0x[0-9a-fA-F]{40}$")


def is_valid_address(address: object) -> bool:
    """
    Check that ``address`` is a 0x-prefixed 20-byte hex address.

    Mixed-case addresses must carry a valid EIP-55 checksum.
    """
    if not isinstance(address, str) or not _ADDRESS_PATTERN.match(address):
        return False
    digits = address[2:]
    if digits == digits.lower() or digits == digits.upper():
        return True
    return Web3.is_checksum_address(address)


def normalize_address(address: str) -> str:
    """Validate an address and return its lower-case form."""
    if not is_valid_address(address):
        raise InvalidIdentity(f"Invalid wallet address format: {address!r}")
    return address.lower()


@dataclass(frozen=True)
class PricingPolicy:
    """Fixed price per request, in wei. Immutable for the ledger's lifetime."""
    price_per_request: int

    def __post_init__(self):
        if isinstance(self.price_per_request, bool) or not isinstance(self.price_per_request, int):
            raise ValueError("price_per_request must be an integer")
        if self.price_per_request <= 0:
            raise ValueError("price_per_request must be positive")

    def available_requests(self, balance: int) -> int:
        return balance // self.price_per_request

    def has_paid(self, balance: int) -> bool:
        return balance >= self.price_per_request


@dataclass(frozen=True)
class PaymentAccount:
    """Snapshot of one payer's prepaid balance."""
    identity: str
    balance: int = 0


@dataclass(frozen=True)
class PaymentReceived:
    payer: str
    amount: int
    new_balance: int


@dataclass(frozen=True)
class FundsWithdrawn:
    to: str
    amount: int


LedgerEvent = Union[PaymentReceived, FundsWithdrawn]


class PaymentLedger(ABC):
    """
    Read interface of the payment ledger used by the verifier.

    Every call is an independent read; two calls may observe different
    ledger states if a payment or deduction commits in between.
    """

    address: str

    @abstractmethod
    async def has_paid(self, payer: str) -> bool:
        ...

    @abstractmethod
    async def get_payment_balance(self, payer: str) -> int:
        ...

    @abstractmethod
    async def get_available_requests(self, payer: str) -> int:
        ...

    @abstractmethod
    async def price_per_request(self) -> int:
        ...

    @abstractmethod
    async def get_contract_balance(self) -> int:
        ...

    async def aclose(self) -> None:
        """Release any network resources held by the ledger client."""
        return None


@dataclass
class _LedgerState:
    balances: Dict[str, int] = field(default_factory=dict)
    held_value: int = 0
    lock: threading.Lock = field(default_factory=threading.Lock)


class InMemoryLedger(PaymentLedger):
    """
    Local model of the PayPerAPI contract.

    Thread-safe: each mutation is applied under a single lock, which stands in
    for the chain's transaction ordering.
    """

    def __init__(
        self,
        price_per_request: int,
        owner: str,
        address: str = ZERO_ADDRESS,
    ):
        self.pricing = PricingPolicy(price_per_request)
        self.owner = normalize_address(owner.lower())
        self.address = normalize_address(address.lower())
        self.events: List[LedgerEvent] = []
        self._listeners: List[Callable[[LedgerEvent], None]] = []
        self._state = _LedgerState()

    def subscribe(self, listener: Callable[[LedgerEvent], None]) -> None:
        """Register a callback invoked for every emitted event."""
        self._listeners.append(listener)

    def _notify(self, event: LedgerEvent) -> None:
        # Called after the state lock is released so listeners may call back in
        for listener in self._listeners:
            listener(event)

    def _balance_of(self, payer: str) -> int:
        return self._state.balances.get(normalize_address(payer), 0)

    def account(self, payer: str) -> PaymentAccount:
        """Return the payer's account; unknown payers have a zero balance."""
        key = normalize_address(payer)
        return PaymentAccount(identity=key, balance=self._state.balances.get(key, 0))

    @property
    def held_value(self) -> int:
        return self._state.held_value

    # --- state-mutating operations ---

    def pay(self, payer: str, amount: int) -> PaymentReceived:
        """Credit ``amount`` wei to ``payer``. Repeated calls accumulate."""
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise InvalidAmount("Payment amount must be greater than 0")

        key = normalize_address(payer)
        with self._state.lock:
            new_balance = self._state.balances.get(key, 0) + amount
            self._state.balances[key] = new_balance
            self._state.held_value += amount
            event = PaymentReceived(payer=key, amount=amount, new_balance=new_balance)
            self.events.append(event)

        self._notify(event)

        logger.info(f"Payment received from {key}: {amount} wei (balance {new_balance})")
        return event

    def deduct_payment(self, caller: str, payer: str, amount: int) -> int:
        """
        Owner-only: decrease ``payer``'s balance by ``amount`` wei.

        Returns the new balance.
        """
        if normalize_address(caller) != self.owner:
            raise Unauthorized("Only the contract owner can deduct payments")
        if isinstance(amount, bool) or not isinstance(amount, int) or amount < 0:
            raise InvalidAmount("Deduction amount must be a non-negative integer")

        key = normalize_address(payer)
        with self._state.lock:
            balance = self._state.balances.get(key, 0)
            if amount > balance:
                raise InsufficientBalance(
                    f"Cannot deduct {amount} wei from {key}: balance is {balance} wei"
                )
            self._state.balances[key] = balance - amount
            new_balance = balance - amount

        logger.info(f"Deducted {amount} wei from {key} (balance {new_balance})")
        return new_balance

    def withdraw(self, caller: str) -> FundsWithdrawn:
        """Owner-only: transfer the entire held value to the owner."""
        if normalize_address(caller) != self.owner:
            raise Unauthorized("Only the contract owner can withdraw")

        with self._state.lock:
            amount = self._state.held_value
            if amount == 0:
                raise NothingToWithdraw("Contract holds no funds")
            self._state.held_value = 0
            event = FundsWithdrawn(to=self.owner, amount=amount)
            self.events.append(event)

        self._notify(event)

        logger.info(f"Withdrew {amount} wei to owner {self.owner}")
        return event

    # --- reads ---

    async def has_paid(self, payer: str) -> bool:
        return self.pricing.has_paid(self._balance_of(payer))

    async def get_payment_balance(self, payer: str) -> int:
        return self._balance_of(payer)

    async def get_available_requests(self, payer: str) -> int:
        return self.pricing.available_requests(self._balance_of(payer))

    async def price_per_request(self) -> int:
        return self.pricing.price_per_request

    async def get_contract_balance(self) -> int:
        return self._state.held_value
