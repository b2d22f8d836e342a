# tests/test_x402_ledger.py
"""
Unit tests for the payment ledger model.
"""
import threading

import pytest

from app.x402.errors import (
    InvalidAmount,
    InvalidIdentity,
    InsufficientBalance,
    NothingToWithdraw,
    Unauthorized,
)
from app.x402.ledger import (
    InMemoryLedger,
    PaymentAccount,
    PaymentReceived,
    FundsWithdrawn,
    PricingPolicy,
    ZERO_ADDRESS,
    is_valid_address,
    normalize_address,
)

OWNER = "0x" + "11" * 20
PAYER = "0x" + "ab" * 20
OTHER = "0x" + "cd" * 20


def create_ledger(price: int = 1000) -> InMemoryLedger:
    return InMemoryLedger(price_per_request=price, owner=OWNER)


class TestAddressValidation:
    """Test wallet address validation."""

    def test_lowercase_address_valid(self):
        assert is_valid_address(PAYER) is True

    def test_uppercase_hex_valid(self):
        """All-uppercase hex digits carry no checksum and are accepted."""
        assert is_valid_address("0x" + "AB" * 20) is True

    def test_missing_prefix_invalid(self):
        assert is_valid_address("ab" * 20) is False

    def test_wrong_length_invalid(self):
        assert is_valid_address("0x" + "ab" * 19) is False
        assert is_valid_address("0x" + "ab" * 21) is False

    def test_non_hex_invalid(self):
        assert is_valid_address("0x" + "zz" * 20) is False

    def test_non_string_invalid(self):
        assert is_valid_address(None) is False
        assert is_valid_address(1234) is False

    def test_bad_checksum_invalid(self):
        """Mixed case must be a valid EIP-55 checksum."""
        assert is_valid_address("0xaBcDeF" + "ab" * 17) is False

    def test_valid_checksum_valid(self):
        assert is_valid_address("0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed") is True

    def test_mixed_case_with_one_flipped_letter_invalid(self):
        assert is_valid_address("0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAeD") is False

    def test_normalize_lowercases(self):
        assert normalize_address("0x" + "AB" * 20) == "0x" + "ab" * 20

    def test_normalize_rejects_invalid(self):
        with pytest.raises(InvalidIdentity):
            normalize_address("not-an-address")


class TestPricingPolicy:
    """Test pricing policy invariants."""

    def test_zero_price_rejected(self):
        with pytest.raises(ValueError):
            PricingPolicy(0)

    def test_negative_price_rejected(self):
        with pytest.raises(ValueError):
            PricingPolicy(-1)

    def test_non_integer_price_rejected(self):
        with pytest.raises(ValueError):
            PricingPolicy(1.5)
        with pytest.raises(ValueError):
            PricingPolicy(True)

    def test_floor_division_property(self):
        """available = floor(balance / price) and has_paid <=> available >= 1."""
        for price in (1, 3, 1000, 10 ** 14):
            policy = PricingPolicy(price)
            for balance in (0, 1, price - 1, price, price + 1, 2 * price, 5 * price + 7):
                available = policy.available_requests(balance)
                assert available == balance // price
                assert policy.has_paid(balance) == (available >= 1)

    def test_immutable(self):
        policy = PricingPolicy(1000)
        with pytest.raises(Exception):
            policy.price_per_request = 1


class TestInMemoryLedgerConstruction:
    """Test ledger construction."""

    def test_invalid_price_fails(self):
        with pytest.raises(ValueError):
            InMemoryLedger(price_per_request=0, owner=OWNER)

    def test_default_address(self):
        assert create_ledger().address == ZERO_ADDRESS

    def test_owner_normalized(self):
        ledger = InMemoryLedger(price_per_request=1, owner="0x" + "AA" * 20)
        assert ledger.owner == "0x" + "aa" * 20


class TestPay:
    """Test the payment acceptance operation."""

    def test_unknown_identity_has_zero_balance(self):
        ledger = create_ledger()
        assert ledger.account(PAYER) == PaymentAccount(identity=PAYER, balance=0)

    def test_pay_credits_balance(self):
        ledger = create_ledger()
        event = ledger.pay(PAYER, 2500)

        assert event == PaymentReceived(payer=PAYER, amount=2500, new_balance=2500)
        assert ledger.account(PAYER).balance == 2500
        assert ledger.held_value == 2500

    def test_pay_accumulates(self):
        ledger = create_ledger()
        ledger.pay(PAYER, 100)
        event = ledger.pay(PAYER, 150)

        assert event.new_balance == 250
        assert ledger.events == [
            PaymentReceived(payer=PAYER, amount=100, new_balance=100),
            PaymentReceived(payer=PAYER, amount=150, new_balance=250),
        ]

    def test_pay_is_case_insensitive(self):
        ledger = create_ledger()
        ledger.pay("0x" + "AB" * 20, 100)
        assert ledger.account(PAYER).balance == 100

    @pytest.mark.parametrize("amount", [0, -1, 1.5, True])
    def test_pay_rejects_invalid_amount(self, amount):
        ledger = create_ledger()
        with pytest.raises(InvalidAmount):
            ledger.pay(PAYER, amount)
        assert ledger.account(PAYER).balance == 0
        assert ledger.events == []

    def test_pay_rejects_invalid_identity(self):
        ledger = create_ledger()
        with pytest.raises(InvalidIdentity):
            ledger.pay("0x1234", 100)

    def test_subscribers_receive_events(self):
        ledger = create_ledger()
        received = []
        ledger.subscribe(received.append)

        ledger.pay(PAYER, 10)

        assert received == [PaymentReceived(payer=PAYER, amount=10, new_balance=10)]

    def test_subscriber_can_call_back_into_ledger(self):
        """A listener may mutate the ledger from inside its callback."""
        ledger = create_ledger()
        deducted = []

        def on_event(event):
            if isinstance(event, PaymentReceived):
                deducted.append(ledger.deduct_payment(OWNER, event.payer, 0))

        ledger.subscribe(on_event)
        worker = threading.Thread(target=ledger.pay, args=(PAYER, 5), daemon=True)
        worker.start()
        worker.join(timeout=2)

        assert not worker.is_alive()
        assert deducted == [5]
        assert ledger.account(PAYER).balance == 5

    def test_subscriber_sees_committed_withdrawal(self):
        ledger = create_ledger()
        ledger.pay(PAYER, 1000)
        held = []
        ledger.subscribe(lambda event: held.append(ledger.held_value))

        ledger.withdraw(OWNER)

        assert held == [0]

    def test_balance_sequence_non_decreasing(self):
        ledger = create_ledger()
        balances = []
        for amount in (1, 999, 5, 1000, 3):
            balances.append(ledger.pay(PAYER, amount).new_balance)
        assert balances == sorted(balances)


class TestDeductPayment:
    """Test the owner-restricted deduction operation."""

    def test_owner_deducts(self):
        ledger = create_ledger()
        ledger.pay(PAYER, 2500)

        assert ledger.deduct_payment(OWNER, PAYER, 1000) == 1500
        assert ledger.account(PAYER).balance == 1500

    def test_deduction_keeps_held_value(self):
        """Deductions move no funds; the contract still holds the payment."""
        ledger = create_ledger()
        ledger.pay(PAYER, 2500)
        ledger.deduct_payment(OWNER, PAYER, 1000)
        assert ledger.held_value == 2500

    def test_non_owner_unauthorized(self):
        ledger = create_ledger()
        ledger.pay(PAYER, 2500)

        with pytest.raises(Unauthorized):
            ledger.deduct_payment(OTHER, PAYER, 1000)

        assert ledger.account(PAYER).balance == 2500

    def test_payer_cannot_deduct_own_balance(self):
        ledger = create_ledger()
        ledger.pay(PAYER, 2500)
        with pytest.raises(Unauthorized):
            ledger.deduct_payment(PAYER, PAYER, 1000)

    def test_insufficient_balance(self):
        ledger = create_ledger()
        ledger.pay(PAYER, 500)

        with pytest.raises(InsufficientBalance):
            ledger.deduct_payment(OWNER, PAYER, 501)

        assert ledger.account(PAYER).balance == 500

    def test_deduct_entire_balance(self):
        ledger = create_ledger()
        ledger.pay(PAYER, 500)
        assert ledger.deduct_payment(OWNER, PAYER, 500) == 0

    def test_negative_amount_rejected(self):
        ledger = create_ledger()
        ledger.pay(PAYER, 500)
        with pytest.raises(InvalidAmount):
            ledger.deduct_payment(OWNER, PAYER, -1)
        assert ledger.account(PAYER).balance == 500

    def test_balance_sequence_non_increasing_and_never_negative(self):
        ledger = create_ledger()
        ledger.pay(PAYER, 3000)
        balances = [3000]
        for amount in (1000, 0, 999, 1001):
            balances.append(ledger.deduct_payment(OWNER, PAYER, amount))
        with pytest.raises(InsufficientBalance):
            ledger.deduct_payment(OWNER, PAYER, 1)

        assert balances == sorted(balances, reverse=True)
        assert ledger.account(PAYER).balance == 0


class TestWithdraw:
    """Test the owner-restricted withdrawal."""

    def test_owner_withdraws_held_value(self):
        ledger = create_ledger()
        ledger.pay(PAYER, 1000)
        ledger.pay(OTHER, 500)

        event = ledger.withdraw(OWNER)

        assert event == FundsWithdrawn(to=OWNER, amount=1500)
        assert ledger.held_value == 0
        assert ledger.events[-1] == event

    def test_withdraw_leaves_account_balances(self):
        ledger = create_ledger()
        ledger.pay(PAYER, 1000)
        ledger.withdraw(OWNER)
        assert ledger.account(PAYER).balance == 1000

    def test_nothing_to_withdraw(self):
        ledger = create_ledger()
        with pytest.raises(NothingToWithdraw):
            ledger.withdraw(OWNER)

    def test_non_owner_unauthorized(self):
        ledger = create_ledger()
        ledger.pay(PAYER, 1000)
        with pytest.raises(Unauthorized):
            ledger.withdraw(PAYER)
        assert ledger.held_value == 1000


class TestLedgerReads:
    """Test the read interface used by the verifier."""

    @pytest.mark.asyncio
    async def test_unpaid_reads(self):
        ledger = create_ledger(price=1000)

        assert await ledger.has_paid(PAYER) is False
        assert await ledger.get_payment_balance(PAYER) == 0
        assert await ledger.get_available_requests(PAYER) == 0
        assert await ledger.price_per_request() == 1000

    @pytest.mark.asyncio
    async def test_paid_reads(self):
        """X pays 2500 at price 1000 -> two requests available."""
        ledger = create_ledger(price=1000)
        ledger.pay(PAYER, 2500)

        assert await ledger.has_paid(PAYER) is True
        assert await ledger.get_payment_balance(PAYER) == 2500
        assert await ledger.get_available_requests(PAYER) == 2

    @pytest.mark.asyncio
    async def test_deduction_reduces_available_requests(self):
        ledger = create_ledger(price=1000)
        ledger.pay(PAYER, 2500)
        ledger.deduct_payment(OWNER, PAYER, 1000)

        assert await ledger.get_available_requests(PAYER) == 1

    @pytest.mark.asyncio
    async def test_below_price_is_unpaid(self):
        ledger = create_ledger(price=1000)
        ledger.pay(PAYER, 999)

        assert await ledger.has_paid(PAYER) is False
        assert await ledger.get_available_requests(PAYER) == 0

    @pytest.mark.asyncio
    async def test_contract_balance(self):
        ledger = create_ledger()
        ledger.pay(PAYER, 700)
        assert await ledger.get_contract_balance() == 700
