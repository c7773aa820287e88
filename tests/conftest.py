"""Pytest configuration and fixtures."""

from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from pay_recon.engine import EventReporter, ReconciliationEngine
from pay_recon.models.payment import Provider, TransactionRecord, TransactionStatus
from pay_recon.providers.sandbox import SandboxProviderAdapter
from pay_recon.sinks.memory import MemorySink
from pay_recon.store.memory import InMemoryTransactionStore
from pay_recon.view import UnifiedStatusView


class StepClock:
    """Deterministic UTC clock advancing one second per call."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.now += timedelta(seconds=1)
        return self.now


@pytest.fixture
def seed() -> int:
    """Fixed seed for reproducible tests."""
    return 42


@pytest.fixture
def clock() -> StepClock:
    """Deterministic clock for engine timestamps."""
    return StepClock()


@pytest.fixture
def store() -> InMemoryTransactionStore:
    """Create a fresh store for each test."""
    return InMemoryTransactionStore()


@pytest.fixture
def events() -> MemorySink:
    """Sink capturing every reconciliation event."""
    return MemorySink()


@pytest.fixture
def reporter(events: MemorySink) -> EventReporter:
    """Reporter publishing to the captured events."""
    return EventReporter([events])


@pytest.fixture
def mobile_money(seed: int) -> SandboxProviderAdapter:
    """Seeded mobile-money sandbox provider."""
    return SandboxProviderAdapter(Provider.MOBILE_MONEY, seed=seed)


@pytest.fixture
def card_wallet(seed: int) -> SandboxProviderAdapter:
    """Seeded card/wallet sandbox provider."""
    return SandboxProviderAdapter(Provider.CARD_WALLET, seed=seed)


@pytest.fixture
def engine(
    store: InMemoryTransactionStore,
    mobile_money: SandboxProviderAdapter,
    card_wallet: SandboxProviderAdapter,
    reporter: EventReporter,
    clock: StepClock,
) -> ReconciliationEngine:
    """Engine with both sandbox providers and orphans dropped."""
    return ReconciliationEngine(store, [mobile_money, card_wallet], reporter=reporter, clock=clock)


@pytest.fixture
def view(store: InMemoryTransactionStore, engine: ReconciliationEngine) -> UnifiedStatusView:
    """Unified status view over the engine's store."""
    return UnifiedStatusView(store, engine)


@pytest.fixture
def sample_record() -> TransactionRecord:
    """A freshly initiated mobile-money record."""
    created = datetime(2026, 10, 18, 9, 30, tzinfo=timezone.utc)
    return TransactionRecord(
        transaction_id="txn-test-001",
        correlation_id="ws_CO_181020260930001",
        provider=Provider.MOBILE_MONEY,
        secondary_id="29115-34620561-1",
        amount=Decimal("500.00"),
        currency="KES",
        subject_id="u1",
        reference_id="order-001",
        status=TransactionStatus.CREATED,
        created_at=created,
        updated_at=created,
    )


def build_stk_callback(
    checkout_id: str,
    result_code: int,
    merchant_id: str = "29115-34620561-1",
    amount: int | str | None = None,
    receipt: str | None = None,
    desc: str = "The service request is processed successfully.",
) -> dict:
    """Build an STK push callback body as M-Pesa posts it."""
    callback: dict = {
        "MerchantRequestID": merchant_id,
        "CheckoutRequestID": checkout_id,
        "ResultCode": result_code,
        "ResultDesc": desc,
    }
    items = []
    if amount is not None:
        items.append({"Name": "Amount", "Value": amount})
    if receipt is not None:
        items.append({"Name": "MpesaReceiptNumber", "Value": receipt})
    if items:
        items.append({"Name": "PhoneNumber", "Value": 254708374149})
        callback["CallbackMetadata"] = {"Item": items}
    return {"Body": {"stkCallback": callback}}


@pytest.fixture
def stk_callback() -> Callable[..., dict]:
    """Builder for STK push callback bodies."""
    return build_stk_callback
