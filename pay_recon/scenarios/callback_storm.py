"""Callback storm scenario: concurrent, duplicated and conflicting provider traffic."""

import logging
import random
from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Callable

from pay_recon.config import EngineConfig, SimulationConfig
from pay_recon.engine import EventReporter, ReconciliationEngine
from pay_recon.models.payment import Provider, TransactionRecord
from pay_recon.providers.sandbox import SandboxProviderAdapter
from pay_recon.sinks.memory import MemorySink
from pay_recon.store.memory import InMemoryTransactionStore
from pay_recon.view import UnifiedStatusView

logger = logging.getLogger(__name__)

# (success code, failure codes) per provider
RESULT_CODES: dict[Provider, tuple[str, tuple[str, ...]]] = {
    Provider.MOBILE_MONEY: ("0", ("1032", "1037", "1", "2001")),
    Provider.CARD_WALLET: ("PAYMENT.CAPTURE.COMPLETED", ("PAYMENT.CAPTURE.DENIED", "PAYMENT.CAPTURE.DECLINED")),
}

CURRENCIES = {Provider.MOBILE_MONEY: "KES", Provider.CARD_WALLET: "USD"}


@dataclass
class ScenarioReport:
    """What the storm delivered and whether the store stayed consistent."""

    transactions: int = 0
    callbacks: int = 0
    orphan_callbacks: int = 0
    polls: int = 0
    outcomes: dict[str, int] = field(default_factory=dict)
    final_statuses: dict[str, int] = field(default_factory=dict)
    terminal_transitions: dict[str, int] = field(default_factory=dict)
    records_stored: int = 0

    @property
    def consistent(self) -> bool:
        """Every record reached exactly one terminal state and no record was fabricated."""
        return (
            self.records_stored == self.transactions
            and len(self.terminal_transitions) == self.transactions
            and all(count == 1 for count in self.terminal_transitions.values())
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "transactions": self.transactions,
            "callbacks": self.callbacks,
            "orphan_callbacks": self.orphan_callbacks,
            "polls": self.polls,
            "outcomes": self.outcomes,
            "final_statuses": self.final_statuses,
            "records_stored": self.records_stored,
            "consistent": self.consistent,
        }


class CallbackStormScenario:
    """Drive the engine with the traffic a flaky provider produces.

    This scenario:
    - Initiates transactions against sandbox mobile-money and card providers
    - Delivers each final callback, plus duplicates of some of them
    - Delivers conflicting terminal callbacks for a share of transactions
    - Delivers callbacks for ids nobody initiated
    - Interleaves client polls that trigger active pulls
    """

    def __init__(
        self,
        config: SimulationConfig | None = None,
        seed: int | None = None,
        sinks: list[Any] | None = None,
        engine_config: EngineConfig | None = None,
        store: Any = None,
    ) -> None:
        """Initialize the scenario.

        Parameters
        ----------
        config : SimulationConfig | None
            Volumes and rates of the storm.
        seed : int | None
            Random seed for reproducible traffic.
        sinks : list | None
            Extra sinks that receive every reconciliation event.
        engine_config : EngineConfig | None
            Engine behaviour under test.
        store
            Transaction store to reconcile into; a fresh in-memory store by default.
        """
        self.config = config or SimulationConfig()
        self.seed = seed
        self._random = random.Random(seed)

        self.events = MemorySink()
        self.reporter = EventReporter([self.events, *(sinks or [])])
        self.store = store if store is not None else InMemoryTransactionStore()
        self.adapters = {
            provider: SandboxProviderAdapter(provider, seed=seed) for provider in Provider
        }
        self.engine = ReconciliationEngine(
            self.store, self.adapters, config=engine_config, reporter=self.reporter
        )
        self.view = UnifiedStatusView(self.store, self.engine)

    def run(self) -> ScenarioReport:
        """Run the storm and return its report."""
        logger.info(
            "Starting callback storm: %d transactions, %d workers",
            self.config.num_transactions,
            self.config.workers,
        )
        report = ScenarioReport()
        records = self._initiate_all()
        report.transactions = len(records)

        tasks: list[Callable[[], Any]] = []
        for record in records:
            tasks.extend(self._callbacks_for(record))
        report.callbacks = len(tasks)

        orphans = self._orphan_callbacks()
        report.orphan_callbacks = len(orphans)
        tasks.extend(orphans)

        polls = [
            self._poll_task(record)
            for record in records
            if self._random.random() < self.config.poll_rate
        ]
        report.polls = len(polls)
        tasks.extend(polls)

        self._random.shuffle(tasks)
        outcomes: Counter[str] = Counter()
        with ThreadPoolExecutor(max_workers=self.config.workers) as pool:
            for result in pool.map(lambda task: task(), tasks):
                if result is not None:
                    outcomes[result] += 1

        report.outcomes = dict(outcomes)
        report.final_statuses = self.store.summary()
        report.records_stored = sum(report.final_statuses.values())
        report.terminal_transitions = dict(
            Counter(event.subject for event in self.events.of_type("transaction.terminal"))
        )

        logger.info(
            "Callback storm complete: %d callbacks, %d orphans, %d polls, consistent=%s",
            report.callbacks,
            report.orphan_callbacks,
            report.polls,
            report.consistent,
        )
        return report

    def _initiate_all(self) -> list[TransactionRecord]:
        providers = list(Provider)
        records = []
        for i in range(self.config.num_transactions):
            provider = providers[i % len(providers)]
            adapter = self.adapters[provider]
            amount = Decimal(self._random.randint(10, 5000))
            payer = adapter.pool.msisdn() if provider == Provider.MOBILE_MONEY else adapter.pool.email()
            records.append(
                self.engine.initiate(
                    provider,
                    amount,
                    CURRENCIES[provider],
                    payer_ref=payer,
                    description=f"Order {i}",
                    subject_id=f"user-{self._random.randint(1, 50):03d}",
                    reference_id=f"order-{i:06d}",
                )
            )
        return records

    def _callbacks_for(self, record: TransactionRecord) -> list[Callable[[], str]]:
        adapter = self.adapters[record.provider]
        success, failures = RESULT_CODES[record.provider]
        code = success if self._random.random() < 0.7 else self._random.choice(failures)

        # Pulls converge to the same result the callback carries
        adapter.settle(record.correlation_id, code)
        payload = adapter.build_callback(record.correlation_id, code)

        copies = 1
        if self._random.random() < self.config.duplicate_rate:
            copies += self._random.randint(1, 3)
        tasks = [self._callback_task(record.provider, payload) for _ in range(copies)]

        if self._random.random() < self.config.conflict_rate:
            other = self._random.choice(failures) if code == success else success
            tasks.append(
                self._callback_task(record.provider, adapter.build_callback(record.correlation_id, other))
            )
        return tasks

    def _orphan_callbacks(self) -> list[Callable[[], str]]:
        count = int(self.config.num_transactions * self.config.orphan_rate)
        tasks = []
        for _ in range(count):
            provider = self._random.choice(list(Provider))
            adapter = self.adapters[provider]
            unknown = (
                adapter.pool.checkout_request_id()
                if provider == Provider.MOBILE_MONEY
                else adapter.pool.order_id()
            )
            success, _ = RESULT_CODES[provider]
            tasks.append(self._callback_task(provider, adapter.build_callback(unknown, success, amount=100)))
        return tasks

    def _callback_task(self, provider: Provider, payload: dict[str, Any]) -> Callable[[], str]:
        def deliver() -> str:
            return self.engine.apply_callback(provider, payload).outcome.value

        return deliver

    def _poll_task(self, record: TransactionRecord) -> Callable[[], None]:
        def poll() -> None:
            self.view.lookup(record.transaction_id)

        return poll
