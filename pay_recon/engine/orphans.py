"""Bounded grace buffer for callbacks that arrive before their initiation record."""

import itertools
import threading
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass

from pay_recon.models.payment import NormalizedCallback, Provider


@dataclass
class HeldCallback:
    callback: NormalizedCallback
    deadline: float


class OrphanBuffer:
    """Hold unknown-id callbacks for a grace period.

    A callback can race the write of its initiation record. Held callbacks
    are handed back by :meth:`claim` once the record is registered; those
    not claimed before their deadline are returned by :meth:`expire`.

    Parameters
    ----------
    grace_seconds : float
        How long a callback is held.
    max_size : int
        Capacity; holding a callback beyond it evicts the oldest one.
    clock : Callable[[], float]
        Monotonic time source.
    """

    def __init__(
        self,
        grace_seconds: float,
        max_size: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.grace_seconds = grace_seconds
        self.max_size = max_size
        self._clock = clock
        self._lock = threading.Lock()
        self._held: OrderedDict[int, HeldCallback] = OrderedDict()
        self._seq = itertools.count()

    def __len__(self) -> int:
        with self._lock:
            return len(self._held)

    def hold(self, callback: NormalizedCallback) -> list[NormalizedCallback]:
        """Buffer ``callback``; returns callbacks evicted to make room."""
        evicted: list[NormalizedCallback] = []
        with self._lock:
            while len(self._held) >= self.max_size:
                _, oldest = self._held.popitem(last=False)
                evicted.append(oldest.callback)
            self._held[next(self._seq)] = HeldCallback(callback, self._clock() + self.grace_seconds)
        return evicted

    def claim(
        self, provider: Provider, correlation_id: str, secondary_id: str | None = None
    ) -> list[NormalizedCallback]:
        """Remove and return live callbacks addressed to the given identifiers, oldest first."""
        now = self._clock()
        claimed: list[NormalizedCallback] = []
        with self._lock:
            for seq, held in list(self._held.items()):
                callback = held.callback
                if callback.provider != provider or held.deadline < now:
                    continue
                if callback.correlation_id == correlation_id or (
                    secondary_id and callback.secondary_id == secondary_id
                ):
                    claimed.append(callback)
                    del self._held[seq]
        return claimed

    def expire(self) -> list[NormalizedCallback]:
        """Remove and return callbacks whose grace period has elapsed."""
        now = self._clock()
        expired: list[NormalizedCallback] = []
        with self._lock:
            for seq, held in list(self._held.items()):
                if held.deadline < now:
                    expired.append(held.callback)
                    del self._held[seq]
        return expired
