"""Identifier pools for sandbox providers.

Provider ids are minted in the shapes the real providers use, so callbacks
built by the sandbox look like production traffic::

    pool = IdPool(seed=42)
    pool.checkout_request_id()   # ws_CO_18102026101530123456789
    pool.order_id()              # 5O190127TN364715T
"""

from __future__ import annotations

import random
import string
import threading
import uuid as _uuid
from datetime import datetime, timezone

from faker import Faker


class IdPool:
    """Provider-shaped identifiers and payer details backed by Faker.

    Every draw comes from one seeded ``random.Random``, so two pools built
    with the same seed mint the same sequence. Safe to share across threads.

    Parameters
    ----------
    locale : str
        Faker locale (default ``en_US``).
    seed : int | None
        Random seed for reproducibility.
    size : int
        Number of pre-generated payer emails.
    """

    UPPER_ALNUM = string.ascii_uppercase + string.digits

    def __init__(self, locale: str = "en_US", seed: int | None = None, size: int = 500) -> None:
        self.fake = Faker(locale)
        self._random = random.Random(seed)
        if seed is not None:
            self.fake.seed_instance(seed)

        self._emails: list[str] = [self.fake.email() for _ in range(size)]
        self._lock = threading.Lock()
        self._sequence = 0

    def uuid(self) -> str:
        """Return a UUID4 hex string drawn from the pool's seeded generator."""
        with self._lock:
            bits = self._random.getrandbits(128)
        return _uuid.UUID(int=bits, version=4).hex

    def email(self) -> str:
        with self._lock:
            return self._random.choice(self._emails)

    def msisdn(self) -> str:
        """Return a Kenyan mobile number in international format (2547XXXXXXXX)."""
        return "2547" + self._token(string.digits, 8)

    def checkout_request_id(self) -> str:
        """Return an STK push checkout request id."""
        stamp = datetime.now(timezone.utc).strftime("%d%m%Y%H%M%S")
        with self._lock:
            self._sequence += 1
            suffix = f"{self._sequence:06d}{self._random.randint(100, 999)}"
        return f"ws_CO_{stamp}{suffix}"

    def merchant_request_id(self) -> str:
        """Return an STK push merchant request id (``29115-34620561-1``)."""
        with self._lock:
            return (
                f"{self._random.randint(10000, 99999)}-"
                f"{self._random.randint(10000000, 99999999)}-{self._random.randint(1, 9)}"
            )

    def receipt_number(self) -> str:
        """Return an M-Pesa style receipt number (``NLJ7RT61SV``)."""
        return self._token(self.UPPER_ALNUM, 10)

    def order_id(self) -> str:
        """Return a 17-character card/wallet order id."""
        return self._token(self.UPPER_ALNUM, 17)

    def capture_id(self) -> str:
        return self._token(self.UPPER_ALNUM, 17)

    def request_id(self) -> str:
        """Return a merchant-side request id attached to card orders."""
        return f"PR-{self.uuid()[:12].upper()}"

    def _token(self, alphabet: str, length: int) -> str:
        with self._lock:
            return "".join(self._random.choices(alphabet, k=length))
