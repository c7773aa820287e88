"""Event envelope published by the observability hook."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


@dataclass(frozen=True)
class Event:
    """One reconciliation event.

    ``event_type`` is ``<entity>.<action>`` (``transaction.terminal``,
    ``callback.duplicate``); ``source`` is the provider and ``subject`` the
    correlation id the event concerns.
    """

    event_id: str
    event_type: str
    event_time: datetime
    source: str
    subject: str
    data: dict[str, Any]
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def create(
        cls,
        event_type: str,
        source: str,
        subject: str,
        data: dict[str, Any],
        event_time: datetime | None = None,
        **metadata: Any,
    ) -> "Event":
        return cls(
            event_id=uuid.uuid4().hex,
            event_type=event_type,
            event_time=event_time or datetime.now(timezone.utc),
            source=source,
            subject=subject,
            data=data,
            metadata=metadata,
        )

    @property
    def entity(self) -> str:
        return self.event_type.partition(".")[0]
