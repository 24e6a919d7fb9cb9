"""
In-process audit ledger.

Keeps a bounded, append-only history of audit events and answers filtered
queries and aggregate statistics over it. Each recorded event is also
written to the audit log sink and handed to the delivery channel.

The ledger is constructed explicitly (see main.lifespan) and passed to
consumers; nothing here is a module-level singleton.
"""

from __future__ import annotations

import itertools
import json
import secrets
import string
import threading
from collections import Counter, deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional

from hardmoney_audit.config.logger import app_logger
from hardmoney_audit.config.settings import settings
from hardmoney_audit.models.audit_event import (
    AuditEvent,
    AuditEventCreate,
    Severity,
    is_known_action,
)

DEFAULT_LIMIT = 100

RECENT_ACTIVITY_WINDOW = timedelta(hours=24)

_ID_ALPHABET = string.ascii_lowercase + string.digits


class AuditLedgerError(Exception):
    """Base error for ledger operations."""


class UnknownAuditActionError(AuditLedgerError):
    """Raised in strict mode when an action is outside the vocabulary."""

    def __init__(self, action: str):
        super().__init__(f"Unknown audit action: {action!r}")
        self.action = action


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass
class AuditStatistics:
    """Aggregate counts over the retained events."""

    total_events: int = 0
    events_by_severity: Dict[str, int] = field(default_factory=dict)
    events_by_action: Dict[str, int] = field(default_factory=dict)
    events_by_outcome: Dict[str, int] = field(default_factory=dict)
    recent_activity: int = 0


class AuditLedger:
    """
    Thread-safe, bounded, append-only store of audit events.
    """

    def __init__(
        self,
        max_events: int = settings.AUDIT_MAX_EVENTS,
        delivery: Optional[Any] = None,
        clock: Callable[[], datetime] = utcnow,
        strict_actions: bool = settings.AUDIT_STRICT_ACTIONS,
    ):
        if max_events < 1:
            raise ValueError("max_events must be at least 1")
        self._events: deque[AuditEvent] = deque(maxlen=max_events)
        self._lock = threading.RLock()
        self._sequence = itertools.count(1)
        self._delivery = delivery
        self._clock = clock
        self._max_events = max_events
        self.strict_actions = strict_actions

    @property
    def max_events(self) -> int:
        return self._max_events

    @property
    def delivery(self) -> Optional[Any]:
        return self._delivery

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def log(self, event: AuditEventCreate) -> AuditEvent:
        """Record an event, stamping it with a fresh id and the current time.

        Delivery to the collector is submitted without waiting; delivery
        problems never reach the caller.

        Raises:
            UnknownAuditActionError: strict mode only, before anything is stored
        """
        if self.strict_actions and not is_known_action(event.action):
            raise UnknownAuditActionError(event.action)

        with self._lock:
            now = _as_utc(self._clock())
            record = AuditEvent(
                **event.model_dump(exclude={"details"}),
                details=json.loads(json.dumps(event.details, default=str)),
                id=self._generate_id(now),
                timestamp=now,
            )
            if len(self._events) == self._max_events:
                app_logger.debug(f"Audit ledger full ({self._max_events}); evicting {self._events[0].id}")
            self._events.append(record)

        app_logger.info(f"AUDIT EVENT: {json.dumps(record.to_payload(), sort_keys=True)}")

        if self._delivery is not None:
            try:
                self._delivery.submit(record)
            except Exception:
                app_logger.exception(f"Failed to submit audit event {record.id} for delivery")

        return record

    def _generate_id(self, now: datetime) -> str:
        millis = int(now.timestamp() * 1000)
        suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
        return f"audit_{millis}_{next(self._sequence):x}{suffix}"

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def _select(self, predicate: Callable[[AuditEvent], bool], limit: int) -> List[AuditEvent]:
        with self._lock:
            matches = [event for event in self._events if predicate(event)]
        # Stable sort keeps insertion order for equal timestamps, newest first
        matches.reverse()
        matches.sort(key=lambda event: event.timestamp, reverse=True)
        return matches[:max(limit, 0)]

    def get_recent_events(self, limit: int = DEFAULT_LIMIT) -> List[AuditEvent]:
        return self._select(lambda event: True, limit)

    def get_user_events(self, user_id: str, limit: int = DEFAULT_LIMIT) -> List[AuditEvent]:
        return self._select(lambda event: event.user_id == user_id, limit)

    def get_resource_events(
        self,
        resource: str,
        resource_id: Optional[str] = None,
        limit: int = DEFAULT_LIMIT,
    ) -> List[AuditEvent]:
        return self._select(
            lambda event: event.resource == resource
            and (not resource_id or event.resource_id == resource_id),
            limit,
        )

    def get_events_by_severity(self, severity: Severity | str, limit: int = DEFAULT_LIMIT) -> List[AuditEvent]:
        value = severity.value if isinstance(severity, Severity) else severity
        return self._select(lambda event: event.severity.value == value, limit)

    def get_events_by_date_range(
        self,
        start: datetime,
        end: datetime,
        limit: int = DEFAULT_LIMIT,
    ) -> List[AuditEvent]:
        """Events with start <= timestamp <= end. Naive bounds are read as UTC."""
        start, end = _as_utc(start), _as_utc(end)
        if start > end:
            return []
        return self._select(lambda event: start <= event.timestamp <= end, limit)

    def search_events(self, query: str, limit: int = DEFAULT_LIMIT) -> List[AuditEvent]:
        """Case-insensitive substring search over action, resource and details."""
        needle = query.lower()
        return self._select(
            lambda event: needle in event.action.lower()
            or needle in event.resource.lower()
            or needle in _details_text(event),
            limit,
        )

    def get_statistics(self) -> AuditStatistics:
        now = _as_utc(self._clock())
        since = now - RECENT_ACTIVITY_WINDOW
        with self._lock:
            events = list(self._events)

        return AuditStatistics(
            total_events=len(events),
            events_by_severity=_count(event.severity.value for event in events),
            events_by_action=_count(event.action for event in events),
            events_by_outcome=_count(event.outcome.value for event in events),
            recent_activity=sum(1 for event in events if event.timestamp >= since),
        )


def _count(values: Iterable[str]) -> Dict[str, int]:
    return dict(Counter(values))


def _details_text(event: AuditEvent) -> str:
    # Compact and unescaped, so searches see the same text clients send
    return json.dumps(event.details, default=str, ensure_ascii=False, separators=(",", ":")).lower()


def filter_min_severity(events: Iterable[AuditEvent], minimum: Severity) -> List[AuditEvent]:
    """Keep events at or above the given severity tier."""
    return [event for event in events if event.severity.rank >= minimum.rank]
