"""
Delivery of audit events to the external collector.

The ledger never waits on the network. Each recorded event is put on a
bounded queue and a background thread POSTs it to the collector endpoint.

Features:
- Non-blocking submit; events are dropped (and counted) when the queue is full
- One HTTP POST per event, JSON body in the client wire format
- No retries, no batching, no authentication headers
- Observable counters, recent failures and per-attempt listeners
"""

from __future__ import annotations

import queue
import threading
import time
from collections import deque
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

import httpx

from hardmoney_audit.config.logger import app_logger
from hardmoney_audit.config.settings import settings
from hardmoney_audit.models.audit_event import AuditEvent

# Failures kept for the status endpoint
MAX_RECENT_FAILURES = 20

# How often the worker wakes up to check for shutdown
_POLL_SECONDS = 0.1


@dataclass(frozen=True)
class DeliveryResult:
    """Outcome of a single delivery attempt."""

    event_id: str
    delivered: bool
    status_code: Optional[int] = None
    error: Optional[str] = None
    attempted_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class DeliveryStatus:
    """Snapshot of the delivery channel."""

    collector_url: Optional[str]
    running: bool
    submitted: int = 0
    delivered: int = 0
    failed: int = 0
    dropped: int = 0
    pending: int = 0
    recent_failures: List[DeliveryResult] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        for failure in data["recent_failures"]:
            failure["attempted_at"] = failure["attempted_at"].isoformat()
        return data


DeliveryListener = Callable[[DeliveryResult], None]


class AuditDeliveryWorker:
    """
    Bounded queue drained by a daemon thread that POSTs events to the collector.
    """

    def __init__(
        self,
        collector_url: str,
        queue_size: int = settings.AUDIT_DELIVERY_QUEUE_SIZE,
        timeout: float = settings.AUDIT_DELIVERY_TIMEOUT_SECONDS,
        client: Optional[httpx.Client] = None,
    ):
        self.collector_url = collector_url
        self._queue: "queue.Queue[AuditEvent]" = queue.Queue(maxsize=queue_size)
        self._timeout = timeout
        self._client = client
        self._owns_client = client is None
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._lock = threading.Lock()
        # Signalled whenever the number of queued or in-progress events drops to zero
        self._idle = threading.Condition(self._lock)
        self._outstanding = 0
        self._listeners: List[DeliveryListener] = []

        self._submitted = 0
        self._delivered = 0
        self._failed = 0
        self._dropped = 0
        self._recent_failures: deque[DeliveryResult] = deque(maxlen=MAX_RECENT_FAILURES)

    # ------------------------------------------------------------------
    # Producer side
    # ------------------------------------------------------------------

    def submit(self, event: AuditEvent) -> bool:
        """Queue an event for delivery without blocking.

        Returns False when the queue is full and the event was dropped.
        """
        # Counted before the put so the worker can never finish an uncounted event
        with self._lock:
            self._outstanding += 1
        try:
            self._queue.put_nowait(event)
        except queue.Full:
            with self._lock:
                self._dropped += 1
            self._finish()
            app_logger.warning(f"AUDIT DELIVERY DROPPED: queue full, event {event.id} not sent to collector")
            return False

        with self._lock:
            self._submitted += 1
        return True

    def add_listener(self, listener: DeliveryListener) -> None:
        """Register a callback invoked with every DeliveryResult."""
        with self._lock:
            self._listeners.append(listener)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the background delivery thread (idempotent)."""
        if self.running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="audit-delivery", daemon=True)
        self._thread.start()
        app_logger.info(f"Audit delivery worker started (collector: {self.collector_url})")

    def stop(self, drain: bool = True, timeout: float = 5.0) -> None:
        """Stop the worker, optionally waiting for queued events first."""
        if self.running:
            if drain and not self.flush(timeout):
                app_logger.warning(f"Audit delivery stopped with {self._queue.qsize()} event(s) undelivered")
            self._stop_event.set()
            self._thread.join(timeout)
            app_logger.info("Audit delivery worker stopped")
        self._thread = None

        if self._owns_client and self._client is not None:
            self._client.close()
            self._client = None

    def flush(self, timeout: Optional[float] = None) -> bool:
        """Block until every queued event has been attempted.

        Returns False if the timeout expired first.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._idle:
            while self._outstanding:
                if deadline is None:
                    self._idle.wait()
                    continue
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return False
                self._idle.wait(remaining)
        return True

    def process_pending(self) -> int:
        """Deliver queued events on the calling thread. Returns how many were attempted."""
        attempted = 0
        while True:
            try:
                event = self._queue.get_nowait()
            except queue.Empty:
                return attempted
            try:
                self._deliver(event)
            finally:
                self._finish()
            attempted += 1

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    def status(self) -> DeliveryStatus:
        with self._lock:
            return DeliveryStatus(
                collector_url=self.collector_url,
                running=self.running,
                submitted=self._submitted,
                delivered=self._delivered,
                failed=self._failed,
                dropped=self._dropped,
                pending=self._queue.qsize(),
                recent_failures=list(self._recent_failures),
            )

    # ------------------------------------------------------------------
    # Worker side
    # ------------------------------------------------------------------

    def _get_client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(timeout=self._timeout)
        return self._client

    def _run(self) -> None:
        while not self._stop_event.is_set():
            try:
                event = self._queue.get(timeout=_POLL_SECONDS)
            except queue.Empty:
                continue
            try:
                self._deliver(event)
            finally:
                self._finish()

    def _deliver(self, event: AuditEvent) -> DeliveryResult:
        try:
            response = self._get_client().post(
                self.collector_url,
                json=event.to_payload(),
                headers={"Content-Type": "application/json"},
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            result = DeliveryResult(
                event_id=event.id,
                delivered=False,
                status_code=exc.response.status_code,
                error=f"Collector responded with HTTP {exc.response.status_code}",
            )
        except httpx.HTTPError as exc:
            result = DeliveryResult(event_id=event.id, delivered=False, error=str(exc) or type(exc).__name__)
        except Exception as exc:
            app_logger.exception(f"Unexpected error delivering audit event {event.id}")
            result = DeliveryResult(event_id=event.id, delivered=False, error=f"{type(exc).__name__}: {exc}")
        else:
            result = DeliveryResult(event_id=event.id, delivered=True, status_code=response.status_code)

        self._record(result)
        return result

    def _finish(self) -> None:
        with self._idle:
            self._outstanding -= 1
            if not self._outstanding:
                self._idle.notify_all()

    def _record(self, result: DeliveryResult) -> None:
        with self._lock:
            if result.delivered:
                self._delivered += 1
            else:
                self._failed += 1
                self._recent_failures.append(result)
            listeners = list(self._listeners)

        if not result.delivered:
            app_logger.error(f"AUDIT DELIVERY FAILED: event {result.event_id} - {result.error}")

        for listener in listeners:
            try:
                listener(result)
            except Exception:
                app_logger.exception("Audit delivery listener raised")


class NullDelivery:
    """Delivery channel used when no collector is configured; events are not shipped."""

    collector_url = None
    running = False

    def submit(self, event: AuditEvent) -> bool:
        return False

    def add_listener(self, listener: DeliveryListener) -> None:
        pass

    def start(self) -> None:
        pass

    def stop(self, drain: bool = True, timeout: float = 5.0) -> None:
        pass

    def flush(self, timeout: Optional[float] = None) -> bool:
        return True

    def status(self) -> DeliveryStatus:
        return DeliveryStatus(collector_url=None, running=False)


def build_delivery(collector_url: Optional[str] = None) -> AuditDeliveryWorker | NullDelivery:
    """Create the delivery channel for the configured collector URL."""
    url = settings.AUDIT_COLLECTOR_URL if collector_url is None else collector_url
    if not url or not url.strip():
        app_logger.info("AUDIT_COLLECTOR_URL not set; audit events will not be delivered externally")
        return NullDelivery()
    return AuditDeliveryWorker(url.strip())
