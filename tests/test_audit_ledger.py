"""
Tests for the in-process audit ledger.

Covers:
- Recording (ids, timestamps, defaults, immutability)
- Query filters and ordering
- Statistics
- Bounded retention
- Concurrent recording
- Action strictness
- Delivery hand-off
"""

import threading
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
from pydantic import ValidationError

from hardmoney_audit.models.audit_event import (
    AuditAction,
    AuditEventCreate,
    Outcome,
    Severity,
    action_groups,
    is_known_action,
)
from hardmoney_audit.services.audit_ledger import (
    AuditLedger,
    UnknownAuditActionError,
    filter_min_severity,
)
from hardmoney_audit.utils.audit import create_audit_event


def _event(**overrides) -> AuditEventCreate:
    fields = {
        "user_id": "borrower-1",
        "action": "deal.create",
        "resource": "deal",
        "resource_id": "deal-1",
        "details": {},
        "severity": "low",
        "outcome": "success",
    }
    fields.update(overrides)
    return AuditEventCreate(**fields)


class TestRecording:
    """Test id/timestamp assignment and stored values."""

    def test_log_assigns_id_and_timestamp(self, ledger, clock):
        event = ledger.log(_event())

        assert event.id.startswith("audit_")
        assert event.timestamp == clock.now
        assert len(ledger) == 1

    def test_defaults_for_context_fields(self, ledger):
        event = ledger.log(AuditEventCreate(user_id="u1", action="user.login", resource="session"))

        assert event.ip_address == "unknown"
        assert event.user_agent == "unknown"
        assert event.severity == Severity.LOW
        assert event.outcome == Outcome.SUCCESS
        assert event.details == {}
        assert event.resource_id is None

    def test_blank_context_fields_become_unknown(self):
        event = AuditEventCreate(user_id="u1", action="user.login", resource="session", ip_address="", user_agent=None)

        assert event.ip_address == "unknown"
        assert event.user_agent == "unknown"

    def test_ids_unique_within_same_millisecond(self, ledger):
        # The fake clock never moves, so every call shares one timestamp
        ids = {ledger.log(_event()).id for _ in range(500)}
        assert len(ids) == 500

    def test_id_embeds_epoch_millis(self, ledger, clock):
        event = ledger.log(_event())
        millis = int(clock.now.timestamp() * 1000)
        assert event.id.startswith(f"audit_{millis}_")

    def test_events_are_immutable(self, ledger):
        event = ledger.log(_event())
        with pytest.raises(ValidationError):
            event.action = "deal.delete"

    def test_details_copied_on_record(self, ledger):
        details = {"amount": 100000}
        event = ledger.log(_event(details=details))
        details["amount"] = 1

        assert event.details == {"amount": 100000}
        assert ledger.get_recent_events()[0].details == {"amount": 100000}

    def test_action_enum_accepted(self, ledger):
        event = ledger.log(_event(action=AuditAction.DEAL_FUND))
        assert event.action == "deal.fund"

    def test_invalid_severity_rejected(self):
        with pytest.raises(ValidationError):
            _event(severity="catastrophic")

    def test_invalid_outcome_rejected(self):
        with pytest.raises(ValidationError):
            _event(outcome="maybe")

    def test_camel_case_payload(self, ledger):
        payload = ledger.log(_event(ip_address="10.0.0.1")).to_payload()

        assert payload["userId"] == "borrower-1"
        assert payload["resourceId"] == "deal-1"
        assert payload["ipAddress"] == "10.0.0.1"
        assert payload["userAgent"] == "unknown"
        assert payload["severity"] == "low"
        assert payload["timestamp"].startswith("2026-10-18T12:00:00")


class TestQueries:
    """Test filtered queries and ordering."""

    def test_user_events_subset_newest_first(self, ledger, clock):
        first = ledger.log(_event(user_id="alice"))
        clock.advance(minutes=1)
        ledger.log(_event(user_id="bob"))
        clock.advance(minutes=1)
        third = ledger.log(_event(user_id="alice"))

        events = ledger.get_user_events("alice")

        assert [e.id for e in events] == [third.id, first.id]
        assert all(e.user_id == "alice" for e in events)

    def test_equal_timestamps_newest_insert_first(self, ledger):
        first = ledger.log(_event())
        second = ledger.log(_event())

        assert [e.id for e in ledger.get_recent_events()] == [second.id, first.id]

    def test_limit_truncates(self, ledger, clock):
        for _ in range(5):
            ledger.log(_event(user_id="alice"))
            clock.advance(seconds=1)

        events = ledger.get_user_events("alice", limit=2)

        assert len(events) == 2
        assert events[0].timestamp > events[1].timestamp

    def test_default_limit_is_100(self, ledger):
        for _ in range(120):
            ledger.log(_event())
        assert len(ledger.get_recent_events()) == 100

    def test_resource_events_with_and_without_id(self, ledger):
        ledger.log(_event(resource="deal", resource_id="deal-1"))
        ledger.log(_event(resource="deal", resource_id="deal-2"))
        ledger.log(_event(resource="investment", resource_id="inv-1"))

        assert len(ledger.get_resource_events("deal")) == 2
        only_one = ledger.get_resource_events("deal", "deal-2")
        assert [e.resource_id for e in only_one] == ["deal-2"]
        assert ledger.get_resource_events("document") == []

    def test_severity_partition(self, ledger):
        severities = ["low", "medium", "high", "critical", "low", "high"]
        logged = {ledger.log(_event(severity=s)).id for s in severities}

        seen = []
        for severity in Severity:
            seen.extend(e.id for e in ledger.get_events_by_severity(severity))

        assert len(seen) == len(set(seen))
        assert set(seen) == logged

    def test_severity_accepts_plain_string(self, ledger):
        ledger.log(_event(severity="critical"))
        assert len(ledger.get_events_by_severity("critical")) == 1

    def test_date_range_inclusive(self, ledger, clock):
        start = clock.now
        inside_first = ledger.log(_event())
        clock.advance(hours=1)
        inside_last = ledger.log(_event())
        clock.advance(hours=1)
        ledger.log(_event())

        events = ledger.get_events_by_date_range(start, start + timedelta(hours=1))

        assert {e.id for e in events} == {inside_first.id, inside_last.id}

    def test_date_range_naive_bounds_are_utc(self, ledger, clock):
        ledger.log(_event())
        naive = clock.now.replace(tzinfo=None)
        assert len(ledger.get_events_by_date_range(naive, naive)) == 1

    def test_empty_and_inverted_date_range(self, ledger, clock):
        ledger.log(_event())
        later = clock.now + timedelta(days=1)

        assert ledger.get_events_by_date_range(later, later + timedelta(hours=1)) == []
        assert ledger.get_events_by_date_range(clock.now, clock.now - timedelta(seconds=1)) == []

    def test_search_matches_action_and_resource(self, ledger):
        approve = ledger.log(_event(action="deal.approve", resource="loan_application"))
        resource_match = ledger.log(_event(action="document.upload", resource="Deal"))
        ledger.log(_event(action="user.login", resource="session"))

        ids = {e.id for e in ledger.search_events("deal")}

        assert ids == {approve.id, resource_match.id}

    def test_search_matches_details_case_insensitive(self, ledger):
        event = ledger.log(_event(action="payment.fail", resource="payment", details={"reason": "Card DECLINED"}))

        assert [e.id for e in ledger.search_events("declined")] == [event.id]
        assert ledger.search_events("approved") == []

    def test_search_matches_non_ascii_details(self, ledger):
        event = ledger.log(_event(details={"borrower": "José Núñez"}))

        assert [e.id for e in ledger.search_events("josé")] == [event.id]
        assert [e.id for e in ledger.search_events("NÚÑEZ")] == [event.id]

    def test_search_matches_compact_details_json(self, ledger):
        event = ledger.log(_event(details={"amount": 250000, "term": "12mo"}))

        assert [e.id for e in ledger.search_events('"amount":250000')] == [event.id]
        assert [e.id for e in ledger.search_events('250000,"term"')] == [event.id]
        assert ledger.search_events('"amount": 250000') == []

    def test_queries_do_not_mutate(self, ledger):
        ledger.log(_event())
        ledger.get_recent_events()
        ledger.search_events("deal")
        ledger.get_statistics()
        assert len(ledger) == 1

    def test_filter_min_severity(self, ledger):
        for severity in ["low", "medium", "high", "critical"]:
            ledger.log(_event(severity=severity))

        kept = filter_min_severity(ledger.get_recent_events(), Severity.HIGH)

        assert {e.severity for e in kept} == {Severity.HIGH, Severity.CRITICAL}


class TestStatistics:
    """Test aggregate counts."""

    def test_example_scenario(self, ledger):
        ledger.log(_event(action="user.login", resource="session", severity="low", outcome="success"))
        ledger.log(_event(action="deal.approve", severity="medium", outcome="success"))
        ledger.log(_event(action="security.suspicious_activity", resource="account", severity="high", outcome="failure"))

        stats = ledger.get_statistics()

        assert stats.total_events == 3
        assert stats.events_by_severity == {"low": 1, "medium": 1, "high": 1}
        assert stats.events_by_outcome == {"success": 2, "failure": 1}
        assert stats.events_by_action == {
            "user.login": 1,
            "deal.approve": 1,
            "security.suspicious_activity": 1,
        }

    def test_counts_sum_to_total(self, ledger):
        combos = [
            ("deal.create", "low", "pending"),
            ("deal.fund", "high", "success"),
            ("payment.refund", "medium", "failure"),
            ("deal.create", "critical", "success"),
        ]
        for action, severity, outcome in combos:
            ledger.log(_event(action=action, severity=severity, outcome=outcome))

        stats = ledger.get_statistics()

        assert stats.total_events == 4
        assert sum(stats.events_by_severity.values()) == 4
        assert sum(stats.events_by_action.values()) == 4
        assert sum(stats.events_by_outcome.values()) == 4
        assert stats.events_by_action["deal.create"] == 2

    def test_recent_activity_trailing_24_hours(self, ledger, clock):
        ledger.log(_event())
        clock.advance(hours=23)
        ledger.log(_event())
        clock.advance(hours=2)

        stats = ledger.get_statistics()

        assert stats.total_events == 2
        assert stats.recent_activity == 1

    def test_empty_ledger(self, ledger):
        stats = ledger.get_statistics()
        assert stats.total_events == 0
        assert stats.events_by_severity == {}
        assert stats.recent_activity == 0


class TestRetention:
    """Test the bounded ring buffer."""

    def test_oldest_evicted_when_full(self, clock):
        small = AuditLedger(max_events=3, clock=clock)
        events = [small.log(_event(user_id=f"user-{i}")) for i in range(5)]

        retained = {e.id for e in small.get_recent_events()}

        assert len(small) == 3
        assert retained == {e.id for e in events[2:]}

    def test_capacity_must_be_positive(self):
        with pytest.raises(ValueError):
            AuditLedger(max_events=0)


class TestConcurrency:
    """One ledger shared by many threads."""

    def test_concurrent_logging_keeps_every_event(self, ledger):
        threads_count, per_thread = 8, 50

        def record(worker: int) -> None:
            for i in range(per_thread):
                ledger.log(_event(user_id=f"worker-{worker}", details={"n": i}))

        threads = [threading.Thread(target=record, args=(n,)) for n in range(threads_count)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        total = threads_count * per_thread
        events = ledger.get_recent_events(limit=total)
        assert len(ledger) == total
        assert len({e.id for e in events}) == total
        assert ledger.get_statistics().total_events == total
        assert all(len(ledger.get_user_events(f"worker-{n}", limit=total)) == per_thread for n in range(threads_count))


class TestActionVocabulary:
    """Test strict and permissive handling of actions."""

    def test_permissive_accepts_unknown_action(self, ledger):
        event = ledger.log(_event(action="deal.teleport"))
        assert event.action == "deal.teleport"

    def test_strict_rejects_unknown_action(self, clock):
        strict = AuditLedger(clock=clock, strict_actions=True)

        with pytest.raises(UnknownAuditActionError):
            strict.log(_event(action="deal.teleport"))
        assert len(strict) == 0

        strict.log(_event(action="deal.approve"))
        assert len(strict) == 1

    def test_vocabulary_groups(self):
        groups = action_groups()

        assert groups["deals"] == [
            "deal.create", "deal.update", "deal.delete", "deal.approve", "deal.reject", "deal.fund",
        ]
        assert "user.2fa_enable" in groups["authentication"]
        assert "admin.system_config_update" in groups["administration"]
        assert sum(len(actions) for actions in groups.values()) == len(AuditAction)
        assert is_known_action("payment.refund")
        assert not is_known_action("payment.steal")


class TestDeliveryHandOff:
    """Test that the ledger hands events to delivery without failing callers."""

    def test_each_event_submitted(self, clock):
        delivery = MagicMock()
        ledger = AuditLedger(clock=clock, delivery=delivery)

        event = ledger.log(_event())

        delivery.submit.assert_called_once_with(event)

    def test_delivery_errors_do_not_propagate(self, clock):
        delivery = MagicMock()
        delivery.submit.side_effect = RuntimeError("collector exploded")
        ledger = AuditLedger(clock=clock, delivery=delivery)

        event = ledger.log(_event())

        assert len(ledger) == 1
        assert ledger.get_recent_events()[0].id == event.id


class TestCreateAuditEventHelper:
    """Test the convenience wrapper."""

    def test_defaults(self, ledger):
        event = create_audit_event(ledger, "investor-3", AuditAction.INVESTMENT_CREATE, "investment")

        assert event.action == "investment.create"
        assert event.severity == Severity.LOW
        assert event.outcome == Outcome.SUCCESS
        assert event.ip_address == "unknown"
        assert event.user_agent == "unknown"

    def test_options(self, ledger):
        event = create_audit_event(
            ledger,
            "admin-1",
            "admin.user_suspend",
            "user",
            {"reason": "chargeback"},
            resource_id="borrower-9",
            ip_address="203.0.113.1",
            user_agent="pytest",
            severity="high",
            outcome="pending",
        )

        assert event.resource_id == "borrower-9"
        assert event.details == {"reason": "chargeback"}
        assert event.ip_address == "203.0.113.1"
        assert event.severity == Severity.HIGH
        assert event.outcome == Outcome.PENDING

    def test_timestamps_are_timezone_aware(self, ledger):
        event = create_audit_event(ledger, "u", "user.logout", "session")
        assert event.timestamp.tzinfo is not None
        assert event.timestamp == datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)
