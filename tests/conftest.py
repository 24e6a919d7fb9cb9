"""Shared fixtures: controllable clock, isolated ledgers, API client and tokens."""

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from hardmoney_audit.main import create_app
from hardmoney_audit.services.audit_ledger import AuditLedger
from hardmoney_audit.utils.local_tokens import create_local_token


class FakeClock:
    """Clock returning a fixed instant until advanced."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def ledger(clock: FakeClock) -> AuditLedger:
    return AuditLedger(max_events=1000, clock=clock, strict_actions=False)


@pytest.fixture
def client(ledger: AuditLedger):
    with TestClient(create_app(ledger=ledger, init_store=False)) as test_client:
        yield test_client


@pytest.fixture
def admin_headers() -> dict:
    token = create_local_token("admin-1", "admin@lendmarket.test", role="admin")
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def investor_headers() -> dict:
    token = create_local_token("investor-7", "investor@lendmarket.test", role="investor")
    return {"Authorization": f"Bearer {token}"}
