"""Script to seed sample audit events into the audit store and print a dev admin token."""

import asyncio
import sys
from pathlib import Path

# Add the parent directory to the path so we can import from hardmoney_audit
sys.path.insert(0, str(Path(__file__).parent.parent))

from hardmoney_audit.config.settings import settings
from hardmoney_audit.db.audit_store import persist_event
from hardmoney_audit.db.db import close_db
from hardmoney_audit.models.audit_event import AuditAction, Outcome, Severity
from hardmoney_audit.services.audit_ledger import AuditLedger
from hardmoney_audit.utils.audit import create_audit_event
from hardmoney_audit.utils.local_tokens import create_local_token

ADMIN_USER_ID = "admin-dev"
ADMIN_EMAIL = "admin@admin.com"

SAMPLE_EVENTS = [
    ("borrower-1", AuditAction.LOGIN, "session", None, {}, Severity.LOW, Outcome.SUCCESS),
    ("borrower-1", AuditAction.DEAL_CREATE, "deal", "deal-1001", {"loanAmount": 350000, "ltv": 0.7}, Severity.LOW, Outcome.SUCCESS),
    ("borrower-1", AuditAction.DOCUMENT_UPLOAD, "document", "doc-55", {"filename": "appraisal.pdf"}, Severity.LOW, Outcome.SUCCESS),
    (ADMIN_USER_ID, AuditAction.DEAL_APPROVE, "deal", "deal-1001", {"reviewer": ADMIN_EMAIL}, Severity.MEDIUM, Outcome.SUCCESS),
    ("investor-7", AuditAction.INVESTMENT_CREATE, "investment", "inv-300", {"dealId": "deal-1001", "amount": 50000}, Severity.MEDIUM, Outcome.PENDING),
    ("investor-7", AuditAction.PAYMENT_FAIL, "payment", "pay-12", {"reason": "insufficient funds"}, Severity.HIGH, Outcome.FAILURE),
    ("unknown", AuditAction.LOGIN_FAILED, "session", None, {"attempts": 5}, Severity.HIGH, Outcome.FAILURE),
    ("unknown", AuditAction.SUSPICIOUS_ACTIVITY, "account", "borrower-1", {"signal": "login burst"}, Severity.CRITICAL, Outcome.FAILURE),
]


async def seed_audit_events():
    """Record the sample events in a ledger and write each one to the audit store."""
    ledger = AuditLedger()

    try:
        for user_id, action, resource, resource_id, details, severity, outcome in SAMPLE_EVENTS:
            event = create_audit_event(
                ledger,
                user_id,
                action,
                resource,
                details,
                resource_id=resource_id,
                ip_address="127.0.0.1",
                user_agent="seed-script",
                severity=severity,
                outcome=outcome,
            )
            await persist_event(event)
    except Exception as e:
        print(f"Error seeding audit events: {e}")
        raise
    finally:
        await close_db()

    stats = ledger.get_statistics()
    print("=" * 50)
    print(f"Seeded {stats.total_events} audit events into the {settings.effective_store_backend} store")
    print(f"By severity: {stats.events_by_severity}")
    print("=" * 50)


async def main():
    """Main entry point."""
    print("Seeding audit events...")
    await seed_audit_events()
    print("Admin bearer token for local development:")
    print(create_local_token(ADMIN_USER_ID, ADMIN_EMAIL, role="admin"))
    print("Done!")


if __name__ == "__main__":
    asyncio.run(main())
