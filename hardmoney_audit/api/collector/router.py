"""Collector endpoint: the external system of record for audit events.

The delivery worker POSTs every ledger event here; the collector writes it
to the configured audit store (Supabase REST or SQL).
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from hardmoney_audit.config.logger import app_logger
from hardmoney_audit.db.audit_store import list_persisted_events, persist_event
from hardmoney_audit.models.audit_event import AuditEvent
from hardmoney_audit.utils.auth import require_admin
from hardmoney_audit.utils.responses import SuccessResponse, success_response

router = APIRouter(prefix="/api/audit", tags=["collector"])


@router.post("", response_model=SuccessResponse[dict], status_code=status.HTTP_201_CREATED)
async def collect_event(event: AuditEvent):
    """Persist one audit event received from a ledger.

    No authentication: producers post without credentials.
    """
    try:
        stored = await persist_event(event)
    except Exception as e:
        app_logger.error(f"AUDIT COLLECTOR: failed to persist {event.id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"Audit store unavailable: {str(e)}"
        )

    return success_response(data=stored, message="Audit event stored")


@router.get("/persisted", response_model=SuccessResponse[list])
async def list_persisted(
    user_id: Optional[str] = Query(default=None),
    limit: int = Query(default=100, ge=1, le=1000),
    admin: dict = Depends(require_admin),
):
    """Persisted events, newest first."""
    try:
        events = await list_persisted_events(user_id=user_id, limit=limit)
    except Exception as e:
        app_logger.error(f"Failed to list persisted audit events: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"Audit store unavailable: {str(e)}"
        )

    return success_response(data=events, message=f"Retrieved {len(events)} persisted audit event(s)")
