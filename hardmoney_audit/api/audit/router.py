"""Audit ledger admin API routes.

Exposes the in-memory ledger queries, statistics, delivery status and
exports to marketplace administrators.
"""

from datetime import datetime
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status

from hardmoney_audit.config.logger import app_logger
from hardmoney_audit.api.audit.schemas import (
    AuditEventList,
    AuditStatisticsResponse,
    DeliveryStatusResponse,
    RecordEventRequest,
)
from hardmoney_audit.models.audit_event import (
    AuditAction,
    AuditEvent,
    Outcome,
    Severity,
    action_groups,
)
from hardmoney_audit.services.audit_delivery import NullDelivery
from hardmoney_audit.services.audit_export import export_events
from hardmoney_audit.services.audit_ledger import (
    AuditLedger,
    UnknownAuditActionError,
    filter_min_severity,
)
from hardmoney_audit.utils.audit import create_audit_event, get_audit_ledger
from hardmoney_audit.utils.auth import require_admin
from hardmoney_audit.utils.responses import SuccessResponse, success_response

router = APIRouter(prefix="/v1/audit", tags=["audit"])


def _run_query(
    ledger: AuditLedger,
    limit: int,
    q: Optional[str],
    user_id: Optional[str],
    resource: Optional[str],
    resource_id: Optional[str],
    severity: Optional[Severity],
    start: Optional[datetime],
    end: Optional[datetime],
) -> tuple[str, List[AuditEvent]]:
    """Dispatch to exactly one ledger query. Precedence: q, user, resource, severity, date range."""
    if q:
        return "search", ledger.search_events(q, limit=limit)
    if user_id:
        return "user", ledger.get_user_events(user_id, limit=limit)
    if resource:
        return "resource", ledger.get_resource_events(resource, resource_id, limit=limit)
    if severity:
        return "severity", ledger.get_events_by_severity(severity, limit=limit)
    if start or end:
        if not (start and end):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Both start and end are required for a date range query",
            )
        return "date_range", ledger.get_events_by_date_range(start, end, limit=limit)
    return "recent", ledger.get_recent_events(limit=limit)


@router.get("/events", response_model=SuccessResponse[AuditEventList])
async def list_events(
    q: Optional[str] = Query(default=None, min_length=1, description="Case-insensitive search over action, resource and details"),
    user_id: Optional[str] = Query(default=None, description="Events performed by this user"),
    resource: Optional[str] = Query(default=None, description="Events on this resource type"),
    resource_id: Optional[str] = Query(default=None, description="Narrow a resource query to one object"),
    severity: Optional[Severity] = Query(default=None, description="Events with exactly this severity"),
    start: Optional[datetime] = Query(default=None, description="Inclusive lower timestamp bound"),
    end: Optional[datetime] = Query(default=None, description="Inclusive upper timestamp bound"),
    min_severity: Optional[Severity] = Query(default=None, description="Drop events below this tier"),
    limit: int = Query(default=100, ge=1, le=1000),
    ledger: AuditLedger = Depends(get_audit_ledger),
    admin: dict = Depends(require_admin),
):
    """Query the ledger. Results are newest first."""
    # Filter before truncating so min_severity does not shrink the page
    scan_limit = ledger.max_events if min_severity else limit
    query_name, events = _run_query(ledger, scan_limit, q, user_id, resource, resource_id, severity, start, end)
    if min_severity:
        events = filter_min_severity(events, min_severity)[:limit]

    return success_response(
        data=AuditEventList(count=len(events), limit=limit, query=query_name, events=events),
        message=f"Retrieved {len(events)} audit event(s)",
    )


@router.post("/events", response_model=SuccessResponse[AuditEvent], status_code=status.HTTP_201_CREATED)
async def record_event(
    body: RecordEventRequest,
    request: Request,
    ledger: AuditLedger = Depends(get_audit_ledger),
    admin: dict = Depends(require_admin),
):
    """Record an event in the ledger on behalf of the caller (or the given user)."""
    try:
        event = create_audit_event(
            ledger,
            body.user_id or admin["user_id"],
            body.action,
            body.resource,
            body.details,
            resource_id=body.resource_id,
            ip_address=body.ip_address,
            user_agent=body.user_agent,
            severity=body.severity,
            outcome=body.outcome,
            request=request,
        )
    except UnknownAuditActionError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    return success_response(data=event, message="Audit event recorded")


@router.get("/stats", response_model=SuccessResponse[AuditStatisticsResponse])
async def get_statistics(
    ledger: AuditLedger = Depends(get_audit_ledger),
    admin: dict = Depends(require_admin),
):
    """Aggregate counts over the retained events."""
    stats = ledger.get_statistics()
    return success_response(
        data=AuditStatisticsResponse(
            total_events=stats.total_events,
            events_by_severity=stats.events_by_severity,
            events_by_action=stats.events_by_action,
            events_by_outcome=stats.events_by_outcome,
            recent_activity=stats.recent_activity,
            retained_capacity=ledger.max_events,
        ),
        message="Audit statistics retrieved",
    )


@router.get("/delivery", response_model=SuccessResponse[DeliveryStatusResponse])
async def get_delivery_status(
    ledger: AuditLedger = Depends(get_audit_ledger),
    admin: dict = Depends(require_admin),
):
    """Counters for the channel that ships events to the external collector."""
    delivery = ledger.delivery or NullDelivery()
    return success_response(
        data=DeliveryStatusResponse(**delivery.status().to_dict()),
        message="Audit delivery status retrieved",
    )


@router.get("/actions", response_model=SuccessResponse[dict])
async def list_actions(admin: dict = Depends(require_admin)):
    """The audit action vocabulary grouped by domain."""
    return success_response(
        data={
            "actions": action_groups(),
            "severities": [severity.value for severity in Severity],
            "outcomes": [outcome.value for outcome in Outcome],
        },
        message="Audit vocabulary retrieved",
    )


@router.get("/export")
async def export_audit_log(
    request: Request,
    export_format: Literal["json", "csv"] = Query(default="json", alias="format"),
    limit: int = Query(default=1000, ge=1, le=100000),
    ledger: AuditLedger = Depends(get_audit_ledger),
    admin: dict = Depends(require_admin),
):
    """Download retained events. The export itself is recorded as a data export event."""
    events = ledger.get_recent_events(limit=limit)
    body, media_type = export_events(events, export_format)

    create_audit_event(
        ledger,
        admin["user_id"],
        AuditAction.DATA_EXPORT,
        "audit_log",
        {"format": export_format, "count": len(events)},
        severity=Severity.MEDIUM,
        request=request,
    )
    app_logger.info(f"Audit log exported by {admin['user_id']}: {len(events)} event(s) as {export_format}")

    return Response(
        content=body,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="audit-log.{export_format}"'},
    )
