"""Helpers for recording audit events from application code."""

from typing import Any, Optional, Tuple

from fastapi import Request

from hardmoney_audit.models.audit_event import (
    UNKNOWN,
    AuditAction,
    AuditEvent,
    AuditEventCreate,
    Outcome,
    Severity,
)
from hardmoney_audit.services.audit_ledger import AuditLedger


def get_audit_ledger(request: Request) -> AuditLedger:
    """Dependency returning the ledger owned by the running application."""
    return request.app.state.audit_ledger


def request_context(request: Optional[Request]) -> Tuple[str, str]:
    """Extract (ip_address, user_agent) from a request, defaulting to 'unknown'."""
    if request is None:
        return UNKNOWN, UNKNOWN

    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        ip_address = forwarded.split(",")[0].strip()
    else:
        ip_address = request.client.host if request.client else None
    user_agent = request.headers.get("user-agent")
    return ip_address or UNKNOWN, user_agent or UNKNOWN


def create_audit_event(
    ledger: AuditLedger,
    user_id: str,
    action: AuditAction | str,
    resource: str,
    details: Optional[dict[str, Any]] = None,
    *,
    resource_id: Optional[str] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
    severity: Severity | str = Severity.LOW,
    outcome: Outcome | str = Outcome.SUCCESS,
    request: Optional[Request] = None,
) -> AuditEvent:
    """Record an audit event with the usual defaults.

    Args:
        ledger: Ledger to record into
        user_id: Acting user
        action: Action name (e.g., AuditAction.DEAL_APPROVE or 'deal.approve')
        resource: Type of resource affected (e.g., 'deal', 'investment')
        details: Event-specific metadata
        resource_id: ID of the resource affected
        ip_address: Caller IP; taken from request or 'unknown' when absent
        user_agent: Caller user agent; taken from request or 'unknown' when absent
        severity: low, medium, high or critical
        outcome: success, failure or pending
        request: FastAPI Request to read IP and user agent from

    Returns:
        The recorded AuditEvent

    Raises:
        pydantic.ValidationError: If severity or outcome is not a known value
        UnknownAuditActionError: If the ledger is strict and the action is unknown
    """
    request_ip, request_agent = request_context(request)

    return ledger.log(AuditEventCreate(
        user_id=user_id,
        action=action,
        resource=resource,
        resource_id=resource_id,
        details=details or {},
        ip_address=ip_address or request_ip,
        user_agent=user_agent or request_agent,
        severity=severity,
        outcome=outcome,
    ))
