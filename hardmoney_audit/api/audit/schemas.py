"""Audit API request and response schemas."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from hardmoney_audit.models.audit_event import AuditEvent, Outcome, Severity


class RecordEventRequest(BaseModel):
    """Request schema for recording an event through the API.

    The acting user defaults to the caller; ip address and user agent
    default to the values seen on the request.
    """

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={"example": {
            "action": "deal.approve",
            "resource": "deal",
            "resourceId": "deal-1001",
            "details": {"loanAmount": 250000, "ltv": 0.65},
            "severity": "medium",
            "outcome": "success",
        }},
    )

    user_id: Optional[str] = Field(default=None, alias="userId", description="Acting user; defaults to the caller")
    action: str = Field(..., min_length=1, description="Action from the audit vocabulary")
    resource: str = Field(..., min_length=1, description="Type of resource affected")
    resource_id: Optional[str] = Field(default=None, alias="resourceId")
    details: Dict[str, Any] = Field(default_factory=dict)
    ip_address: Optional[str] = Field(default=None, alias="ipAddress")
    user_agent: Optional[str] = Field(default=None, alias="userAgent")
    severity: Severity = Severity.LOW
    outcome: Outcome = Outcome.SUCCESS


class AuditEventList(BaseModel):
    """A page of events, newest first."""

    count: int = Field(..., ge=0, description="Number of events returned")
    limit: int = Field(..., ge=1, description="Maximum number of events requested")
    query: str = Field(..., description="Which ledger query produced the result")
    events: List[AuditEvent]


class AuditStatisticsResponse(BaseModel):
    """Aggregate counts over the retained events."""

    model_config = ConfigDict(populate_by_name=True)

    total_events: int = Field(..., alias="totalEvents")
    events_by_severity: Dict[str, int] = Field(..., alias="eventsBySeverity")
    events_by_action: Dict[str, int] = Field(..., alias="eventsByAction")
    events_by_outcome: Dict[str, int] = Field(..., alias="eventsByOutcome")
    recent_activity: int = Field(..., alias="recentActivity", description="Events in the trailing 24 hours")
    retained_capacity: int = Field(..., alias="retainedCapacity", description="Maximum events kept in memory")


class DeliveryFailure(BaseModel):
    event_id: str
    status_code: Optional[int] = None
    error: Optional[str] = None
    attempted_at: str


class DeliveryStatusResponse(BaseModel):
    """State of the channel that ships events to the collector."""

    collector_url: Optional[str]
    running: bool
    submitted: int
    delivered: int
    failed: int
    dropped: int
    pending: int
    recent_failures: List[DeliveryFailure]
