"""Audit event models.

AuditEvent is the immutable record kept by the ledger and shipped to the
collector. AuditEventRecord is its table form for the SQL audit store.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field as PydanticField, field_validator
from sqlalchemy import Column, DateTime, JSON
from sqlmodel import Field, SQLModel

UNKNOWN = "unknown"


class Severity(str, Enum):
    """Operator-assigned importance of an audit event."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return list(Severity).index(self)


class Outcome(str, Enum):
    """Result of the action an audit event describes."""

    SUCCESS = "success"
    FAILURE = "failure"
    PENDING = "pending"


class AuditAction(str, Enum):
    """Action vocabulary shared by every producer of audit events."""

    # Authentication
    LOGIN = "user.login"
    LOGOUT = "user.logout"
    LOGIN_FAILED = "user.login_failed"
    PASSWORD_CHANGE = "user.password_change"
    PASSWORD_RESET = "user.password_reset"
    TWO_FACTOR_ENABLE = "user.2fa_enable"
    TWO_FACTOR_DISABLE = "user.2fa_disable"

    # Deal management
    DEAL_CREATE = "deal.create"
    DEAL_UPDATE = "deal.update"
    DEAL_DELETE = "deal.delete"
    DEAL_APPROVE = "deal.approve"
    DEAL_REJECT = "deal.reject"
    DEAL_FUND = "deal.fund"

    # Investment management
    INVESTMENT_CREATE = "investment.create"
    INVESTMENT_UPDATE = "investment.update"
    INVESTMENT_CANCEL = "investment.cancel"
    INVESTMENT_APPROVE = "investment.approve"
    INVESTMENT_REJECT = "investment.reject"

    # Document management
    DOCUMENT_UPLOAD = "document.upload"
    DOCUMENT_DOWNLOAD = "document.download"
    DOCUMENT_DELETE = "document.delete"
    DOCUMENT_VIEW = "document.view"

    # Payment processing
    PAYMENT_INITIATE = "payment.initiate"
    PAYMENT_COMPLETE = "payment.complete"
    PAYMENT_FAIL = "payment.fail"
    PAYMENT_REFUND = "payment.refund"

    # Administrative
    USER_CREATE = "admin.user_create"
    USER_UPDATE = "admin.user_update"
    USER_DELETE = "admin.user_delete"
    USER_SUSPEND = "admin.user_suspend"
    USER_ACTIVATE = "admin.user_activate"
    SYSTEM_CONFIG_UPDATE = "admin.system_config_update"

    # Security
    SUSPICIOUS_ACTIVITY = "security.suspicious_activity"
    UNAUTHORIZED_ACCESS = "security.unauthorized_access"
    DATA_EXPORT = "security.data_export"
    DATA_IMPORT = "security.data_import"


# Domain prefix -> display group, in vocabulary order
_ACTION_GROUP_NAMES = {
    "user": "authentication",
    "deal": "deals",
    "investment": "investments",
    "document": "documents",
    "payment": "payments",
    "admin": "administration",
    "security": "security",
}


def action_groups() -> Dict[str, List[str]]:
    """Return the action vocabulary grouped by domain."""
    groups: Dict[str, List[str]] = {name: [] for name in _ACTION_GROUP_NAMES.values()}
    for action in AuditAction:
        prefix = action.value.split(".", 1)[0]
        groups[_ACTION_GROUP_NAMES[prefix]].append(action.value)
    return groups


def is_known_action(action: str) -> bool:
    """Check whether an action string belongs to the vocabulary."""
    return action in _KNOWN_ACTIONS


_KNOWN_ACTIONS = frozenset(action.value for action in AuditAction)


class AuditEventCreate(BaseModel):
    """Fields a producer supplies; id and timestamp are assigned by the ledger."""

    model_config = ConfigDict(
        populate_by_name=True,
        frozen=True,
        json_schema_extra={"example": {
            "userId": "user-42",
            "action": "deal.approve",
            "resource": "deal",
            "resourceId": "deal-1001",
            "details": {"amount": 250000},
            "severity": "medium",
            "outcome": "success",
        }},
    )

    user_id: str = PydanticField(..., alias="userId", description="Actor reference")
    action: str = PydanticField(..., min_length=1, description="Action from the AuditAction vocabulary")
    resource: str = PydanticField(..., description="Type of the object the action targets")
    resource_id: Optional[str] = PydanticField(default=None, alias="resourceId")
    details: Dict[str, Any] = PydanticField(default_factory=dict)
    ip_address: str = PydanticField(default=UNKNOWN, alias="ipAddress")
    user_agent: str = PydanticField(default=UNKNOWN, alias="userAgent")
    severity: Severity = Severity.LOW
    outcome: Outcome = Outcome.SUCCESS

    @field_validator("action", mode="before")
    @classmethod
    def _action_value(cls, value: Any) -> Any:
        if isinstance(value, AuditAction):
            return value.value
        return value

    @field_validator("ip_address", "user_agent", mode="before")
    @classmethod
    def _default_unknown(cls, value: Any) -> Any:
        if value is None or (isinstance(value, str) and not value.strip()):
            return UNKNOWN
        return value

    @field_validator("resource_id", mode="before")
    @classmethod
    def _resource_id_str(cls, value: Any) -> Any:
        if value is None or isinstance(value, str):
            return value
        return str(value)


class AuditEvent(AuditEventCreate):
    """Immutable audit record as retained by the ledger."""

    id: str
    timestamp: datetime

    @field_validator("timestamp")
    @classmethod
    def _aware_timestamp(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    def to_payload(self) -> Dict[str, Any]:
        """JSON-ready dict in the web client's camelCase wire format."""
        return self.model_dump(mode="json", by_alias=True)


class AuditEventRecord(SQLModel, table=True):
    """Persisted audit event (append-only)."""

    __tablename__ = "audit_events"

    id: str = Field(primary_key=True, max_length=64)
    user_id: str = Field(max_length=255, index=True)
    action: str = Field(max_length=100, index=True)
    resource: str = Field(max_length=100, index=True)
    resource_id: str | None = Field(default=None, max_length=255, index=True)
    # Generic JSON so this model works on both Postgres and SQLite
    details: dict = Field(default_factory=dict, sa_column=Column(JSON))
    ip_address: str = Field(default=UNKNOWN)
    user_agent: str = Field(default=UNKNOWN)
    severity: str = Field(max_length=20, index=True)
    outcome: str = Field(max_length=20)
    timestamp: datetime = Field(sa_column=Column(DateTime(timezone=True), index=True))

    @classmethod
    def from_event(cls, event: AuditEvent) -> "AuditEventRecord":
        return cls(
            id=event.id,
            user_id=event.user_id,
            action=event.action,
            resource=event.resource,
            resource_id=event.resource_id,
            details=dict(event.details),
            ip_address=event.ip_address,
            user_agent=event.user_agent,
            severity=event.severity.value,
            outcome=event.outcome.value,
            timestamp=event.timestamp,
        )

    def to_dict(self) -> Dict[str, Any]:
        timestamp = self.timestamp
        if timestamp is not None and timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)
        return {
            "id": self.id,
            "userId": self.user_id,
            "action": self.action,
            "resource": self.resource,
            "resourceId": self.resource_id,
            "details": self.details or {},
            "ipAddress": self.ip_address,
            "userAgent": self.user_agent,
            "severity": self.severity,
            "outcome": self.outcome,
            "timestamp": timestamp.isoformat() if timestamp else None,
        }
