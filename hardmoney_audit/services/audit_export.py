"""Export of retained audit events for compliance review."""

import csv
import io
import json
from typing import Iterable, List

from hardmoney_audit.models.audit_event import AuditEvent

CSV_COLUMNS = [
    "id",
    "timestamp",
    "userId",
    "action",
    "resource",
    "resourceId",
    "severity",
    "outcome",
    "ipAddress",
    "userAgent",
    "details",
]

EXPORT_FORMATS = ("json", "csv")


def events_to_json(events: Iterable[AuditEvent]) -> str:
    return json.dumps([event.to_payload() for event in events], indent=2)


def events_to_csv(events: Iterable[AuditEvent]) -> str:
    """One row per event; details are embedded as a JSON string."""
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=CSV_COLUMNS, lineterminator="\n")
    writer.writeheader()
    for event in events:
        row = event.to_payload()
        row["details"] = json.dumps(row["details"], sort_keys=True)
        writer.writerow({column: row.get(column) for column in CSV_COLUMNS})
    return buffer.getvalue()


def export_events(events: List[AuditEvent], export_format: str) -> tuple[str, str]:
    """Render events and return (body, media type).

    Raises:
        ValueError: If the format is not supported
    """
    if export_format == "json":
        return events_to_json(events), "application/json"
    if export_format == "csv":
        return events_to_csv(events), "text/csv"
    raise ValueError(f"Unsupported export format: {export_format!r} (expected one of {', '.join(EXPORT_FORMATS)})")
