"""Persistence for events received by the collector.

Two interchangeable backends, picked from configuration:
- supabase: Supabase REST API, table settings.AUDIT_SUPABASE_TABLE
- sql: SQLModel table audit_events over settings.effective_database_url
"""

from typing import Any, Dict, List, Optional

from sqlmodel import select

from hardmoney_audit.config.logger import app_logger
from hardmoney_audit.config.settings import settings
from hardmoney_audit.db import db, supabase_db
from hardmoney_audit.models.audit_event import AuditEvent, AuditEventRecord

# Supabase column -> wire format key
_COLUMN_ALIASES = {
    "user_id": "userId",
    "resource_id": "resourceId",
    "ip_address": "ipAddress",
    "user_agent": "userAgent",
}


def _event_row(event: AuditEvent) -> Dict[str, Any]:
    row = event.model_dump(mode="json")
    row["timestamp"] = event.timestamp.isoformat()
    return row


def _row_payload(row: Dict[str, Any]) -> Dict[str, Any]:
    return {_COLUMN_ALIASES.get(key, key): value for key, value in row.items()}


async def persist_event(event: AuditEvent, backend: Optional[str] = None) -> Dict[str, Any]:
    """Write one event to the configured store and return it in wire format."""
    backend = backend or settings.effective_store_backend

    if backend == "supabase":
        row = await supabase_db.insert_record(settings.AUDIT_SUPABASE_TABLE, _event_row(event))
        app_logger.debug(f"Persisted audit event {event.id} via Supabase REST API")
        return _row_payload(row)

    try:
        async with db.db_session() as session:
            record = AuditEventRecord.from_event(event)
            session.add(record)
            await session.commit()
            app_logger.debug(f"Persisted audit event {event.id} via SQL store")
            return record.to_dict()
    except Exception as e:
        app_logger.error(f"Failed to persist audit event {event.id}: {e}")
        raise


async def list_persisted_events(
    user_id: Optional[str] = None,
    limit: int = 100,
    backend: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """Persisted events newest-first, optionally for one user."""
    backend = backend or settings.effective_store_backend

    if backend == "supabase":
        rows = await supabase_db.get_records(
            settings.AUDIT_SUPABASE_TABLE,
            filters={"user_id": user_id} if user_id else None,
            limit=limit,
            order_by="timestamp",
            ascending=False,
        )
        return [_row_payload(row) for row in rows]

    try:
        async with db.db_session() as session:
            statement = select(AuditEventRecord)
            if user_id:
                statement = statement.where(AuditEventRecord.user_id == user_id)
            statement = statement.order_by(AuditEventRecord.timestamp.desc()).limit(limit)
            result = await session.execute(statement)
            return [record.to_dict() for record in result.scalars().all()]
    except Exception as e:
        app_logger.error(f"Failed to list persisted audit events: {e}")
        raise


async def ping_store(backend: Optional[str] = None) -> tuple[bool, str]:
    """Health check for whichever backend is configured."""
    backend = backend or settings.effective_store_backend
    if backend == "supabase":
        return await supabase_db.ping_supabase(settings.AUDIT_SUPABASE_TABLE)
    return await db.ping_database()
