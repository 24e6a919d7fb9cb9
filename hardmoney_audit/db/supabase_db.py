"""Supabase REST API operations for persisted audit events.

Uses Supabase's REST API (HTTPS port 443), which works on hosting platforms
where a direct Postgres connection is not available.
"""

from typing import Optional, Dict, Any, List

from hardmoney_audit.utils.supabase_client import get_supabase_admin_client
from hardmoney_audit.config.logger import app_logger


async def insert_record(table: str, data: Dict[str, Any]) -> Dict[str, Any]:
    """Insert a record into any table."""
    try:
        client = get_supabase_admin_client()
        response = client.table(table).insert(data).execute()

        if response.data and len(response.data) > 0:
            return response.data[0]
        raise Exception(f"Failed to insert into {table} - no data returned")
    except Exception as e:
        app_logger.error(f"Failed to insert into {table}: {e}")
        raise


async def get_records(
    table: str,
    filters: Optional[Dict[str, Any]] = None,
    limit: Optional[int] = None,
    order_by: Optional[str] = None,
    ascending: bool = True,
) -> List[Dict[str, Any]]:
    """Get records from any table with optional filters."""
    try:
        client = get_supabase_admin_client()
        query = client.table(table).select('*')

        if filters:
            for key, value in filters.items():
                query = query.eq(key, value)

        if order_by:
            query = query.order(order_by, desc=not ascending)

        if limit:
            query = query.limit(limit)

        response = query.execute()
        return response.data or []
    except Exception as e:
        app_logger.error(f"Failed to get records from {table}: {e}")
        raise


async def ping_supabase(table: str = "audit_events") -> tuple[bool, str]:
    """Check if Supabase connection is healthy."""
    try:
        client = get_supabase_admin_client()
        client.table(table).select('id').limit(1).execute()
        return True, "Supabase REST API connection healthy"
    except Exception as e:
        return False, f"Supabase connection failed: {str(e)}"
