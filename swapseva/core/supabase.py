import logging
from datetime import datetime
from functools import lru_cache
from typing import Optional, Dict, Any
from supabase import create_client, Client
from .config import get_settings

logger = logging.getLogger(__name__)

# Operators accepted in a filter value of the form {"op": value}
FILTER_OPERATORS = ("eq", "neq", "in", "contains", "gt", "lt")

@lru_cache()
def get_supabase_client() -> Client:
    """Get the shared Supabase client instance."""
    settings = get_settings()
    if not settings.supabase_url or not settings.supabase_key:
        raise ValueError(
            "SUPABASE_URL and SUPABASE_KEY must be set in environment variables"
        )
    logger.info(f"Connecting to Supabase at {settings.supabase_url}")
    return create_client(settings.supabase_url, settings.supabase_key)

def serialize_value(value: Any) -> Any:
    """Make a value JSON friendly before it is sent to PostgREST."""
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {key: serialize_value(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [serialize_value(item) for item in value]
    return value

def apply_filters(query, filters: Optional[Dict[str, Any]]):
    """Apply equality or {operator: value} filters to a query builder."""
    if not filters:
        return query
    for key, value in filters.items():
        if isinstance(value, dict):
            operator, operand = next(iter(value.items()))
            if operator not in FILTER_OPERATORS:
                raise ValueError(f"Unsupported filter operator: {operator}")
            if operator == "in":
                query = query.in_(key, list(operand))
            else:
                query = getattr(query, operator)(key, serialize_value(operand))
        else:
            query = query.eq(key, serialize_value(value))
    return query

async def execute_query(
    table: str,
    query_type: str,
    data: Optional[Any] = None,
    filters: Optional[Dict[str, Any]] = None,
    select: str = "*",
    limit: Optional[int] = None,
    offset: int = 0,
    order_by: Optional[Dict[str, str]] = None,
    count: bool = False
):
    """
    Execute a query on the Supabase database.

    Args:
        table: The table to query
        query_type: The type of query (select, insert, update, delete)
        data: The row (or list of rows) to insert, or the columns to update
        filters: The filters to apply to the query
        select: The columns to select
        limit: The maximum number of rows to return
        offset: The number of rows to skip
        order_by: The columns to order by, mapped to "asc" or "desc"
        count: Return (rows, total matching rows) instead of rows for selects

    Returns:
        The rows returned by the query
    """
    logger.debug(f"Executing {query_type} on table {table} with filters {filters}")

    try:
        query = get_supabase_client().table(table)

        if query_type == "select":
            query = query.select(select, count="exact") if count else query.select(select)
            query = apply_filters(query, filters)

            if order_by:
                for key, direction in order_by.items():
                    query = query.order(key, desc=direction.lower() == "desc")

            if limit is not None:
                query = query.range(offset, offset + limit - 1)

            result = query.execute()
            if count:
                return result.data, result.count or 0
            return result.data

        elif query_type == "insert":
            if not data:
                raise ValueError("Data is required for insert operations")
            result = query.insert(serialize_value(data)).execute()
            return result.data

        elif query_type == "update":
            if not data:
                raise ValueError("Data is required for update operations")
            if not filters:
                raise ValueError("Filters are required for update operations")
            result = apply_filters(query.update(serialize_value(data)), filters).execute()
            return result.data

        elif query_type == "delete":
            if not filters:
                raise ValueError("Filters are required for delete operations")
            result = apply_filters(query.delete(), filters).execute()
            return result.data

        else:
            raise ValueError(f"Invalid query type: {query_type}")

    except Exception:
        logger.exception(f"Error executing {query_type} on table {table} (filters: {filters})")
        raise

async def fetch_one(table: str, filters: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Return the first row matching the filters, or None."""
    rows = await execute_query(table=table, query_type="select", filters=filters, limit=1)
    return rows[0] if rows else None

async def sign_in(email: str, password: str):
    """
    Sign in a user with Supabase Auth.

    Args:
        email: The user's email
        password: The user's password

    Returns:
        The Supabase auth response
    """
    logger.info(f"Signing in user with email: {email}")
    return get_supabase_client().auth.sign_in_with_password({
        "email": email,
        "password": password
    })
