from supabase import AsyncClient
from typing import Any, Optional
from .logger import logger


def _apply_filters(query, filters: dict | None):
    """Apply ``{column: value}`` or ``{column: (operator, value)}`` filters to a query.

    Supported operators: 'eq', 'in', 'gt', 'lt', 'gte', 'lte', 'like', 'ilike', 'neq', 'is'.
    """
    for key, condition in (filters or {}).items():
        if isinstance(condition, tuple):  # Special operator cases
            operator, value = condition
            if operator == "in":
                query = query.in_(key, list(value))
            elif operator == "is":
                query = query.is_(key, value)
            elif operator in {"eq", "gt", "lt", "gte", "lte", "like", "ilike", "neq"}:
                query = getattr(query, operator)(key, value)
            else:
                raise ValueError(f"Unsupported filter operator: {operator}")
        else:  # Default to equality check
            query = query.eq(key, condition)
    return query


async def insert_data(
    supabase: AsyncClient,
    table_name: str,
    data: dict,
) -> Optional[str]:
    try:
        await supabase.table(table_name).insert(data).execute()
        return None
    except Exception as e:
        # supabase errors are badly structured and must cast to string and parsed
        if "duplicate" in str(e).lower():
            return "duplicate"
        logger.error(f"Error during insert to {table_name}: {e}")
        raise


async def query_data(
    supabase: AsyncClient,
    table_name: str,
    filters: dict | None = None,
    order_by: tuple | None = None,
    select_fields: str = "*",
    limit: Optional[int] = None,
):
    """
    Query a Supabase table with dynamic filters, ordering and limit.

    :param table_name: Name of the table to query.
    :param filters: Column filters, see ``_apply_filters``.
    :param order_by: Tuple (column_name, desc) where desc=True means descending order.
    :param select_fields: Fields to select (default is "*").
    :param limit: Optional integer to limit the number of results.
    :return: Query result from Supabase.
    """
    query = _apply_filters(supabase.table(table_name).select(select_fields), filters)

    if order_by:
        column, desc = order_by
        query = query.order(column, desc=desc)

    if limit:
        query = query.limit(limit)

    return await query.execute()


async def update_data(
    supabase: AsyncClient,
    table_name: str,
    *,
    update_values: dict,
    filters: dict,
) -> list[dict[str, Any]]:
    """Update the rows matching ``filters`` and return them as stored."""
    if not filters:
        # Never issue an unfiltered update
        raise ValueError(f"Refusing to update {table_name} without filters")
    try:
        query = _apply_filters(supabase.table(table_name).update(update_values), filters)
        response = await query.execute()
    except Exception as e:
        logger.error(f"Error updating {table_name}: {e}")
        raise
    return getattr(response, "data", None) or []


async def query_one(
    supabase: AsyncClient,
    table_name: str,
    match: dict | None = None,
    order_by: tuple | None = None,
    select_fields: str = "*",
):
    """Return the first (or *None*) row that matches the filters."""
    resp = await query_data(
        supabase,
        table_name,
        filters=match or {},
        order_by=order_by,
        select_fields=select_fields,
        limit=1,
    )
    # Supabase Python client returns a .data attribute on the response object.
    rows = getattr(resp, "data", None) or []
    return rows[0] if rows else None


async def query_many(
    supabase: AsyncClient,
    table_name: str,
    match: dict | None = None,
    order_by: tuple | None = None,
    select_fields: str = "*",
    limit: int | None = None,
):
    """Return a list of rows that match the filters (empty list if none)."""
    resp = await query_data(
        supabase,
        table_name,
        filters=match or {},
        order_by=order_by,
        select_fields=select_fields,
        limit=limit,
    )
    return getattr(resp, "data", None) or []
