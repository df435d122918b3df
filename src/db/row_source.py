"""
Row source -- pulls raw sales fact rows in pages.

  1. Filters on ``order_date >= from_date`` (and ``<= to_date`` when given)
  2. Pages with LIMIT/OFFSET ordered by order_date, then every other selected
     column, so rows tied on a date keep one order across pages; a short
     page ends the loop
  3. Stops at ``Settings.fetch_max_rows`` and logs the truncation
  4. Converts Decimal/date/datetime to JSON-safe Python types
"""
from __future__ import annotations

import decimal
import datetime
from typing import Any, Callable, Iterable

from sqlalchemy import text
from sqlalchemy.engine import Connection

from src.db.connection import readonly_connection
from src.core.config import get_settings
from src.core.logging import get_logger

logger = get_logger(__name__)

FACT_COLUMNS = (
    "order_date", "year", "quarter", "month", "region", "state", "channel",
    "product_category", "product_name", "revenue", "units", "cogs",
)

DEFAULT_FROM_DATE = datetime.date(2000, 1, 1)

OPTIONAL_COLUMNS = ("sales_rep",)

PageFetcher = Callable[[int, int], list[dict[str, Any]]]


def _serialise_value(val: Any) -> Any:
    """Convert DB types to JSON-serialisable Python types."""
    if isinstance(val, decimal.Decimal):
        return float(val)
    if isinstance(val, (datetime.date, datetime.datetime)):
        return val.isoformat()
    return val


def paginate(fetch_page: PageFetcher, page_size: int, max_rows: int) -> list[dict[str, Any]]:
    """Call ``fetch_page(offset, limit)`` until a short page or *max_rows*."""
    if page_size <= 0:
        raise ValueError("page_size must be positive")

    acc: list[dict[str, Any]] = []
    offset = 0
    while len(acc) < max_rows:
        limit = min(page_size, max_rows - len(acc))
        page = fetch_page(offset, limit)
        acc.extend(page)
        logger.debug("Fetched page offset=%d rows=%d", offset, len(page))
        if len(page) < limit:
            return acc
        offset += len(page)

    logger.warning("Row fetch truncated at max_rows=%d", max_rows)
    return acc


def fact_columns(fields: Iterable[str] = ()) -> tuple[str, ...]:
    """Columns to SELECT for a query touching *fields*.

    Optional columns (``sales_rep``) are included when a field names them or
    ``Settings.fact_include_sales_rep`` is on.
    """
    wanted = set(fields)
    include_all = get_settings().fact_include_sales_rep
    return FACT_COLUMNS + tuple(c for c in OPTIONAL_COLUMNS if include_all or c in wanted)


def order_by_clause(columns: tuple[str, ...]) -> str:
    """``order_date`` first, then every other column as a tiebreaker."""
    rest = [c for c in columns if c != "order_date"]
    head = ["order_date"] if "order_date" in columns else []
    return ", ".join(head + rest)


def fetch_rows(
    conn: Connection,
    from_date: datetime.date | None = None,
    to_date: datetime.date | None = None,
    table: str | None = None,
    columns: tuple[str, ...] | None = None,
    page_size: int | None = None,
    max_rows: int | None = None,
) -> list[dict[str, Any]]:
    """Fetch fact rows on *conn*, oldest first.

    Database errors propagate to the caller.
    """
    settings = get_settings()
    table = table or settings.fact_table_identifier
    page_size = page_size or settings.fetch_page_size
    max_rows = max_rows or settings.fetch_max_rows
    if columns is None:
        columns = fact_columns()

    where = "order_date >= :from_date"
    params: dict[str, Any] = {"from_date": (from_date or DEFAULT_FROM_DATE).isoformat()}
    if to_date is not None:
        where += " AND order_date <= :to_date"
        params["to_date"] = to_date.isoformat()

    sql = text(
        f"SELECT {', '.join(columns)} FROM {table} "
        f"WHERE {where} ORDER BY {order_by_clause(columns)} LIMIT :limit OFFSET :offset"
    )

    def fetch_page(offset: int, limit: int) -> list[dict[str, Any]]:
        result = conn.execute(sql, {**params, "limit": limit, "offset": offset})
        keys = list(result.keys())
        return [
            {k: _serialise_value(v) for k, v in zip(keys, row)}
            for row in result.fetchall()
        ]

    rows = paginate(fetch_page, page_size, max_rows)
    logger.info("Fetched %d fact rows from %s (from=%s)", len(rows), table, params["from_date"])
    return rows


def fetch_all_rows(
    from_date: datetime.date | None = None,
    to_date: datetime.date | None = None,
    columns: tuple[str, ...] | None = None,
) -> list[dict[str, Any]]:
    """Fetch fact rows over a read-only pooled connection."""
    with readonly_connection() as conn:
        return fetch_rows(conn, from_date=from_date, to_date=to_date, columns=columns)
