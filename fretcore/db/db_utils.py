"""
Marshalling between ItemStats models and item_stats rows.
"""

from typing import Any, Dict, List, Sequence, Tuple

import duckdb
from pydantic import ValidationError

from ..models import ItemStats
from ..exceptions import MarshallingError


def rows_to_dicts(cursor: duckdb.DuckDBPyConnection) -> List[Dict[str, Any]]:
    """Convert cursor results to a list of dictionaries keyed by column name."""
    rows = cursor.fetchall()
    if not rows:
        return []
    description = cursor.description
    if description is None:
        return []
    columns = [desc[0] for desc in description]
    return [dict(zip(columns, row, strict=True)) for row in rows]


def item_stats_to_db_params(
    namespace: str, item_id: str, stats: ItemStats
) -> Tuple:
    """
    Flatten an ItemStats record into upsert parameters, in the order
    (namespace, item_id, ewma, response_count, stability, last_correct_at,
    last_seen_at).
    """
    return (
        namespace,
        item_id,
        stats.ewma,
        stats.count,
        stats.stability,
        stats.last_correct_at,
        stats.last_seen_at,
    )


def db_row_to_item_stats(row_dict: Dict[str, Any]) -> ItemStats:
    """
    Build an ItemStats record from a row dictionary.

    Raises:
        MarshallingError: If the stored values violate the record's
            constraints (e.g. a negative EWMA or non-positive stability).
    """
    try:
        return ItemStats(
            ewma=row_dict["ewma"],
            count=row_dict["response_count"],
            stability=row_dict.get("stability"),
            last_correct_at=row_dict.get("last_correct_at"),
            last_seen_at=row_dict.get("last_seen_at"),
        )
    except (KeyError, ValidationError) as e:
        raise MarshallingError(
            f"Invalid item_stats row for item '{row_dict.get('item_id')}': {e}",
            original_exception=e,
        ) from e


def item_ids_placeholders(item_ids: Sequence[str], offset: int = 1) -> str:
    """Positional placeholders ($n, $n+1, ...) for an IN clause."""
    return ", ".join(f"${i}" for i in range(offset, offset + len(item_ids)))
