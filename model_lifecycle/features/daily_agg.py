"""
Daily aggregation of raw tenant records.

Collapses a stream of records into one summed value per calendar day, in
ascending date order.

Key design choices
------------------
1.  **Value field** — the first non-null of ``amount``, ``total_amount`` and
    ``quantity``. Records with none of them contribute 0 (but still create
    their day's bucket).

2.  **Date field** — ``created_at``, else ``date``. Records carrying neither
    land in today's (UTC) bucket. Strings are bucketed by their literal
    ``YYYY-MM-DD`` prefix, without timezone conversion.

3.  **No date spine** — days without records are simply absent. The returned
    series is therefore "one value per observed day", not "one value per
    calendar day"; a forecaster windowing over it sees gaps collapsed.

Input records may be pydantic models (``SaleRecord``,
``InventoryMovementRecord``) or plain mappings.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Mapping
from typing import Any, Iterable, Optional

from model_lifecycle.utils.time_utils import to_date_key, utcnow

_VALUE_FIELDS = ("amount", "total_amount", "quantity")
_DATE_FIELDS = ("created_at", "date")


def _field(record: Any, name: str) -> Any:
    if isinstance(record, Mapping):
        return record.get(name)
    return getattr(record, name, None)


def _first_present(record: Any, names: tuple[str, ...]) -> Optional[Any]:
    for name in names:
        value = _field(record, name)
        if value is not None:
            return value
    return None


def aggregate_daily(records: Iterable[Any]) -> list[float]:
    """Sum record values per calendar day.

    Args:
        records: Records with a value field and (optionally) a date field.

    Returns:
        Daily sums sorted by date ascending. Empty input returns ``[]``.
    """
    buckets: dict[str, float] = defaultdict(float)
    today: Optional[str] = None

    for record in records:
        stamp = _first_present(record, _DATE_FIELDS)
        if stamp is None:
            if today is None:
                today = utcnow().date().isoformat()
            key = today
        else:
            key = to_date_key(stamp)
        value = _first_present(record, _VALUE_FIELDS)
        buckets[key] += float(value) if value is not None else 0.0

    return [buckets[key] for key in sorted(buckets)]
