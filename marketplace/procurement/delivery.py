from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Mapping

from marketplace.db import parse_timestamp


def expected_delivery(order: Mapping[str, Any], summary: Mapping[str, Any] | None = None) -> datetime | None:
    """Explicit expected date, else creation date plus the summary's delivery days."""
    explicit = parse_timestamp(order.get("data_prevista_entrega"))
    if explicit is not None:
        return explicit
    created_at = parse_timestamp(order.get("created_at"))
    if created_at is None:
        return None
    days = (summary or {}).get("delivery_days")
    try:
        days = int(days)
    except (TypeError, ValueError):
        return None
    if days < 0:
        return None
    return created_at + timedelta(days=days)


def is_late(
    order: Mapping[str, Any],
    summary: Mapping[str, Any] | None,
    now: datetime,
) -> bool:
    expected = expected_delivery(order, summary)
    if expected is None:
        return False
    if order.get("status") == "cancelado":
        return False
    if order.get("status") == "entregue":
        delivered_at = parse_timestamp(order.get("data_entrega"))
        return delivered_at is not None and delivered_at > expected
    return now > expected
