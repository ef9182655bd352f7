from __future__ import annotations

from typing import Iterable


def next_quote_number(existing: Iterable[object], start: int = 10001) -> str:
    highest = start - 1
    for value in existing:
        raw = str(value or "").strip()
        if raw.isdigit():
            highest = max(highest, int(raw))
    return str(highest + 1)


def proposal_number(sequence: int) -> str:
    return f"PROP-{int(sequence):04d}"


def order_number(quote_number: str | None, position: int, total: int) -> str | None:
    """Number of the ``position``-th (1-based) order split from one quote."""
    if not quote_number:
        return None
    if total <= 1:
        return str(quote_number)
    return f"{quote_number}.{position}"
