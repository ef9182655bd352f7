from __future__ import annotations

from typing import Any, Iterable, Sequence


class BaseRepository:
    """Raw SQL access for one table family; every method receives the request ``db``."""

    @staticmethod
    def rows_to_dicts(rows: Iterable[Any]) -> list[dict]:
        return [dict(row) for row in rows]

    @staticmethod
    def row_to_dict(row: Any) -> dict | None:
        return dict(row) if row else None

    @staticmethod
    def in_clause(values: Sequence[Any]) -> str:
        if not values:
            raise ValueError("IN clause requires at least one value")
        return ", ".join("?" for _ in values)
