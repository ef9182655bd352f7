"""Propagation of an amended proposal into its still-negotiable order.

Order line items are matched to proposal line items by material name; order
items without a match keep their values.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping


@dataclass(frozen=True)
class AmendedLine:
    nome: str
    preco_unitario: float
    quantidade: float
    subtotal: float


@dataclass
class OrderSyncPlan:
    item_updates: Dict[str, AmendedLine] = field(default_factory=dict)
    unmatched_items: List[str] = field(default_factory=list)
    subtotal: float = 0.0
    total: float = 0.0
    snapshot: Dict[str, Any] = field(default_factory=dict)


def _name_key(value: Any) -> str:
    return " ".join(str(value or "").lower().split())


def line_subtotal(preco_unitario: float, quantidade: float, subtotal: float | None = None) -> float:
    if subtotal is not None and float(subtotal) > 0:
        return round(float(subtotal), 2)
    return round(float(preco_unitario) * float(quantidade), 2)


def plan_order_sync(
    order_items: Iterable[Mapping[str, Any]],
    amended_lines: Iterable[AmendedLine],
    *,
    freight: float,
    taxes: float,
    snapshot: Mapping[str, Any] | None,
    delivery_days: int | None = None,
    payment_method: str | None = None,
) -> OrderSyncPlan:
    amended_by_name: Dict[str, AmendedLine] = {}
    for line in amended_lines:
        amended_by_name.setdefault(_name_key(line.nome), line)

    plan = OrderSyncPlan()
    subtotal = 0.0
    for item in order_items:
        line = amended_by_name.get(_name_key(item.get("nome")))
        if line is None:
            plan.unmatched_items.append(str(item.get("nome") or ""))
            subtotal += float(item.get("subtotal") or 0)
            continue
        plan.item_updates[str(item["id"])] = line
        subtotal += line.subtotal

    plan.subtotal = round(subtotal, 2)
    plan.total = round(plan.subtotal + float(freight or 0) + float(taxes or 0), 2)

    merged = copy.deepcopy(dict(snapshot or {}))
    summary = dict(merged.get("summary") or {})
    summary.update(
        {
            "subtotal": plan.subtotal,
            "freight": round(float(freight or 0), 2),
            "taxes": round(float(taxes or 0), 2),
            "total": plan.total,
        }
    )
    if delivery_days is not None:
        summary["delivery_days"] = delivery_days
    if payment_method is not None:
        summary["payment_method"] = payment_method
    merged["summary"] = summary

    snapshot_items = merged.get("items")
    if isinstance(snapshot_items, list):
        refreshed = []
        for entry in snapshot_items:
            line = amended_by_name.get(_name_key((entry or {}).get("name")))
            if line is None:
                refreshed.append(entry)
                continue
            refreshed.append(
                {
                    **entry,
                    "quantity": line.quantidade,
                    "unit_price": line.preco_unitario,
                    "total": line.subtotal,
                }
            )
        merged["items"] = refreshed

    plan.snapshot = merged
    return plan
