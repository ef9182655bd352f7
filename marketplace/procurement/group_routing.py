"""Routing of requested materials to insumo groups.

A quote always carries materials of a single insumo group. Line items are
resolved to a group through the material catalogue first and the caller's
group label second; the same resolution decides which suppliers can see a
quote.
"""

from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, List, Mapping, Sequence

from marketplace.domain.contracts import QuoteLineItemInput


GROUP_MARKER_PATTERN = re.compile(r"^\[Grupo: ([^\]]+)\]\s*")


@dataclass
class RoutedGroup:
    group_id: str | None
    group_name: str
    items: List[QuoteLineItemInput] = field(default_factory=list)


@dataclass(frozen=True)
class RoutingResult:
    groups: Dict[str, RoutedGroup]
    invalid_items: List[str]

    @property
    def ok(self) -> bool:
        return not self.invalid_items and bool(self.groups)


def normalize_group_name(value: str | None) -> str:
    decomposed = unicodedata.normalize("NFKD", str(value or ""))
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return " ".join(stripped.lower().split())


def _resolve_group(
    item: QuoteLineItemInput,
    material_groups: Mapping[str, Sequence[dict]],
    groups_by_name: Mapping[str, dict],
) -> dict | None:
    label = normalize_group_name(item.grupo)
    mapped = list(material_groups.get(item.material_id or "", ()))
    if mapped:
        for group in mapped:
            if label and normalize_group_name(group.get("nome")) == label:
                return group
        return mapped[0]
    if label:
        return groups_by_name.get(label)
    return None


def route_quote_line_items(
    items: Iterable[QuoteLineItemInput],
    *,
    material_groups: Mapping[str, Sequence[dict]],
    known_groups: Iterable[dict],
) -> RoutingResult:
    """Bucket ``items`` by resolved insumo group.

    ``material_groups`` maps material id to its group rows (``id``, ``nome``);
    ``known_groups`` lists every registered group. Items that resolve to no
    group are reported by name in ``invalid_items``.
    """
    groups_by_name = {normalize_group_name(group.get("nome")): group for group in known_groups}
    buckets: Dict[str, RoutedGroup] = {}
    invalid: List[str] = []

    for item in items:
        group = _resolve_group(item, material_groups, groups_by_name)
        if group is None:
            invalid.append(item.nome)
            continue
        group_id = str(group.get("id") or "") or None
        group_name = str(group.get("nome") or item.grupo or "").strip()
        key = group_id or f"nome:{normalize_group_name(group_name)}"
        bucket = buckets.setdefault(key, RoutedGroup(group_id=group_id, group_name=group_name))
        bucket.items.append(replace(item, grupo=group_name))

    return RoutingResult(groups=buckets, invalid_items=invalid)


def group_marker(group_name: str, notes: str | None = None) -> str:
    marker = f"[Grupo: {group_name}]"
    extra = str(notes or "").strip()
    return f"{marker} {extra}" if extra else marker


def group_name_from_notes(notes: str | None) -> str | None:
    match = GROUP_MARKER_PATTERN.match(str(notes or ""))
    return match.group(1).strip() if match else None


def quote_visible_to_supplier(
    quote_items: Iterable[Mapping[str, object]],
    supplier_group_ids: set[str],
    supplier_group_names: set[str],
) -> bool:
    if not supplier_group_ids and not supplier_group_names:
        return False
    for item in quote_items:
        group_id = str(item.get("grupo_id") or "")
        if group_id and group_id in supplier_group_ids:
            return True
        group_name = normalize_group_name(item.get("grupo"))  # type: ignore[arg-type]
        if group_name and group_name in supplier_group_names:
            return True
    return False
