from __future__ import annotations

from typing import Dict, List


QUOTE_OPEN_STATUSES = ("enviada", "respondida")
QUOTE_CLOSED_STATUS = "fechada"
QUOTE_SUPPLIER_VISIBLE_STATUSES = ("enviada", "respondida", "fechada")

PROPOSAL_SUBMITTED = "enviada"
PROPOSAL_ACCEPTED = "aceita"
PROPOSAL_REJECTED = "recusada"

ORDER_NEGOTIABLE_STATUSES = ("pendente", "confirmado")
ORDER_STATUS_SEQUENCE: List[str] = ["pendente", "confirmado", "em_preparacao", "enviado", "entregue"]
ORDER_CANCELLED = "cancelado"
ORDER_TERMINAL_STATUSES = ("entregue", ORDER_CANCELLED)
ORDER_CANCELLABLE_FROM = ("pendente", "confirmado", "em_preparacao")

DEFAULT_AVAILABILITY = "indisponivel"


FLOW_POLICY: Dict[str, Dict[str, Dict[str, object]]] = {
    "cotacao": {
        "enviada": {
            "allowed_actions": ["submit_proposal", "finalize_order", "view_quote"],
            "primary_action": "submit_proposal",
        },
        "respondida": {
            "allowed_actions": ["submit_proposal", "finalize_order", "view_quote", "compare_proposals"],
            "primary_action": "compare_proposals",
        },
        "fechada": {
            "allowed_actions": ["view_quote", "view_orders"],
            "primary_action": "view_orders",
        },
    },
    "pedido": {
        "pendente": {
            "allowed_actions": ["confirm_order", "amend_proposal", "cancel_order"],
            "primary_action": "confirm_order",
        },
        "confirmado": {
            "allowed_actions": ["prepare_order", "amend_proposal", "cancel_order"],
            "primary_action": "prepare_order",
        },
        "em_preparacao": {
            "allowed_actions": ["ship_order", "cancel_order"],
            "primary_action": "ship_order",
        },
        "enviado": {
            "allowed_actions": ["deliver_order"],
            "primary_action": "deliver_order",
        },
        "entregue": {"allowed_actions": [], "primary_action": None},
        "cancelado": {"allowed_actions": [], "primary_action": None},
    },
}


def allowed_actions(stage: str, status: str | None) -> List[str]:
    meta = FLOW_POLICY.get(stage, {}).get(str(status or ""), {})
    return list(meta.get("allowed_actions") or [])


def primary_action(stage: str, status: str | None) -> str | None:
    meta = FLOW_POLICY.get(stage, {}).get(str(status or ""), {})
    return meta.get("primary_action")  # type: ignore[return-value]


def quote_accepts_proposals(quote_status: str | None) -> bool:
    return quote_status in QUOTE_OPEN_STATUSES


def order_is_negotiable(order_status: str | None) -> bool:
    return order_status in ORDER_NEGOTIABLE_STATUSES


def proposal_update_mode(quote_status: str | None, linked_order_status: str | None) -> str | None:
    """Return "open", "negotiable_order" or None when the proposal is locked."""
    if quote_accepts_proposals(quote_status):
        return "open"
    if quote_status == QUOTE_CLOSED_STATUS and order_is_negotiable(linked_order_status):
        return "negotiable_order"
    return None


def derived_quote_status(stored_status: str | None, proposal_count: int) -> str:
    if stored_status == QUOTE_CLOSED_STATUS:
        return QUOTE_CLOSED_STATUS
    if proposal_count > 0:
        return "respondida"
    return "enviada"


def order_transition_error(current: str | None, target: str) -> str | None:
    """Return the error key blocking ``current -> target`` or None when allowed."""
    if target not in ORDER_STATUS_SEQUENCE and target != ORDER_CANCELLED:
        return "status_invalid"
    if current in ORDER_TERMINAL_STATUSES:
        return "order_status_terminal"
    if target == ORDER_CANCELLED:
        return None if current in ORDER_CANCELLABLE_FROM else "order_status_backwards"
    if current not in ORDER_STATUS_SEQUENCE:
        return None
    if ORDER_STATUS_SEQUENCE.index(target) < ORDER_STATUS_SEQUENCE.index(current):
        return "order_status_backwards"
    return None


def normalize_availability(value: str | None) -> str:
    normalized = str(value or "").strip().lower()
    return normalized or DEFAULT_AVAILABILITY


def normalize_lead_time(value) -> int | None:
    if value in (None, ""):
        return None
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return None
    return parsed if parsed >= 0 else None
