from __future__ import annotations

import logging
from datetime import timedelta
from typing import Dict, List

from marketplace.db import is_unique_violation, load_json, new_id, utc_now
from marketplace.domain.contracts import ProposalSubmitInput, ServiceOutput
from marketplace.errors import NotFoundError, StateConflictError, ValidationError
from marketplace.identity import resolve_supplier_id
from marketplace.infrastructure.repositories.marketplace import (
    OrderRepository,
    PartyRepository,
    ProposalRepository,
    QuoteRepository,
)
from marketplace.application.notification_service import NotificationSink
from marketplace.observability import record_event
from marketplace.procurement.flow_policy import (
    normalize_availability,
    normalize_lead_time,
    proposal_update_mode,
)
from marketplace.procurement.numbering import proposal_number
from marketplace.procurement.order_sync import AmendedLine, line_subtotal, plan_order_sync
from marketplace.ui_strings import success_message


LOGGER = logging.getLogger("marketplace.proposals")


class ProposalService:
    def __init__(
        self,
        *,
        quotes: QuoteRepository | None = None,
        proposals: ProposalRepository | None = None,
        orders: OrderRepository | None = None,
        parties: PartyRepository | None = None,
        notifications: NotificationSink | None = None,
    ) -> None:
        self.quotes = quotes or QuoteRepository()
        self.proposals = proposals or ProposalRepository()
        self.orders = orders or OrderRepository()
        self.parties = parties or PartyRepository()
        self.notifications = notifications or NotificationSink()

    def submit_proposal(
        self,
        db,
        *,
        user_id: str,
        submit_input: ProposalSubmitInput,
        validity_days: int = 7,
    ) -> ServiceOutput:
        supplier_id = resolve_supplier_id(db, user_id)
        if not supplier_id:
            raise NotFoundError(code="supplier_not_found", message_key="supplier_not_found")
        if not submit_input.cotacao_id:
            raise ValidationError(code="cotacao_id_required", message_key="cotacao_id_required")
        if not submit_input.itens:
            raise ValidationError(code="items_required", message_key="items_required")

        quote = self.quotes.get_by_id(db, submit_input.cotacao_id)
        if not quote:
            raise NotFoundError(code="quote_not_found", message_key="quote_not_found")
        quote_id = str(quote["id"])

        linked_order = self.orders.get_for_supplier(db, quote_id, supplier_id)
        mode = proposal_update_mode(quote.get("status"), (linked_order or {}).get("status"))
        if mode is None:
            raise StateConflictError(
                code="quote_closed_for_proposals",
                message_key="quote_closed_for_proposals",
                payload={"cotacao_status": quote.get("status"), "pedido_status": (linked_order or {}).get("status")},
            )

        quote_items = {
            str(item["id"]): item for item in self.quotes.items_for_quotes(db, [quote_id]).get(quote_id, [])
        }
        foreign = [item.cotacao_item_id for item in submit_input.itens if item.cotacao_item_id not in quote_items]
        if foreign:
            raise ValidationError(
                code="proposal_items_invalid",
                message_key="proposal_items_invalid",
                payload={"invalid_items": foreign},
            )

        now = utc_now()
        now_iso = now.isoformat()
        values = {
            "valor_total": float(submit_input.valor_total or 0),
            "valor_frete": float(submit_input.valor_frete or 0),
            "impostos": float(submit_input.impostos or 0),
            "prazo_entrega": normalize_lead_time(submit_input.prazo_entrega),
            "condicoes_pagamento": submit_input.condicoes_pagamento or None,
            "observacoes": submit_input.observacoes or None,
            "data_validade": submit_input.data_validade
            or (now + timedelta(days=max(int(validity_days), 0))).isoformat(),
        }
        line_items = [
            {
                "id": new_id(),
                "cotacao_item_id": item.cotacao_item_id,
                "preco_unitario": float(item.preco_unitario or 0),
                "quantidade": float(item.quantidade or 0),
                "subtotal": line_subtotal(item.preco_unitario or 0, item.quantidade or 0, item.subtotal),
                "disponibilidade": normalize_availability(item.disponibilidade),
                "prazo_dias": normalize_lead_time(item.prazo_dias),
                "observacao": item.observacao or None,
            }
            for item in submit_input.itens
        ]

        existing = self.proposals.get_for_supplier(db, quote_id, supplier_id)
        updated = existing is not None
        if existing is None:
            proposal_id = new_id()
            try:
                self.proposals.insert(
                    db,
                    proposal_id=proposal_id,
                    numero=proposal_number(self.proposals.count_all(db) + 1),
                    quote_id=quote_id,
                    supplier_id=supplier_id,
                    values=values,
                    now=now_iso,
                )
            except Exception as exc:
                if not is_unique_violation(exc):
                    raise
                existing = self.proposals.get_for_supplier(db, quote_id, supplier_id)
                if existing is None:
                    raise
                updated = True
                LOGGER.info(
                    "proposal_insert_conflict",
                    extra={"cotacao_id": quote_id, "fornecedor_id": supplier_id},
                )
        if existing is not None:
            proposal_id = str(existing["id"])
            self.proposals.update_values(db, proposal_id, values=values, now=now_iso)

        self.proposals.replace_items(db, proposal_id, line_items)
        if not updated:
            self.quotes.mark_responded(db, quote_id, now_iso)

        supplier = self.parties.get_supplier(db, supplier_id) or {}
        self.notifications.notify_key(
            db,
            user_id=str(quote["user_id"]),
            key="proposal_updated" if updated else "proposal_new",
            audience="cliente",
            severity="info" if updated else "success",
            supplier=supplier.get("nome_fantasia") or supplier.get("razao_social") or "Um fornecedor",
        )

        sync_result = None
        if mode == "negotiable_order" and linked_order:
            sync_result = self._sync_order(
                db,
                order=linked_order,
                values=values,
                line_items=line_items,
                quote_items=quote_items,
                now_iso=now_iso,
            )

        record_event("proposals_updated" if updated else "proposals_created")
        LOGGER.info(
            "proposal_upserted",
            extra={
                "proposta_id": proposal_id,
                "cotacao_id": quote_id,
                "fornecedor_id": supplier_id,
                "updated": updated,
                "mode": mode,
            },
        )
        return ServiceOutput(
            payload={
                "success": True,
                "message": success_message("proposal_updated" if updated else "proposal_saved"),
                "data": self.proposals.get_by_id(db, proposal_id),
                "updated": updated,
                "pedido_sincronizado": sync_result,
            },
            status_code=200 if updated else 201,
        )

    def _sync_order(
        self,
        db,
        *,
        order: dict,
        values: dict,
        line_items: List[dict],
        quote_items: Dict[str, dict],
        now_iso: str,
    ) -> dict:
        order_id = str(order["id"])
        amended = [
            AmendedLine(
                nome=str(quote_items[item["cotacao_item_id"]].get("nome") or ""),
                preco_unitario=item["preco_unitario"],
                quantidade=item["quantidade"],
                subtotal=item["subtotal"],
            )
            for item in line_items
        ]
        plan = plan_order_sync(
            self.orders.items_for_orders(db, [order_id]).get(order_id, []),
            amended,
            freight=values["valor_frete"],
            taxes=values["impostos"],
            snapshot=load_json(order.get("snapshot"), {}),
            delivery_days=values["prazo_entrega"],
            payment_method=values["condicoes_pagamento"],
        )
        for item_id, line in plan.item_updates.items():
            self.orders.update_item_values(
                db,
                item_id,
                quantidade=line.quantidade,
                preco_unitario=line.preco_unitario,
                subtotal=line.subtotal,
            )
        self.orders.update_financials(
            db,
            order_id,
            valor_total=plan.total,
            impostos=values["impostos"],
            snapshot=plan.snapshot,
            condicoes_pagamento=values["condicoes_pagamento"],
            now=now_iso,
        )
        if plan.unmatched_items:
            LOGGER.warning(
                "order_sync_unmatched_items",
                extra={"pedido_id": order_id, "items": plan.unmatched_items},
            )
        record_event("orders_synced")
        LOGGER.info(
            "order_synced_from_proposal",
            extra={"pedido_id": order_id, "valor_total": plan.total, "items_updated": len(plan.item_updates)},
        )
        return {
            "pedido_id": order_id,
            "valor_total": plan.total,
            "subtotal": plan.subtotal,
            "itens_atualizados": len(plan.item_updates),
            "itens_sem_correspondencia": plan.unmatched_items,
        }
