from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List

from marketplace.application.notification_service import NotificationSink
from marketplace.db import (
    is_missing_column,
    is_unique_violation,
    load_json,
    new_id,
    parse_timestamp,
    utc_now,
)
from marketplace.domain.contracts import (
    FinalizeOrderInput,
    OrderStatusUpdateInput,
    ServiceOutput,
    SupplierAward,
)
from marketplace.errors import NotFoundError, StateConflictError, SystemError, ValidationError
from marketplace.identity import resolve_supplier_id
from marketplace.infrastructure.repositories.marketplace import (
    OrderRepository,
    PartyRepository,
    ProposalRepository,
    QuoteRepository,
)
from marketplace.observability import record_event, record_order_status
from marketplace.procurement.delivery import expected_delivery, is_late
from marketplace.procurement.flow_policy import (
    allowed_actions,
    order_transition_error,
    primary_action,
)
from marketplace.procurement.invoices import validate_invoice
from marketplace.procurement.numbering import order_number
from marketplace.ui_strings import success_message


LOGGER = logging.getLogger("marketplace.orders")

TOP_PROPOSALS_REPORTED = 3


def _client_details(user: dict | None) -> Dict[str, Any]:
    user = user or {}
    return {
        "name": user.get("nome") or "Cliente",
        "document": user.get("cpf_cnpj") or "",
        "email": user.get("email") or "",
        "phone": user.get("telefone") or "",
    }


def _supplier_details(supplier: dict | None) -> Dict[str, Any]:
    supplier = supplier or {}
    return {
        "id": supplier.get("id"),
        "name": supplier.get("nome_fantasia") or supplier.get("razao_social") or "Fornecedor",
        "document": supplier.get("cnpj") or "",
        "email": supplier.get("email") or "",
        "phone": supplier.get("telefone") or "",
    }


def _award_subtotal(award: SupplierAward) -> float:
    return round(sum(float(item.total or 0) for item in award.items), 2)


def _format_date(value: datetime) -> str:
    return value.strftime("%d/%m/%Y")


class OrderService:
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

    def finalize_order(self, db, *, user_id: str, finalize_input: FinalizeOrderInput) -> ServiceOutput:
        if not finalize_input.cotacao_id:
            raise ValidationError(code="cotacao_id_required", message_key="cotacao_id_required")
        if not finalize_input.items_by_supplier:
            raise ValidationError(code="items_by_supplier_required", message_key="items_by_supplier_required")

        quote = self.quotes.get_by_id(db, finalize_input.cotacao_id)
        if not quote or str(quote.get("user_id")) != user_id:
            raise NotFoundError(code="quote_not_found", message_key="quote_not_found")
        quote_id = str(quote["id"])

        # Step 1: one award per supplier, first occurrence wins.
        awards: List[SupplierAward] = []
        seen: set[str] = set()
        for award in finalize_input.items_by_supplier:
            if not award.supplier_id or award.supplier_id in seen:
                continue
            seen.add(award.supplier_id)
            awards.append(award)

        suppliers = self.parties.suppliers_by_ids(db, [award.supplier_id for award in awards])
        missing = [award.supplier_id for award in awards if award.supplier_id not in suppliers]
        if missing:
            raise NotFoundError(
                code="supplier_not_found",
                message_key="supplier_not_found",
                payload={"fornecedor_ids": missing},
            )
        if any(not award.items for award in awards):
            raise ValidationError(code="items_required", message_key="items_required")

        proposals = self.proposals.list_by_quote(db, quote_id)
        proposals_by_supplier = {str(p["fornecedor_id"]): p for p in proposals}
        for award in awards:
            if not award.proposal_id:
                continue
            owned = proposals_by_supplier.get(award.supplier_id)
            if not owned or str(owned["id"]) != award.proposal_id:
                raise ValidationError(
                    code="proposal_mismatch",
                    message_key="proposal_mismatch",
                    payload={"fornecedor_id": award.supplier_id, "proposta_id": award.proposal_id},
                )

        site_id = finalize_input.obra_id or quote.get("obra_id")
        if finalize_input.obra_id and finalize_input.obra_id != quote.get("obra_id"):
            site = self.parties.get_site(db, finalize_input.obra_id)
            if not site or str(site.get("user_id")) != user_id:
                raise NotFoundError(code="obra_not_found", message_key="obra_not_found")

        # Step 2: suppliers already holding an order for this quote are skipped.
        existing_orders = self.orders.list_by_quote(db, quote_id, client_id=user_id)
        awarded_before = {str(order["fornecedor_id"]) for order in existing_orders}
        surviving = [award for award in awards if award.supplier_id not in awarded_before]
        skipped = [award.supplier_id for award in awards if award.supplier_id in awarded_before]

        client = _client_details(self.parties.get_user(db, user_id))
        now_iso = utc_now().isoformat()

        # Step 3: one order per surviving supplier.
        created: List[dict] = []
        accepted_ids: List[str] = []
        try:
            for position, award in enumerate(surviving, start=1):
                proposal = proposals_by_supplier.get(award.supplier_id)
                proposal_id = award.proposal_id or (str(proposal["id"]) if proposal else None)
                order = self._create_order(
                    db,
                    quote=quote,
                    award=award,
                    proposal_id=proposal_id,
                    supplier=suppliers[award.supplier_id],
                    client=client,
                    client_id=user_id,
                    site_id=site_id,
                    numero=order_number(quote.get("numero"), position, len(surviving)),
                    now_iso=now_iso,
                )
                if order is None:
                    skipped.append(award.supplier_id)
                    continue
                created.append(order)
                if proposal_id:
                    accepted_ids.append(proposal_id)
        except Exception as exc:
            self._compensate_created_orders(db, [order["id"] for order in created])
            raise SystemError(code="order_create_failed", message_key="unexpected_error", details=str(exc)) from exc

        # Step 4
        if not created:
            raise StateConflictError(
                code="no_orders_created",
                message_key="no_orders_created",
                payload={"fornecedores_ignorados": skipped},
            )

        for order in created:
            self.notifications.notify_key(
                db,
                user_id=suppliers[order["fornecedor_id"]].get("user_id"),
                key="order_new",
                audience="fornecedor",
                severity="success",
                number=order.get("numero") or order["id"],
            )

        # Step 5: close the quote.
        accepted_ids.extend(str(order["proposta_id"]) for order in existing_orders if order.get("proposta_id"))
        accepted_ids = list(dict.fromkeys(accepted_ids))
        total_proposals = len(proposals)
        top_proposals = [str(p["id"]) for p in proposals[:TOP_PROPOSALS_REPORTED]]
        self.proposals.set_statuses_for_quote(db, quote_id, accepted_ids, now_iso)
        self._close_quote(db, quote_id, total_proposals, now_iso)

        record_event("orders_created", len(created))
        record_event("orders_skipped", len(skipped))
        LOGGER.info(
            "quote_finalized",
            extra={
                "cotacao_id": quote_id,
                "pedido_ids": [order["id"] for order in created],
                "skipped_suppliers": skipped,
                "total_propostas": total_proposals,
                "top_propostas": top_proposals,
            },
        )
        return ServiceOutput(
            payload={
                "success": True,
                "message": success_message("orders_created"),
                "orders": created,
                "created": len(created),
                "skipped_suppliers": skipped,
                "total_propostas": total_proposals,
                "top_propostas": top_proposals,
                "propostas_aceitas": accepted_ids,
            },
            status_code=201,
        )

    def _create_order(
        self,
        db,
        *,
        quote: dict,
        award: SupplierAward,
        proposal_id: str | None,
        supplier: dict,
        client: dict,
        client_id: str,
        site_id: str | None,
        numero: str | None,
        now_iso: str,
    ) -> dict | None:
        subtotal = _award_subtotal(award)
        freight = round(float(award.freight or 0), 2)
        taxes = round(float(award.taxes or 0), 2)
        total = round(subtotal + freight + taxes, 2)
        snapshot = {
            "client": client,
            "supplier": _supplier_details(supplier),
            "items": [
                {
                    "name": item.name,
                    "quantity": item.quantity,
                    "unit": item.unit,
                    "unit_price": item.unit_price,
                    "total": item.total,
                    "cotacao_item_id": item.cotacao_item_id,
                }
                for item in award.items
            ],
            "summary": {
                "subtotal": subtotal,
                "freight": freight,
                "taxes": taxes,
                "total": total,
                "delivery_days": award.delivery_days,
                "payment_method": award.payment_method,
            },
        }

        order_id = new_id()
        try:
            self.orders.create(
                db,
                order_id=order_id,
                numero=numero,
                quote_id=str(quote["id"]),
                proposal_id=proposal_id,
                client_id=client_id,
                supplier_id=award.supplier_id,
                site_id=site_id,
                valor_total=total,
                impostos=taxes,
                snapshot=snapshot,
                condicoes_pagamento=award.payment_method,
                now=now_iso,
            )
        except Exception as exc:
            if not is_unique_violation(exc):
                raise
            LOGGER.info(
                "order_already_awarded",
                extra={"cotacao_id": quote["id"], "fornecedor_id": award.supplier_id},
            )
            return None

        for item in award.items:
            self.orders.add_item(
                db,
                item_id=new_id(),
                order_id=order_id,
                nome=item.name,
                quantidade=item.quantity,
                unidade=item.unit,
                preco_unitario=item.unit_price,
                subtotal=item.total,
            )
        return {
            "id": order_id,
            "numero": numero,
            "cotacao_id": str(quote["id"]),
            "proposta_id": proposal_id,
            "fornecedor_id": award.supplier_id,
            "obra_id": site_id,
            "valor_total": total,
            "status": "pendente",
            "snapshot": snapshot,
        }

    def _compensate_created_orders(self, db, order_ids: List[str]) -> None:
        for order_id in order_ids:
            try:
                self.orders.delete_order_and_items(db, order_id)
            except Exception:
                LOGGER.error("order_compensation_failed", extra={"pedido_id": order_id}, exc_info=True)

    def _close_quote(self, db, quote_id: str, total_proposals: int, now_iso: str) -> None:
        try:
            self.quotes.close(db, quote_id, total_propostas=total_proposals, updated_at=now_iso)
        except Exception as exc:
            if not is_missing_column(exc, "total_propostas"):
                raise
            LOGGER.warning("quote_close_without_total_propostas", extra={"cotacao_id": quote_id})
            self.quotes.close(db, quote_id, total_propostas=None, updated_at=now_iso)

    def update_status(
        self,
        db,
        *,
        user_id: str,
        update_input: OrderStatusUpdateInput,
        allowed_invoice_types: set[str],
        invoice_max_bytes: int,
        now: datetime | None = None,
    ) -> ServiceOutput:
        if not update_input.pedido_id or not update_input.status:
            raise ValidationError(code="pedido_id_required", message_key="pedido_id_required")

        order = self.orders.get_by_id(db, update_input.pedido_id)
        supplier_id = resolve_supplier_id(db, user_id)
        if not order or not supplier_id or str(order.get("fornecedor_id")) != supplier_id:
            raise NotFoundError(code="pedido_not_found", message_key="pedido_not_found")

        previous_status = order.get("status")
        target = update_input.status
        error_key = order_transition_error(previous_status, target)
        if error_key == "status_invalid":
            raise ValidationError(code=error_key, message_key=error_key)
        if error_key:
            raise StateConflictError(
                code=error_key,
                message_key=error_key,
                payload={"status_atual": previous_status, "status_solicitado": target},
            )

        now = now or utc_now()
        now_iso = now.isoformat()
        fields: Dict[str, Any] = {"status": target}
        if target == "confirmado" and not order.get("data_confirmacao"):
            fields["data_confirmacao"] = now_iso
        if target == "entregue":
            fields["data_entrega"] = now_iso

        snapshot = load_json(order.get("snapshot"), {}) or {}
        if update_input.resumo_patch:
            summary = dict(snapshot.get("summary") or {})
            summary.update(update_input.resumo_patch)
            snapshot = {**snapshot, "summary": summary}
            fields["snapshot"] = snapshot

        if update_input.invoice is not None:
            invoice = validate_invoice(
                update_input.invoice,
                allowed_types=allowed_invoice_types,
                max_bytes=invoice_max_bytes,
            )
            invoice["uploaded_at"] = now_iso
            fields["nota_fiscal"] = invoice

        if update_input.data_prevista_entrega:
            expected = parse_timestamp(update_input.data_prevista_entrega)
            if expected is None:
                raise ValidationError(code="validation_error", message_key="validation_error")
            fields["data_prevista_entrega"] = expected.isoformat()

        self.orders.update_status(db, str(order["id"]), fields=fields, now=now_iso)
        if "nota_fiscal" in fields:
            record_event("invoices_attached")
        updated = {**order, **fields}
        number = updated.get("numero") or updated["id"]

        if target != previous_status:
            record_order_status(target)
            self.notifications.notify_key(
                db,
                user_id=str(order["user_id"]),
                key=f"order_{target}",
                audience="cliente",
                severity="warning" if target == "cancelado" else "success",
                number=number,
            )

        late = is_late(updated, snapshot.get("summary"), now)
        if late:
            record_event("orders_late")
            expected_at = expected_delivery(updated, snapshot.get("summary"))
            self.notifications.notify_key(
                db,
                user_id=str(order["user_id"]),
                key="order_late",
                audience="cliente",
                severity="warning",
                number=number,
                expected=_format_date(expected_at) if expected_at else "",
            )

        LOGGER.info(
            "order_status_changed",
            extra={
                "pedido_id": order["id"],
                "from_status": previous_status,
                "to_status": target,
                "late": late,
                "invoice": "nota_fiscal" in fields,
            },
        )
        return ServiceOutput(
            payload={
                "success": True,
                "message": success_message("order_status_updated"),
                "data": self._present_order(self.orders.get_by_id(db, str(order["id"])) or updated, now=now),
                "atrasado": late,
            }
        )

    def list_orders(self, db, *, user_id: str, perspective: str | None = None) -> ServiceOutput:
        supplier_id = resolve_supplier_id(db, user_id)
        if perspective not in {"cliente", "fornecedor"}:
            perspective = "fornecedor" if supplier_id else "cliente"

        if perspective == "fornecedor":
            orders = self.orders.list_by_supplier(db, supplier_id) if supplier_id else []
        else:
            orders = self.orders.list_by_client(db, user_id)

        order_ids = [str(order["id"]) for order in orders]
        items = self.orders.items_for_orders(db, order_ids)
        sites = self.parties.sites_by_ids(db, [str(order.get("obra_id") or "") for order in orders])
        quotes = self.quotes.get_many(db, [str(order["cotacao_id"]) for order in orders])
        clients = self.parties.users_by_ids(db, [str(order["user_id"]) for order in orders])
        suppliers = self.parties.suppliers_by_ids(db, [str(order["fornecedor_id"]) for order in orders])

        now = utc_now()
        data = []
        for order in orders:
            order_id = str(order["id"])
            quote = quotes.get(str(order["cotacao_id"])) or {}
            site = sites.get(str(order.get("obra_id") or ""))
            client = clients.get(str(order["user_id"]))
            supplier = suppliers.get(str(order["fornecedor_id"]))
            data.append(
                {
                    **self._present_order(order, now=now),
                    "itens": items.get(order_id, []),
                    "obra": {"id": site.get("id"), "nome": site.get("nome"), "cidade": site.get("cidade")}
                    if site
                    else None,
                    "cotacao": {"id": quote.get("id"), "numero": quote.get("numero")} if quote else None,
                    "cliente": {"id": client.get("id"), "nome": client.get("nome"), "email": client.get("email")}
                    if client
                    else None,
                    "fornecedor": _supplier_details(supplier) if supplier else None,
                }
            )
        return ServiceOutput(payload={"data": data, "perspectiva": perspective, "fornecedor_id": supplier_id})

    @staticmethod
    def _present_order(order: dict, *, now: datetime) -> dict:
        snapshot = load_json(order.get("snapshot"), {}) or {}
        summary = snapshot.get("summary") or {}
        expected = expected_delivery(order, summary)
        status = order.get("status")
        return {
            **order,
            "snapshot": snapshot,
            "nota_fiscal": load_json(order.get("nota_fiscal"), None),
            "previsao_entrega": expected.isoformat() if expected else None,
            "atrasado": is_late(order, summary, now),
            "allowed_actions": allowed_actions("pedido", status),
            "primary_action": primary_action("pedido", status),
        }
