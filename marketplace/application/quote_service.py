from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Dict, List

from marketplace.db import new_id, utc_now
from marketplace.domain.contracts import QuoteCreateInput, ServiceOutput
from marketplace.errors import NotFoundError, SystemError, ValidationError
from marketplace.identity import resolve_supplier_id
from marketplace.infrastructure.repositories.marketplace import (
    CatalogRepository,
    OrderRepository,
    PartyRepository,
    ProposalRepository,
    QuoteRepository,
)
from marketplace.observability import record_event
from marketplace.procurement.flow_policy import (
    QUOTE_CLOSED_STATUS,
    QUOTE_SUPPLIER_VISIBLE_STATUSES,
    allowed_actions,
    derived_quote_status,
    primary_action,
)
from marketplace.procurement.group_routing import (
    group_marker,
    group_name_from_notes,
    normalize_group_name,
    quote_visible_to_supplier,
    route_quote_line_items,
)
from marketplace.procurement.numbering import next_quote_number
from marketplace.ui_strings import success_message


LOGGER = logging.getLogger("marketplace.quotes")

AWARDED_TO_SUPPLIER = "awarded"
AWARDED_TO_OTHER = "other_supplier"
AWARD_UNRESOLVED = "unresolved"

_SITE_FIELDS = (
    "id",
    "nome",
    "cep",
    "logradouro",
    "numero",
    "complemento",
    "bairro",
    "cidade",
    "estado",
    "horario_entrega",
    "restricoes_entrega",
)


def _site_summary(site: dict | None) -> dict | None:
    if not site:
        return None
    return {field: site.get(field) for field in _SITE_FIELDS}


def _user_summary(user: dict | None) -> dict | None:
    if not user:
        return None
    return {"id": user.get("id"), "nome": user.get("nome"), "email": user.get("email")}


def _supplier_summary(supplier: dict | None) -> dict | None:
    if not supplier:
        return None
    return {
        "id": supplier.get("id"),
        "razao_social": supplier.get("razao_social"),
        "nome_fantasia": supplier.get("nome_fantasia"),
        "cnpj": supplier.get("cnpj"),
        "email": supplier.get("email"),
        "telefone": supplier.get("telefone"),
        "cidade": supplier.get("cidade"),
        "estado": supplier.get("estado"),
    }


class QuoteService:
    def __init__(
        self,
        *,
        quotes: QuoteRepository | None = None,
        proposals: ProposalRepository | None = None,
        orders: OrderRepository | None = None,
        catalog: CatalogRepository | None = None,
        parties: PartyRepository | None = None,
    ) -> None:
        self.quotes = quotes or QuoteRepository()
        self.proposals = proposals or ProposalRepository()
        self.orders = orders or OrderRepository()
        self.catalog = catalog or CatalogRepository()
        self.parties = parties or PartyRepository()

    def create_quotes(
        self,
        db,
        *,
        user_id: str,
        create_input: QuoteCreateInput,
        number_start: int = 10001,
        validity_days: int = 7,
    ) -> ServiceOutput:
        if not create_input.obra_id:
            raise ValidationError(code="obra_id_required", message_key="obra_id_required")
        if not create_input.itens:
            raise ValidationError(code="items_required", message_key="items_required")

        site = self.parties.get_site(db, create_input.obra_id)
        if not site or str(site.get("user_id")) != user_id:
            raise NotFoundError(code="obra_not_found", message_key="obra_not_found")

        routing = route_quote_line_items(
            create_input.itens,
            material_groups=self.catalog.groups_by_material(
                db, [item.material_id for item in create_input.itens if item.material_id]
            ),
            known_groups=self.catalog.list_groups(db),
        )
        if not routing.ok:
            raise ValidationError(
                code="invalid_group_items",
                message_key="invalid_group_items",
                payload={"invalid_items": routing.invalid_items},
            )

        now = utc_now()
        sent_at = now.isoformat()
        valid_until = (now + timedelta(days=max(int(validity_days), 0))).isoformat()
        existing_numbers = self.quotes.list_numbers(db)

        created: List[dict] = []
        try:
            for bucket in routing.groups.values():
                numero = next_quote_number(existing_numbers, start=number_start)
                existing_numbers.append(numero)
                quote_id = new_id()
                self.quotes.create(
                    db,
                    quote_id=quote_id,
                    numero=numero,
                    user_id=user_id,
                    obra_id=create_input.obra_id,
                    observacoes=group_marker(bucket.group_name, create_input.observacoes),
                    data_envio=sent_at,
                    data_validade=valid_until,
                )
                created.append(
                    {
                        "id": quote_id,
                        "numero": numero,
                        "grupo": bucket.group_name,
                        "grupo_id": bucket.group_id,
                        "itens": len(bucket.items),
                    }
                )
                for item in bucket.items:
                    self.quotes.add_item(
                        db,
                        item_id=new_id(),
                        quote_id=quote_id,
                        nome=item.nome,
                        quantidade=item.quantidade,
                        unidade=item.unidade,
                        material_id=item.material_id,
                        grupo=item.grupo,
                        grupo_id=bucket.group_id,
                        observacao=item.observacao,
                        fase_nome=item.fase_nome,
                        servico_nome=item.servico_nome,
                    )
        except Exception as exc:
            self._compensate_created_quotes(db, [quote["id"] for quote in created])
            raise SystemError(
                code="quote_create_failed",
                message_key="unexpected_error",
                details=str(exc),
            ) from exc

        record_event("quotes_created", len(created))
        LOGGER.info(
            "quotes_created",
            extra={"user_id": user_id, "obra_id": create_input.obra_id, "quote_ids": [q["id"] for q in created]},
        )
        return ServiceOutput(
            payload={
                "success": True,
                "message": success_message("quotes_created"),
                "data": created,
                "total": len(created),
            },
            status_code=201,
        )

    def _compensate_created_quotes(self, db, quote_ids: List[str]) -> None:
        for quote_id in quote_ids:
            try:
                self.quotes.delete_quote_and_items(db, quote_id)
            except Exception:
                LOGGER.error("quote_compensation_failed", extra={"quote_id": quote_id}, exc_info=True)

    def list_for_client(self, db, *, user_id: str) -> ServiceOutput:
        quotes = self.quotes.list_by_user(db, user_id)
        quote_ids = [str(quote["id"]) for quote in quotes]
        items_by_quote = self.quotes.items_for_quotes(db, quote_ids)
        live_counts = self.proposals.count_by_quotes(db, quote_ids)
        sites = self.parties.sites_by_ids(db, [str(quote["obra_id"]) for quote in quotes])

        data = []
        for quote in quotes:
            quote_id = str(quote["id"])
            live = live_counts.get(quote_id, 0)
            closed = quote.get("status") == QUOTE_CLOSED_STATUS
            frozen = quote.get("total_propostas")
            status = derived_quote_status(quote.get("status"), live)
            data.append(
                {
                    **quote,
                    "status": status,
                    "grupo": group_name_from_notes(quote.get("observacoes")),
                    "itens": items_by_quote.get(quote_id, []),
                    "obra": _site_summary(sites.get(str(quote["obra_id"]))),
                    "total_propostas": int(frozen) if closed and frozen is not None else live,
                    "allowed_actions": allowed_actions("cotacao", status),
                    "primary_action": primary_action("cotacao", status),
                }
            )
        return ServiceOutput(payload={"data": data})

    def detail_for_client(self, db, *, user_id: str, quote_id: str) -> ServiceOutput:
        quote = self.quotes.get_by_id(db, quote_id)
        if not quote or str(quote.get("user_id")) != user_id:
            raise NotFoundError(code="quote_not_found", message_key="quote_not_found")

        items = self.quotes.items_for_quotes(db, [quote_id]).get(quote_id, [])
        proposals = self.proposals.list_by_quote(db, quote_id)
        proposal_items = self.proposals.items_for_proposals(db, [str(p["id"]) for p in proposals])
        suppliers = self.parties.suppliers_by_ids(db, [str(p["fornecedor_id"]) for p in proposals])
        orders = self.orders.list_by_quote(db, quote_id, client_id=user_id)
        order_items = self.orders.items_for_orders(db, [str(order["id"]) for order in orders])

        status = derived_quote_status(quote.get("status"), len(proposals))
        return ServiceOutput(
            payload={
                "data": {
                    **quote,
                    "status": status,
                    "grupo": group_name_from_notes(quote.get("observacoes")),
                    "itens": items,
                    "obra": _site_summary(self.parties.get_site(db, str(quote["obra_id"]))),
                    "propostas": [
                        {
                            **proposal,
                            "fornecedor": _supplier_summary(suppliers.get(str(proposal["fornecedor_id"]))),
                            "itens": proposal_items.get(str(proposal["id"]), []),
                        }
                        for proposal in proposals
                    ],
                    "pedidos": [
                        {**order, "itens": order_items.get(str(order["id"]), [])} for order in orders
                    ],
                    "allowed_actions": allowed_actions("cotacao", status),
                    "primary_action": primary_action("cotacao", status),
                }
            }
        )

    def list_for_supplier(self, db, *, user_id: str) -> ServiceOutput:
        supplier_id = resolve_supplier_id(db, user_id)
        if not supplier_id:
            return ServiceOutput(payload={"data": [], "fornecedor_id": None, "fornecedor_status": "not_found"})

        supplier = self.parties.get_supplier(db, supplier_id) or {}
        supplier_status = supplier.get("status") or "active"
        if supplier_status == "suspended":
            return ServiceOutput(
                payload={"data": [], "fornecedor_id": supplier_id, "fornecedor_status": supplier_status}
            )

        groups = self.catalog.supplier_groups(db, supplier_id)
        group_ids = {str(group["id"]) for group in groups}
        group_names = {normalize_group_name(group.get("nome")) for group in groups}

        quotes = self.quotes.list_by_statuses(db, list(QUOTE_SUPPLIER_VISIBLE_STATUSES))
        quote_ids = [str(quote["id"]) for quote in quotes]
        items_by_quote = self.quotes.items_for_quotes(db, quote_ids)
        own_proposals = {
            str(proposal["cotacao_id"]): proposal
            for proposal in self.proposals.list_by_supplier(db, supplier_id, quote_ids)
        }

        visible: List[dict] = []
        for quote in quotes:
            quote_id = str(quote["id"])
            if not quote_visible_to_supplier(items_by_quote.get(quote_id, []), group_ids, group_names):
                continue
            if quote.get("status") == QUOTE_CLOSED_STATUS and quote_id not in own_proposals:
                continue
            visible.append(quote)

        closed_ids = [str(q["id"]) for q in visible if q.get("status") == QUOTE_CLOSED_STATUS]
        orders_by_quote: Dict[str, List[dict]] = {}
        for order in self.orders.list_by_quotes(db, closed_ids):
            orders_by_quote.setdefault(str(order["cotacao_id"]), []).append(order)

        sites = self.parties.sites_by_ids(db, [str(quote["obra_id"]) for quote in visible])
        clients = self.parties.users_by_ids(db, [str(quote["user_id"]) for quote in visible])

        data = []
        for quote in visible:
            quote_id = str(quote["id"])
            proposal = own_proposals.get(quote_id)
            entry: Dict[str, Any] = {
                **quote,
                "grupo": group_name_from_notes(quote.get("observacoes")),
                "itens": items_by_quote.get(quote_id, []),
                "obra": _site_summary(sites.get(str(quote["obra_id"]))),
                "cliente": _user_summary(clients.get(str(quote["user_id"]))),
                "proposta": (
                    {
                        "id": proposal["id"],
                        "numero": proposal.get("numero"),
                        "status": proposal.get("status"),
                        "valor_total": proposal.get("valor_total"),
                        "data_envio": proposal.get("data_envio"),
                    }
                    if proposal
                    else None
                ),
                "ja_respondida": proposal is not None,
            }
            if quote.get("status") == QUOTE_CLOSED_STATUS:
                entry["resultado_pedido"] = self._award_outcome(
                    orders_by_quote.get(quote_id, []),
                    supplier_id,
                )
            data.append(entry)

        return ServiceOutput(
            payload={"data": data, "fornecedor_id": supplier_id, "fornecedor_status": supplier_status}
        )

    @staticmethod
    def _award_outcome(orders: List[dict], supplier_id: str) -> str:
        if any(str(order.get("fornecedor_id")) == supplier_id for order in orders):
            return AWARDED_TO_SUPPLIER
        if orders:
            return AWARDED_TO_OTHER
        return AWARD_UNRESOLVED
