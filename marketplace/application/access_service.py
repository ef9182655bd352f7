"""Room access resolution for quote/order conversations.

A room id is either ``"<cotacao_id>::<fornecedor_id>"`` (negotiation before an
order exists) or a bare id, tried first as a pedido and then as a cotacao.
Every unresolved link yields ``DENIED``.
"""

from __future__ import annotations

from marketplace.domain.contracts import DENIED, AccessGrant
from marketplace.identity import resolve_supplier_id
from marketplace.infrastructure.repositories.marketplace import (
    OrderRepository,
    PartyRepository,
    ProposalRepository,
    QuoteRepository,
)


ROOM_SEPARATOR = "::"


class AccessService:
    def __init__(
        self,
        *,
        quotes: QuoteRepository | None = None,
        proposals: ProposalRepository | None = None,
        orders: OrderRepository | None = None,
        parties: PartyRepository | None = None,
    ) -> None:
        self.quotes = quotes or QuoteRepository()
        self.proposals = proposals or ProposalRepository()
        self.orders = orders or OrderRepository()
        self.parties = parties or PartyRepository()

    def resolve_access(self, db, *, room_id: str | None, user_id: str | None) -> AccessGrant:
        room = str(room_id or "").strip()
        user = str(user_id or "").strip()
        if not room or not user:
            return DENIED
        if ROOM_SEPARATOR in room:
            return self._resolve_negotiation_room(db, room, user)

        order = self.orders.get_by_id(db, room)
        if order:
            return self._resolve_order_room(db, order, user)

        quote = self.quotes.get_by_id(db, room)
        if quote:
            return self._resolve_quote_room(db, quote, user)
        return DENIED

    def _resolve_negotiation_room(self, db, room: str, user_id: str) -> AccessGrant:
        quote_id, _sep, supplier_id = room.partition(ROOM_SEPARATOR)
        quote_id = quote_id.strip()
        supplier_id = supplier_id.strip()
        if not quote_id or not supplier_id:
            return DENIED

        quote = self.quotes.get_by_id(db, quote_id)
        if not quote:
            return DENIED
        supplier = self.parties.get_supplier(db, supplier_id)
        if not supplier or not supplier.get("user_id"):
            return DENIED
        if not self.proposals.get_for_supplier(db, quote_id, supplier_id):
            return DENIED

        client_user = str(quote["user_id"])
        supplier_user = str(supplier["user_id"])
        if user_id == client_user:
            counterparty = supplier_user
        elif user_id == supplier_user:
            counterparty = client_user
        else:
            return DENIED
        return AccessGrant(
            allowed=True,
            counterparty_id=counterparty,
            client_id=client_user,
            supplier_id=str(supplier["id"]),
            quote_id=str(quote["id"]),
        )

    def _resolve_order_room(self, db, order: dict, user_id: str) -> AccessGrant:
        supplier = self.parties.get_supplier(db, str(order["fornecedor_id"]))
        client_user = str(order["user_id"])
        supplier_user = str((supplier or {}).get("user_id") or "") or None

        if user_id == client_user:
            counterparty = supplier_user
        elif supplier_user and user_id == supplier_user:
            counterparty = client_user
        else:
            return DENIED
        return AccessGrant(
            allowed=True,
            counterparty_id=counterparty,
            client_id=client_user,
            supplier_id=str(supplier["id"]) if supplier else None,
            quote_id=order.get("cotacao_id") or None,
            order_id=str(order["id"]),
        )

    def _resolve_quote_room(self, db, quote: dict, user_id: str) -> AccessGrant:
        quote_id = str(quote["id"])
        client_user = str(quote["user_id"])

        if user_id == client_user:
            # Cheapest proposal first; the list is ordered by valor_total.
            proposals = self.proposals.list_by_quote(db, quote_id)
            supplier = self.parties.get_supplier(db, str(proposals[0]["fornecedor_id"])) if proposals else None
            return AccessGrant(
                allowed=True,
                counterparty_id=(supplier or {}).get("user_id") or None,
                client_id=client_user,
                supplier_id=str(supplier["id"]) if supplier else None,
                quote_id=quote_id,
            )

        supplier_id = resolve_supplier_id(db, user_id)
        if not supplier_id or not self.proposals.get_for_supplier(db, quote_id, supplier_id):
            return DENIED
        return AccessGrant(
            allowed=True,
            counterparty_id=client_user,
            client_id=client_user,
            supplier_id=supplier_id,
            quote_id=quote_id,
        )
