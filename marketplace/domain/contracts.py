from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List


@dataclass(frozen=True)
class ServiceOutput:
    payload: Dict[str, Any]
    status_code: int = 200


@dataclass(frozen=True)
class QuoteLineItemInput:
    nome: str
    quantidade: float
    unidade: str | None = None
    material_id: str | None = None
    grupo: str | None = None
    observacao: str | None = None
    fase_nome: str | None = None
    servico_nome: str | None = None


@dataclass(frozen=True)
class QuoteCreateInput:
    obra_id: str
    itens: List[QuoteLineItemInput]
    observacoes: str | None = None


@dataclass(frozen=True)
class ProposalLineItemInput:
    cotacao_item_id: str
    preco_unitario: float
    quantidade: float
    subtotal: float
    disponibilidade: str = "indisponivel"
    prazo_dias: int | None = None
    observacao: str | None = None


@dataclass(frozen=True)
class ProposalSubmitInput:
    cotacao_id: str
    valor_total: float
    valor_frete: float
    impostos: float
    itens: List[ProposalLineItemInput]
    prazo_entrega: int | None = None
    condicoes_pagamento: str | None = None
    observacoes: str | None = None
    data_validade: str | None = None


@dataclass(frozen=True)
class AwardedItem:
    name: str
    quantity: float
    unit: str | None
    unit_price: float
    total: float
    cotacao_item_id: str | None = None


@dataclass(frozen=True)
class SupplierAward:
    supplier_id: str
    items: List[AwardedItem]
    proposal_id: str | None = None
    freight: float = 0.0
    taxes: float = 0.0
    delivery_days: int | None = None
    payment_method: str | None = None


@dataclass(frozen=True)
class FinalizeOrderInput:
    cotacao_id: str
    obra_id: str | None
    items_by_supplier: List[SupplierAward]


@dataclass(frozen=True)
class InvoiceAttachment:
    filename: str
    content_type: str
    size_bytes: int


@dataclass(frozen=True)
class OrderStatusUpdateInput:
    pedido_id: str
    status: str
    resumo_patch: Dict[str, Any] = field(default_factory=dict)
    invoice: InvoiceAttachment | None = None
    data_prevista_entrega: str | None = None


@dataclass(frozen=True)
class AccessGrant:
    """Outcome of resolving a quote/order room for one user."""

    allowed: bool
    counterparty_id: str | None = None
    client_id: str | None = None
    supplier_id: str | None = None
    quote_id: str | None = None
    order_id: str | None = None

    def to_payload(self) -> Dict[str, Any]:
        return {
            "allowed": self.allowed,
            "counterparty_id": self.counterparty_id,
            "cliente_id": self.client_id,
            "fornecedor_id": self.supplier_id,
            "cotacao_id": self.quote_id,
            "pedido_id": self.order_id,
        }


DENIED = AccessGrant(allowed=False)
