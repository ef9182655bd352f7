from __future__ import annotations

import json
from typing import Any, Dict, List

from flask import Blueprint, current_app, jsonify, request
from werkzeug.utils import secure_filename

from marketplace.application.access_service import AccessService
from marketplace.application.order_service import OrderService
from marketplace.application.proposal_service import ProposalService
from marketplace.application.quote_service import QuoteService
from marketplace.db import get_db
from marketplace.domain.contracts import (
    AwardedItem,
    FinalizeOrderInput,
    InvoiceAttachment,
    OrderStatusUpdateInput,
    ProposalLineItemInput,
    ProposalSubmitInput,
    QuoteCreateInput,
    QuoteLineItemInput,
    SupplierAward,
)
from marketplace.errors import PermissionError, ValidationError
from marketplace.identity import require_user_id
from marketplace.procurement.invoices import parse_allowed_types
from marketplace.procurement.order_sync import line_subtotal


marketplace_bp = Blueprint("marketplace", __name__)

_ACCESS_SERVICE = AccessService()
_QUOTE_SERVICE = QuoteService()
_PROPOSAL_SERVICE = ProposalService()
_ORDER_SERVICE = OrderService()


def _json_payload() -> Dict[str, Any]:
    payload = request.get_json(silent=True)
    return payload if isinstance(payload, dict) else {}


def _text(value) -> str | None:
    text = str(value or "").strip()
    return text or None


def _parse_optional_float(value) -> float | None:
    if value in (None, ""):
        return None
    try:
        return float(str(value).strip().replace(",", "."))
    except (TypeError, ValueError):
        raise ValidationError(details=f"numero invalido: {value!r}")


def _parse_float(value, default: float = 0.0) -> float:
    parsed = _parse_optional_float(value)
    return default if parsed is None else parsed


def _parse_optional_int(value) -> int | None:
    if value in (None, ""):
        return None
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None


def _dict_items(value) -> List[dict]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


def _parse_quote_items(raw_items) -> List[QuoteLineItemInput]:
    items: List[QuoteLineItemInput] = []
    invalid: List[dict] = []
    for position, item in enumerate(_dict_items(raw_items)):
        nome = _text(item.get("nome"))
        try:
            quantity = _parse_optional_float(item.get("quantidade"))
        except ValidationError:
            quantity = -1.0
        if not nome:
            invalid.append({"indice": position, "nome": nome, "motivo": "nome_obrigatorio"})
            continue
        if quantity is not None and quantity <= 0:
            invalid.append({"indice": position, "nome": nome, "motivo": "quantidade_invalida"})
            continue
        items.append(
            QuoteLineItemInput(
                nome=nome,
                quantidade=1 if quantity is None else quantity,
                unidade=_text(item.get("unidade")),
                material_id=_text(item.get("material_id")),
                grupo=_text(item.get("grupo")),
                observacao=_text(item.get("observacao")),
                fase_nome=_text(item.get("fase_nome")),
                servico_nome=_text(item.get("servico_nome")),
            )
        )
    if invalid:
        raise ValidationError(
            code="quote_items_invalid",
            message_key="quote_items_invalid",
            payload={"itens_invalidos": invalid},
        )
    return items


def _parse_proposal_items(raw_items) -> List[ProposalLineItemInput]:
    items: List[ProposalLineItemInput] = []
    for item in _dict_items(raw_items):
        cotacao_item_id = _text(item.get("cotacao_item_id"))
        if not cotacao_item_id:
            continue
        items.append(
            ProposalLineItemInput(
                cotacao_item_id=cotacao_item_id,
                preco_unitario=_parse_float(item.get("preco_unitario")),
                quantidade=_parse_float(item.get("quantidade")),
                subtotal=_parse_float(item.get("subtotal")),
                disponibilidade=_text(item.get("disponibilidade")) or "indisponivel",
                prazo_dias=_parse_optional_int(item.get("prazo_dias")),
                observacao=_text(item.get("observacao")),
            )
        )
    return items


def _parse_awards(raw_groups) -> List[SupplierAward]:
    awards: List[SupplierAward] = []
    for group in _dict_items(raw_groups):
        items = []
        for item in _dict_items(group.get("itens")):
            name = _text(item.get("nome"))
            if not name:
                continue
            quantity = _parse_float(item.get("quantidade"))
            unit_price = _parse_float(item.get("preco_unitario"))
            items.append(
                AwardedItem(
                    name=name,
                    quantity=quantity,
                    unit=_text(item.get("unidade")),
                    unit_price=unit_price,
                    total=line_subtotal(unit_price, quantity, _parse_optional_float(item.get("total"))),
                    cotacao_item_id=_text(item.get("cotacao_item_id")),
                )
            )
        awards.append(
            SupplierAward(
                supplier_id=_text(group.get("fornecedor_id")) or "",
                items=items,
                proposal_id=_text(group.get("proposta_id")),
                freight=_parse_float(group.get("frete")),
                taxes=_parse_float(group.get("impostos")),
                delivery_days=_parse_optional_int(group.get("prazo_entrega_dias")),
                payment_method=_text(group.get("forma_pagamento")),
            )
        )
    return awards


@marketplace_bp.route("/api/cotacoes", methods=["GET", "POST"])
def cotacoes_api():
    user_id = require_user_id()
    db = get_db()
    if request.method == "GET":
        result = _QUOTE_SERVICE.list_for_client(db, user_id=user_id)
        return jsonify(result.payload), result.status_code

    payload = _json_payload()
    result = _QUOTE_SERVICE.create_quotes(
        db,
        user_id=user_id,
        create_input=QuoteCreateInput(
            obra_id=_text(payload.get("obra_id")) or "",
            itens=_parse_quote_items(payload.get("itens")),
            observacoes=_text(payload.get("observacoes")),
        ),
        number_start=int(current_app.config.get("QUOTE_NUMBER_START", 10001)),
        validity_days=int(current_app.config.get("QUOTE_VALIDITY_DAYS", 7)),
    )
    db.commit()
    return jsonify(result.payload), result.status_code


@marketplace_bp.route("/api/cotacoes/<cotacao_id>", methods=["GET"])
def cotacao_detail_api(cotacao_id: str):
    user_id = require_user_id()
    result = _QUOTE_SERVICE.detail_for_client(get_db(), user_id=user_id, quote_id=cotacao_id)
    return jsonify(result.payload), result.status_code


@marketplace_bp.route("/api/fornecedor/cotacoes", methods=["GET"])
def fornecedor_cotacoes_api():
    user_id = require_user_id()
    result = _QUOTE_SERVICE.list_for_supplier(get_db(), user_id=user_id)
    return jsonify(result.payload), result.status_code


@marketplace_bp.route("/api/propostas", methods=["POST"])
def propostas_api():
    user_id = require_user_id()
    db = get_db()
    payload = _json_payload()
    result = _PROPOSAL_SERVICE.submit_proposal(
        db,
        user_id=user_id,
        submit_input=ProposalSubmitInput(
            cotacao_id=_text(payload.get("cotacao_id")) or "",
            valor_total=_parse_float(payload.get("valor_total")),
            valor_frete=_parse_float(payload.get("valor_frete")),
            impostos=_parse_float(payload.get("impostos")),
            itens=_parse_proposal_items(payload.get("itens")),
            prazo_entrega=_parse_optional_int(payload.get("prazo_entrega")),
            condicoes_pagamento=_text(payload.get("condicoes_pagamento")),
            observacoes=_text(payload.get("observacoes")),
            data_validade=_text(payload.get("data_validade")),
        ),
        validity_days=int(current_app.config.get("PROPOSAL_VALIDITY_DAYS", 7)),
    )
    db.commit()
    return jsonify(result.payload), result.status_code


@marketplace_bp.route("/api/cotacoes/<cotacao_id>/finalizar", methods=["POST"])
def finalizar_cotacao_api(cotacao_id: str):
    user_id = require_user_id()
    db = get_db()
    payload = _json_payload()
    result = _ORDER_SERVICE.finalize_order(
        db,
        user_id=user_id,
        finalize_input=FinalizeOrderInput(
            cotacao_id=cotacao_id,
            obra_id=_text(payload.get("obra_id")),
            items_by_supplier=_parse_awards(payload.get("itens_por_fornecedor")),
        ),
    )
    db.commit()
    return jsonify(result.payload), result.status_code


@marketplace_bp.route("/api/pedidos", methods=["GET"])
def pedidos_api():
    user_id = require_user_id()
    perspective = _text(request.args.get("perfil"))
    result = _ORDER_SERVICE.list_orders(get_db(), user_id=user_id, perspective=perspective)
    return jsonify(result.payload), result.status_code


def _status_update_from_request(pedido_id: str) -> OrderStatusUpdateInput:
    if request.mimetype == "multipart/form-data":
        form = request.form
        raw_summary = form.get("resumo")
        try:
            summary = json.loads(raw_summary) if raw_summary else {}
        except (TypeError, json.JSONDecodeError):
            raise ValidationError(details="resumo deve ser JSON")
        invoice = None
        upload = request.files.get("nota_fiscal")
        if upload is not None and upload.filename:
            content = upload.read()
            invoice = InvoiceAttachment(
                filename=secure_filename(upload.filename) or upload.filename,
                content_type=upload.mimetype or "",
                size_bytes=len(content),
            )
        return OrderStatusUpdateInput(
            pedido_id=pedido_id,
            status=_text(form.get("status")) or "",
            resumo_patch=summary if isinstance(summary, dict) else {},
            invoice=invoice,
            data_prevista_entrega=_text(form.get("data_prevista_entrega")),
        )

    payload = _json_payload()
    invoice = None
    raw_invoice = payload.get("nota_fiscal")
    if isinstance(raw_invoice, dict):
        invoice = InvoiceAttachment(
            filename=_text(raw_invoice.get("filename")) or "",
            content_type=_text(raw_invoice.get("content_type")) or "",
            size_bytes=_parse_optional_int(raw_invoice.get("size_bytes")) or 0,
        )
    summary = payload.get("resumo")
    return OrderStatusUpdateInput(
        pedido_id=pedido_id,
        status=_text(payload.get("status")) or "",
        resumo_patch=summary if isinstance(summary, dict) else {},
        invoice=invoice,
        data_prevista_entrega=_text(payload.get("data_prevista_entrega")),
    )


@marketplace_bp.route("/api/pedidos/<pedido_id>/status", methods=["POST"])
def pedido_status_api(pedido_id: str):
    user_id = require_user_id()
    db = get_db()
    result = _ORDER_SERVICE.update_status(
        db,
        user_id=user_id,
        update_input=_status_update_from_request(pedido_id),
        allowed_invoice_types=parse_allowed_types(current_app.config.get("INVOICE_ALLOWED_TYPES")),
        invoice_max_bytes=int(current_app.config.get("INVOICE_MAX_BYTES", 10 * 1024 * 1024)),
    )
    db.commit()
    return jsonify(result.payload), result.status_code


@marketplace_bp.route("/api/salas/<room_id>/acesso", methods=["GET"])
def sala_acesso_api(room_id: str):
    user_id = require_user_id()
    grant = _ACCESS_SERVICE.resolve_access(get_db(), room_id=room_id, user_id=user_id)
    if not grant.allowed:
        raise PermissionError()
    return jsonify({"data": grant.to_payload()})
