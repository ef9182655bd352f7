from __future__ import annotations

from typing import Dict, List


FRIENDLY_TERMS: Dict[str, str] = {
    "app_name": "Marketplace Obras",
    "cotacao": "Cotacao",
    "proposta": "Proposta",
    "pedido": "Pedido",
    "fornecedor": "Fornecedor",
    "cliente": "Cliente",
    "obra": "Obra",
    "grupo_insumo": "Grupo de insumo",
}


STATUS_GROUPS: Dict[str, List[Dict[str, str]]] = {
    "cotacao": [
        {
            "key": "enviada",
            "label": "Enviada",
            "description": "Cotacao aberta aguardando propostas dos fornecedores.",
        },
        {
            "key": "respondida",
            "label": "Respondida",
            "description": "Cotacao aberta com ao menos uma proposta recebida.",
        },
        {
            "key": "fechada",
            "label": "Fechada",
            "description": "Cotacao encerrada com pedidos gerados.",
        },
    ],
    "proposta": [
        {
            "key": "enviada",
            "label": "Enviada",
            "description": "Proposta enviada e aguardando decisao do cliente.",
        },
        {
            "key": "aceita",
            "label": "Aceita",
            "description": "Proposta escolhida pelo cliente.",
        },
        {
            "key": "recusada",
            "label": "Recusada",
            "description": "Proposta nao escolhida no fechamento da cotacao.",
        },
    ],
    "pedido": [
        {
            "key": "pendente",
            "label": "Pendente",
            "description": "Pedido gerado aguardando confirmacao do fornecedor.",
        },
        {
            "key": "confirmado",
            "label": "Confirmado",
            "description": "Pedido confirmado e em faturamento.",
        },
        {
            "key": "em_preparacao",
            "label": "Em preparacao",
            "description": "Pedido em separacao no fornecedor.",
        },
        {
            "key": "enviado",
            "label": "Enviado",
            "description": "Pedido saiu para entrega.",
        },
        {
            "key": "entregue",
            "label": "Entregue",
            "description": "Pedido entregue na obra.",
        },
        {
            "key": "cancelado",
            "label": "Cancelado",
            "description": "Pedido encerrado sem entrega.",
        },
    ],
}


MESSAGES: Dict[str, Dict[str, str]] = {
    "success": {
        "quotes_created": "Cotacao enviada aos fornecedores.",
        "proposal_saved": "Proposta registrada com sucesso.",
        "proposal_updated": "Proposta atualizada com sucesso.",
        "orders_created": "Pedidos gerados com sucesso.",
        "order_status_updated": "Status do pedido atualizado.",
    },
    "error": {
        "access_denied": "Acesso negado.",
        "action_invalid": "Acao invalida para esta operacao.",
        "auth_required": "Autenticacao necessaria.",
        "cotacao_id_required": "Informe a cotacao.",
        "invalid_group_items": "Um ou mais itens nao pertencem a um grupo de insumo valido.",
        "invoice_invalid_type": "Formato de nota fiscal invalido. Envie PDF, JPEG ou PNG.",
        "invoice_too_large": "Nota fiscal excede o tamanho maximo de 10MB.",
        "items_required": "Informe itens validos para continuar.",
        "items_by_supplier_required": "Informe os itens escolhidos por fornecedor.",
        "no_orders_created": "Nenhum pedido foi gerado. Os fornecedores selecionados ja possuem pedido.",
        "not_found": "Registro nao encontrado.",
        "notification_not_found": "Notificacao nao encontrada.",
        "obra_id_required": "Informe a obra.",
        "obra_not_found": "Obra nao encontrada ou acesso negado.",
        "order_status_backwards": "O pedido nao pode voltar para um status anterior.",
        "order_status_terminal": "O pedido ja foi encerrado.",
        "pedido_not_found": "Pedido nao encontrado ou acesso negado.",
        "pedido_id_required": "Informe o pedido e o status.",
        "proposal_items_invalid": "Os itens da proposta nao pertencem a esta cotacao.",
        "proposal_mismatch": "A proposta informada nao pertence a este fornecedor e cotacao.",
        "quote_items_invalid": "Itens da cotacao sem nome ou com quantidade invalida.",
        "quote_closed_for_proposals": "Esta cotacao nao aceita mais atualizacoes de proposta.",
        "quote_not_found": "Cotacao nao encontrada.",
        "status_invalid": "Status informado e invalido.",
        "supplier_not_found": "Fornecedor nao encontrado.",
        "unexpected_error": "Nao foi possivel concluir a operacao. Tente novamente em instantes.",
        "validation_error": "Dados incompletos.",
        "state_conflict": "A operacao nao e permitida no estado atual.",
    },
    "notification": {
        "proposal_new.title": "Nova Proposta Recebida",
        "proposal_new.message": "{supplier} enviou uma proposta para sua cotacao.",
        "proposal_updated.title": "Proposta Atualizada",
        "proposal_updated.message": "{supplier} atualizou a proposta da sua cotacao.",
        "order_new.title": "Novo Pedido Recebido!",
        "order_new.message": "Voce recebeu um novo pedido de compra ({number}).",
        "order_confirmado.title": "Pedido Confirmado",
        "order_confirmado.message": "O pedido {number} foi confirmado e esta em faturamento.",
        "order_em_preparacao.title": "Pedido em Separacao",
        "order_em_preparacao.message": "O pedido {number} esta sendo separado pelo fornecedor.",
        "order_enviado.title": "Pedido Saiu para Entrega",
        "order_enviado.message": "O pedido {number} saiu para entrega.",
        "order_entregue.title": "Pedido Entregue",
        "order_entregue.message": "O pedido {number} foi entregue.",
        "order_cancelado.title": "Pedido Cancelado",
        "order_cancelado.message": "O pedido {number} foi cancelado pelo fornecedor.",
        "order_late.title": "Pedido em Atraso",
        "order_late.message": "O pedido {number} passou da data prevista de entrega ({expected}).",
    },
}


NOTIFICATION_LINKS: Dict[str, str] = {
    "cliente": "/dashboard/cliente",
    "fornecedor": "/dashboard/fornecedor",
}


def status_keys_for_group(group: str) -> List[str]:
    return [item["key"] for item in STATUS_GROUPS.get(group, [])]


def status_label(group: str, key: str | None) -> str:
    for item in STATUS_GROUPS.get(group, []):
        if item["key"] == key:
            return item["label"]
    return str(key or "")


def get_message(category: str, key: str, default: str | None = None) -> str:
    message = MESSAGES.get(category, {}).get(key)
    if message:
        return message
    if default is not None:
        return default
    return key


def error_message(key: str, default: str | None = None) -> str:
    return get_message("error", key, default)


def success_message(key: str, default: str | None = None) -> str:
    return get_message("success", key, default)


def notification_text(key: str, **values) -> tuple[str, str]:
    title = get_message("notification", f"{key}.title")
    template = get_message("notification", f"{key}.message")
    return title, template.format(**values)
