from __future__ import annotations

from typing import Any, Dict, List

from marketplace.db import dump_json
from marketplace.infrastructure.repositories.base import BaseRepository


class OrderRepository(BaseRepository):
    def get_by_id(self, db, order_id: str) -> dict | None:
        row = db.execute("SELECT * FROM pedidos WHERE id = ? LIMIT 1", (order_id,)).fetchone()
        return self.row_to_dict(row)

    def get_for_supplier(self, db, quote_id: str, supplier_id: str) -> dict | None:
        row = db.execute(
            """
            SELECT *
            FROM pedidos
            WHERE cotacao_id = ? AND fornecedor_id = ?
            LIMIT 1
            """,
            (quote_id, supplier_id),
        ).fetchone()
        return self.row_to_dict(row)

    def list_by_quote(self, db, quote_id: str, *, client_id: str | None = None) -> list[dict]:
        sql = "SELECT * FROM pedidos WHERE cotacao_id = ?"
        params: list = [quote_id]
        if client_id:
            sql += " AND user_id = ?"
            params.append(client_id)
        rows = db.execute(sql + " ORDER BY created_at ASC, LENGTH(numero) ASC, numero ASC", tuple(params)).fetchall()
        return self.rows_to_dicts(rows)

    def list_by_quotes(self, db, quote_ids: List[str]) -> list[dict]:
        ids = [quote_id for quote_id in dict.fromkeys(quote_ids) if quote_id]
        if not ids:
            return []
        rows = db.execute(
            f"SELECT id, cotacao_id, fornecedor_id, status, numero FROM pedidos WHERE cotacao_id IN ({self.in_clause(ids)})",
            tuple(ids),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def list_by_client(self, db, user_id: str) -> list[dict]:
        rows = db.execute(
            "SELECT * FROM pedidos WHERE user_id = ? ORDER BY created_at DESC",
            (user_id,),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def list_by_supplier(self, db, supplier_id: str) -> list[dict]:
        rows = db.execute(
            "SELECT * FROM pedidos WHERE fornecedor_id = ? ORDER BY created_at DESC",
            (supplier_id,),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def create(
        self,
        db,
        *,
        order_id: str,
        numero: str | None,
        quote_id: str,
        proposal_id: str | None,
        client_id: str,
        supplier_id: str,
        site_id: str | None,
        valor_total: float,
        impostos: float,
        snapshot: Dict[str, Any],
        condicoes_pagamento: str | None,
        now: str,
    ) -> None:
        db.execute(
            """
            INSERT INTO pedidos (
                id, numero, cotacao_id, proposta_id, user_id, fornecedor_id, obra_id, valor_total, impostos,
                status, snapshot, condicoes_pagamento, created_at, updated_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, 'pendente', ?, ?, ?, ?)
            """,
            (
                order_id,
                numero,
                quote_id,
                proposal_id,
                client_id,
                supplier_id,
                site_id,
                valor_total,
                impostos,
                dump_json(snapshot),
                condicoes_pagamento,
                now,
                now,
            ),
        )

    def add_item(
        self,
        db,
        *,
        item_id: str,
        order_id: str,
        nome: str,
        quantidade: float,
        unidade: str | None,
        preco_unitario: float,
        subtotal: float,
    ) -> None:
        db.execute(
            """
            INSERT INTO pedido_itens (id, pedido_id, nome, quantidade, unidade, preco_unitario, subtotal)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (item_id, order_id, nome, quantidade, unidade, preco_unitario, subtotal),
        )

    def items_for_orders(self, db, order_ids: List[str]) -> Dict[str, List[dict]]:
        ids = [order_id for order_id in dict.fromkeys(order_ids) if order_id]
        if not ids:
            return {}
        rows = db.execute(
            f"""
            SELECT *
            FROM pedido_itens
            WHERE pedido_id IN ({self.in_clause(ids)})
            ORDER BY nome ASC, id ASC
            """,
            tuple(ids),
        ).fetchall()
        grouped: Dict[str, List[dict]] = {order_id: [] for order_id in ids}
        for row in rows:
            grouped.setdefault(str(row["pedido_id"]), []).append(dict(row))
        return grouped

    def delete_order_and_items(self, db, order_id: str) -> None:
        db.execute("DELETE FROM pedido_itens WHERE pedido_id = ?", (order_id,))
        db.execute("DELETE FROM pedidos WHERE id = ?", (order_id,))

    def update_item_values(
        self,
        db,
        item_id: str,
        *,
        quantidade: float,
        preco_unitario: float,
        subtotal: float,
    ) -> None:
        db.execute(
            """
            UPDATE pedido_itens
            SET quantidade = ?, preco_unitario = ?, subtotal = ?
            WHERE id = ?
            """,
            (quantidade, preco_unitario, subtotal, item_id),
        )

    def update_financials(
        self,
        db,
        order_id: str,
        *,
        valor_total: float,
        impostos: float,
        snapshot: Dict[str, Any],
        condicoes_pagamento: str | None,
        now: str,
    ) -> None:
        db.execute(
            """
            UPDATE pedidos
            SET valor_total = ?, impostos = ?, snapshot = ?, condicoes_pagamento = ?, updated_at = ?
            WHERE id = ?
            """,
            (valor_total, impostos, dump_json(snapshot), condicoes_pagamento, now, order_id),
        )

    def update_status(self, db, order_id: str, *, fields: Dict[str, Any], now: str) -> None:
        """Persist ``status`` plus any of the fulfillment columns present in ``fields``."""
        allowed = ("status", "snapshot", "nota_fiscal", "data_confirmacao", "data_entrega", "data_prevista_entrega")
        assignments: list[str] = []
        params: list = []
        for column in allowed:
            if column not in fields:
                continue
            value = fields[column]
            if column in {"snapshot", "nota_fiscal"}:
                value = dump_json(value)
            assignments.append(f"{column} = ?")
            params.append(value)
        assignments.append("updated_at = ?")
        params.extend([now, order_id])
        db.execute(f"UPDATE pedidos SET {', '.join(assignments)} WHERE id = ?", tuple(params))
