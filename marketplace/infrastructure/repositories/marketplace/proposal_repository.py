from __future__ import annotations

from typing import Dict, List

from marketplace.infrastructure.repositories.base import BaseRepository


class ProposalRepository(BaseRepository):
    def get_by_id(self, db, proposal_id: str) -> dict | None:
        row = db.execute("SELECT * FROM propostas WHERE id = ? LIMIT 1", (proposal_id,)).fetchone()
        return self.row_to_dict(row)

    def get_for_supplier(self, db, quote_id: str, supplier_id: str) -> dict | None:
        row = db.execute(
            """
            SELECT *
            FROM propostas
            WHERE cotacao_id = ? AND fornecedor_id = ?
            LIMIT 1
            """,
            (quote_id, supplier_id),
        ).fetchone()
        return self.row_to_dict(row)

    def list_by_quote(self, db, quote_id: str) -> list[dict]:
        rows = db.execute(
            """
            SELECT *
            FROM propostas
            WHERE cotacao_id = ?
            ORDER BY valor_total ASC, created_at ASC
            """,
            (quote_id,),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def list_by_supplier(self, db, supplier_id: str, quote_ids: List[str] | None = None) -> list[dict]:
        if quote_ids is not None and not quote_ids:
            return []
        sql = "SELECT * FROM propostas WHERE fornecedor_id = ?"
        params: list = [supplier_id]
        if quote_ids:
            sql += f" AND cotacao_id IN ({self.in_clause(quote_ids)})"
            params.extend(quote_ids)
        rows = db.execute(sql, tuple(params)).fetchall()
        return self.rows_to_dicts(rows)

    def count_by_quotes(self, db, quote_ids: List[str]) -> Dict[str, int]:
        ids = [quote_id for quote_id in dict.fromkeys(quote_ids) if quote_id]
        if not ids:
            return {}
        rows = db.execute(
            f"""
            SELECT cotacao_id, COUNT(*) AS total
            FROM propostas
            WHERE cotacao_id IN ({self.in_clause(ids)})
            GROUP BY cotacao_id
            """,
            tuple(ids),
        ).fetchall()
        return {str(row["cotacao_id"]): int(row["total"]) for row in rows}

    def count_all(self, db) -> int:
        row = db.execute("SELECT COUNT(*) AS total FROM propostas").fetchone()
        return int(row["total"] if row else 0)

    def insert(
        self,
        db,
        *,
        proposal_id: str,
        numero: str,
        quote_id: str,
        supplier_id: str,
        values: dict,
        now: str,
    ) -> None:
        db.execute(
            """
            INSERT INTO propostas (
                id, numero, cotacao_id, fornecedor_id, status, valor_total, valor_frete, impostos,
                prazo_entrega, condicoes_pagamento, observacoes, data_envio, data_validade, created_at, updated_at
            )
            VALUES (?, ?, ?, ?, 'enviada', ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                proposal_id,
                numero,
                quote_id,
                supplier_id,
                values["valor_total"],
                values["valor_frete"],
                values["impostos"],
                values["prazo_entrega"],
                values["condicoes_pagamento"],
                values["observacoes"],
                now,
                values["data_validade"],
                now,
                now,
            ),
        )

    def update_values(self, db, proposal_id: str, *, values: dict, now: str) -> None:
        db.execute(
            """
            UPDATE propostas
            SET valor_total = ?, valor_frete = ?, impostos = ?, prazo_entrega = ?,
                condicoes_pagamento = ?, observacoes = ?, data_validade = ?, data_envio = ?, updated_at = ?
            WHERE id = ?
            """,
            (
                values["valor_total"],
                values["valor_frete"],
                values["impostos"],
                values["prazo_entrega"],
                values["condicoes_pagamento"],
                values["observacoes"],
                values["data_validade"],
                now,
                now,
                proposal_id,
            ),
        )

    def replace_items(self, db, proposal_id: str, items: List[dict]) -> None:
        db.execute("DELETE FROM proposta_itens WHERE proposta_id = ?", (proposal_id,))
        for item in items:
            db.execute(
                """
                INSERT INTO proposta_itens (
                    id, proposta_id, cotacao_item_id, preco_unitario, quantidade, subtotal,
                    disponibilidade, prazo_dias, observacao
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    item["id"],
                    proposal_id,
                    item["cotacao_item_id"],
                    item["preco_unitario"],
                    item["quantidade"],
                    item["subtotal"],
                    item["disponibilidade"],
                    item["prazo_dias"],
                    item["observacao"],
                ),
            )

    def items_for_proposals(self, db, proposal_ids: List[str]) -> Dict[str, List[dict]]:
        ids = [proposal_id for proposal_id in dict.fromkeys(proposal_ids) if proposal_id]
        if not ids:
            return {}
        rows = db.execute(
            f"""
            SELECT pi.*, ci.nome AS material_nome, ci.unidade AS unidade
            FROM proposta_itens pi
            LEFT JOIN cotacao_itens ci ON ci.id = pi.cotacao_item_id
            WHERE pi.proposta_id IN ({self.in_clause(ids)})
            ORDER BY ci.nome ASC, pi.id ASC
            """,
            tuple(ids),
        ).fetchall()
        grouped: Dict[str, List[dict]] = {proposal_id: [] for proposal_id in ids}
        for row in rows:
            grouped.setdefault(str(row["proposta_id"]), []).append(dict(row))
        return grouped

    def set_statuses_for_quote(self, db, quote_id: str, accepted_ids: List[str], now: str) -> None:
        """Mark ``accepted_ids`` aceita and every other proposal of the quote recusada."""
        if accepted_ids:
            placeholders = self.in_clause(accepted_ids)
            db.execute(
                f"""
                UPDATE propostas
                SET status = CASE WHEN id IN ({placeholders}) THEN 'aceita' ELSE 'recusada' END,
                    updated_at = ?
                WHERE cotacao_id = ?
                """,
                (*accepted_ids, now, quote_id),
            )
            return
        db.execute(
            "UPDATE propostas SET status = 'recusada', updated_at = ? WHERE cotacao_id = ?",
            (now, quote_id),
        )
