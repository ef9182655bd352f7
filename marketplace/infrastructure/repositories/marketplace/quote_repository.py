from __future__ import annotations

from typing import Dict, List

from marketplace.infrastructure.repositories.base import BaseRepository


class QuoteRepository(BaseRepository):
    def get_by_id(self, db, quote_id: str) -> dict | None:
        row = db.execute(
            """
            SELECT *
            FROM cotacoes
            WHERE id = ?
            LIMIT 1
            """,
            (quote_id,),
        ).fetchone()
        return self.row_to_dict(row)

    def get_many(self, db, quote_ids: List[str]) -> Dict[str, dict]:
        ids = [quote_id for quote_id in dict.fromkeys(quote_ids) if quote_id]
        if not ids:
            return {}
        rows = db.execute(
            f"SELECT * FROM cotacoes WHERE id IN ({self.in_clause(ids)})",
            tuple(ids),
        ).fetchall()
        return {str(row["id"]): dict(row) for row in rows}

    def list_by_user(self, db, user_id: str) -> list[dict]:
        rows = db.execute(
            """
            SELECT *
            FROM cotacoes
            WHERE user_id = ?
            ORDER BY created_at DESC, numero DESC
            """,
            (user_id,),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def list_by_statuses(self, db, statuses: List[str]) -> list[dict]:
        rows = db.execute(
            f"""
            SELECT *
            FROM cotacoes
            WHERE status IN ({self.in_clause(statuses)})
            ORDER BY created_at DESC, numero DESC
            """,
            tuple(statuses),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def list_numbers(self, db) -> list[str]:
        rows = db.execute("SELECT numero FROM cotacoes WHERE numero IS NOT NULL").fetchall()
        return [str(row["numero"]) for row in rows]

    def create(
        self,
        db,
        *,
        quote_id: str,
        numero: str,
        user_id: str,
        obra_id: str,
        observacoes: str | None,
        data_envio: str,
        data_validade: str,
    ) -> None:
        db.execute(
            """
            INSERT INTO cotacoes (
                id, numero, user_id, obra_id, status, observacoes, data_envio, data_validade, created_at, updated_at
            )
            VALUES (?, ?, ?, ?, 'enviada', ?, ?, ?, ?, ?)
            """,
            (quote_id, numero, user_id, obra_id, observacoes, data_envio, data_validade, data_envio, data_envio),
        )

    def add_item(
        self,
        db,
        *,
        item_id: str,
        quote_id: str,
        nome: str,
        quantidade: float,
        unidade: str | None,
        material_id: str | None,
        grupo: str | None,
        grupo_id: str | None,
        observacao: str | None,
        fase_nome: str | None,
        servico_nome: str | None,
    ) -> None:
        db.execute(
            """
            INSERT INTO cotacao_itens (
                id, cotacao_id, material_id, nome, quantidade, unidade, grupo, grupo_id,
                observacao, fase_nome, servico_nome
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                item_id,
                quote_id,
                material_id,
                nome,
                quantidade,
                unidade,
                grupo,
                grupo_id,
                observacao,
                fase_nome,
                servico_nome,
            ),
        )

    def items_for_quotes(self, db, quote_ids: List[str]) -> Dict[str, List[dict]]:
        ids = [quote_id for quote_id in dict.fromkeys(quote_ids) if quote_id]
        if not ids:
            return {}
        rows = db.execute(
            f"""
            SELECT *
            FROM cotacao_itens
            WHERE cotacao_id IN ({self.in_clause(ids)})
            ORDER BY nome ASC, id ASC
            """,
            tuple(ids),
        ).fetchall()
        grouped: Dict[str, List[dict]] = {quote_id: [] for quote_id in ids}
        for row in rows:
            grouped.setdefault(str(row["cotacao_id"]), []).append(dict(row))
        return grouped

    def delete_quote_and_items(self, db, quote_id: str) -> None:
        db.execute("DELETE FROM cotacao_itens WHERE cotacao_id = ?", (quote_id,))
        db.execute("DELETE FROM cotacoes WHERE id = ?", (quote_id,))

    def mark_responded(self, db, quote_id: str, updated_at: str) -> None:
        db.execute(
            """
            UPDATE cotacoes
            SET status = 'respondida', updated_at = ?
            WHERE id = ? AND status = 'enviada'
            """,
            (updated_at, quote_id),
        )

    def close(self, db, quote_id: str, *, total_propostas: int | None, updated_at: str) -> None:
        if total_propostas is None:
            db.execute(
                "UPDATE cotacoes SET status = 'fechada', updated_at = ? WHERE id = ?",
                (updated_at, quote_id),
            )
            return
        db.execute(
            """
            UPDATE cotacoes
            SET status = 'fechada', total_propostas = ?, updated_at = ?
            WHERE id = ?
            """,
            (int(total_propostas), updated_at, quote_id),
        )
