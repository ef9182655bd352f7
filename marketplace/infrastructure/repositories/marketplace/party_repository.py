from __future__ import annotations

from typing import Dict, List

from marketplace.infrastructure.repositories.base import BaseRepository


class PartyRepository(BaseRepository):
    """Users, supplier records and construction sites."""

    def get_user(self, db, user_id: str) -> dict | None:
        row = db.execute("SELECT * FROM users WHERE id = ? LIMIT 1", (user_id,)).fetchone()
        return self.row_to_dict(row)

    def users_by_ids(self, db, user_ids: List[str]) -> Dict[str, dict]:
        ids = [user_id for user_id in dict.fromkeys(user_ids) if user_id]
        if not ids:
            return {}
        rows = db.execute(
            f"SELECT id, email, nome, telefone, cpf_cnpj, role FROM users WHERE id IN ({self.in_clause(ids)})",
            tuple(ids),
        ).fetchall()
        return {str(row["id"]): dict(row) for row in rows}

    def get_supplier(self, db, supplier_id: str) -> dict | None:
        row = db.execute("SELECT * FROM fornecedores WHERE id = ? LIMIT 1", (supplier_id,)).fetchone()
        return self.row_to_dict(row)

    def get_supplier_by_user(self, db, user_id: str) -> dict | None:
        row = db.execute(
            "SELECT * FROM fornecedores WHERE user_id = ? ORDER BY created_at ASC LIMIT 1",
            (user_id,),
        ).fetchone()
        return self.row_to_dict(row)

    def suppliers_by_ids(self, db, supplier_ids: List[str]) -> Dict[str, dict]:
        ids = [supplier_id for supplier_id in dict.fromkeys(supplier_ids) if supplier_id]
        if not ids:
            return {}
        rows = db.execute(
            f"SELECT * FROM fornecedores WHERE id IN ({self.in_clause(ids)})",
            tuple(ids),
        ).fetchall()
        return {str(row["id"]): dict(row) for row in rows}

    def get_site(self, db, site_id: str) -> dict | None:
        row = db.execute("SELECT * FROM obras WHERE id = ? LIMIT 1", (site_id,)).fetchone()
        return self.row_to_dict(row)

    def sites_by_ids(self, db, site_ids: List[str]) -> Dict[str, dict]:
        ids = [site_id for site_id in dict.fromkeys(site_ids) if site_id]
        if not ids:
            return {}
        rows = db.execute(
            f"SELECT * FROM obras WHERE id IN ({self.in_clause(ids)})",
            tuple(ids),
        ).fetchall()
        return {str(row["id"]): dict(row) for row in rows}

    def create_user(
        self,
        db,
        *,
        user_id: str,
        email: str,
        nome: str | None,
        role: str,
        created_at: str,
        telefone: str | None = None,
        cpf_cnpj: str | None = None,
        fornecedor_id: str | None = None,
    ) -> None:
        db.execute(
            """
            INSERT INTO users (id, email, nome, telefone, cpf_cnpj, role, fornecedor_id, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (user_id, email, nome, telefone, cpf_cnpj, role, fornecedor_id, created_at),
        )

    def create_supplier(
        self,
        db,
        *,
        supplier_id: str,
        user_id: str | None,
        razao_social: str,
        created_at: str,
        nome_fantasia: str | None = None,
        cnpj: str | None = None,
        email: str | None = None,
        telefone: str | None = None,
        cidade: str | None = None,
        estado: str | None = None,
        status: str = "active",
    ) -> None:
        db.execute(
            """
            INSERT INTO fornecedores (
                id, user_id, razao_social, nome_fantasia, cnpj, email, telefone, cidade, estado, status, created_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                supplier_id,
                user_id,
                razao_social,
                nome_fantasia,
                cnpj,
                email,
                telefone,
                cidade,
                estado,
                status,
                created_at,
            ),
        )

    def create_site(
        self,
        db,
        *,
        site_id: str,
        user_id: str,
        nome: str,
        created_at: str,
        logradouro: str | None = None,
        numero: str | None = None,
        bairro: str | None = None,
        cidade: str | None = None,
        estado: str | None = None,
        cep: str | None = None,
        horario_entrega: str | None = None,
        restricoes_entrega: str | None = None,
    ) -> None:
        db.execute(
            """
            INSERT INTO obras (
                id, user_id, nome, cep, logradouro, numero, bairro, cidade, estado,
                horario_entrega, restricoes_entrega, created_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                site_id,
                user_id,
                nome,
                cep,
                logradouro,
                numero,
                bairro,
                cidade,
                estado,
                horario_entrega,
                restricoes_entrega,
                created_at,
            ),
        )
