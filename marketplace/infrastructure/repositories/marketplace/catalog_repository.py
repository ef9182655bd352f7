from __future__ import annotations

from typing import Dict, List

from marketplace.infrastructure.repositories.base import BaseRepository


class CatalogRepository(BaseRepository):
    def list_groups(self, db) -> list[dict]:
        rows = db.execute(
            """
            SELECT id, nome, descricao
            FROM grupos_insumo
            ORDER BY nome ASC
            """
        ).fetchall()
        return self.rows_to_dicts(rows)

    def groups_by_material(self, db, material_ids: List[str]) -> Dict[str, List[dict]]:
        ids = [material_id for material_id in dict.fromkeys(material_ids) if material_id]
        if not ids:
            return {}
        rows = db.execute(
            f"""
            SELECT mg.material_id, g.id, g.nome
            FROM material_grupo mg
            JOIN grupos_insumo g ON g.id = mg.grupo_id
            WHERE mg.material_id IN ({self.in_clause(ids)})
            ORDER BY g.nome ASC
            """,
            tuple(ids),
        ).fetchall()
        mapped: Dict[str, List[dict]] = {}
        for row in rows:
            data = dict(row)
            mapped.setdefault(str(data["material_id"]), []).append({"id": data["id"], "nome": data["nome"]})
        return mapped

    def supplier_groups(self, db, supplier_id: str) -> list[dict]:
        rows = db.execute(
            """
            SELECT g.id, g.nome
            FROM fornecedor_grupo fg
            JOIN grupos_insumo g ON g.id = fg.grupo_id
            WHERE fg.fornecedor_id = ?
            """,
            (supplier_id,),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def create_group(self, db, *, group_id: str, nome: str, descricao: str | None, created_at: str) -> None:
        db.execute(
            "INSERT INTO grupos_insumo (id, nome, descricao, created_at) VALUES (?, ?, ?, ?)",
            (group_id, nome, descricao, created_at),
        )

    def create_material(self, db, *, material_id: str, nome: str, unidade: str, created_at: str) -> None:
        db.execute(
            "INSERT INTO materiais (id, nome, unidade, created_at) VALUES (?, ?, ?, ?)",
            (material_id, nome, unidade, created_at),
        )

    def link_material(self, db, *, material_id: str, group_id: str) -> None:
        db.execute(
            "INSERT INTO material_grupo (material_id, grupo_id) VALUES (?, ?)",
            (material_id, group_id),
        )

    def link_supplier(self, db, *, supplier_id: str, group_id: str) -> None:
        db.execute(
            "INSERT INTO fornecedor_grupo (fornecedor_id, grupo_id) VALUES (?, ?)",
            (supplier_id, group_id),
        )
