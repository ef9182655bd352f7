from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Iterable

from marketplace import create_app
from marketplace.config import Config
from marketplace.db import close_db, get_db, new_id, utc_now_iso
from marketplace.infrastructure.repositories.marketplace import CatalogRepository, PartyRepository
from tests.helpers.temp_db import TempDbSandbox


_CATALOG = CatalogRepository()
_PARTIES = PartyRepository()


def build_temp_app(temp_db: TempDbSandbox, **overrides):
    attrs = {
        "TESTING": True,
        "AUTH_ENABLED": True,
        "LOG_JSON": False,
        "PROPAGATE_EXCEPTIONS": False,
    }
    attrs.update(overrides)
    return create_app(temp_db.make_config(Config, **attrs))


def user_headers(user_id: str) -> dict:
    return {"X-User-Id": user_id}


class MarketplaceFixtures:
    """Direct inserts for parties and catalogue, each in its own app context."""

    def __init__(self, app) -> None:
        self.app = app

    def _run(self, fn):
        with self.app.app_context():
            db = get_db()
            try:
                result = fn(db)
                db.commit()
                return result
            finally:
                close_db()

    def query(self, sql: str, params: Iterable = ()) -> list[dict]:
        with self.app.app_context():
            try:
                return [dict(row) for row in get_db().execute(sql, tuple(params)).fetchall()]
            finally:
                close_db()

    def execute(self, sql: str, params: Iterable = ()) -> None:
        self._run(lambda db: db.execute(sql, tuple(params)))

    def client_user(self, nome: str = "Construtora Teste") -> str:
        user_id = new_id()
        self._run(
            lambda db: _PARTIES.create_user(
                db,
                user_id=user_id,
                email=f"{user_id}@cliente.test",
                nome=nome,
                role="cliente",
                telefone="41999990000",
                cpf_cnpj="12345678000199",
                created_at=utc_now_iso(),
            )
        )
        return user_id

    def site(self, user_id: str, nome: str = "Obra Centro") -> str:
        site_id = new_id()
        self._run(
            lambda db: _PARTIES.create_site(
                db,
                site_id=site_id,
                user_id=user_id,
                nome=nome,
                cidade="Curitiba",
                estado="PR",
                created_at=utc_now_iso(),
            )
        )
        return site_id

    def group(self, nome: str) -> str:
        group_id = new_id()
        self._run(
            lambda db: _CATALOG.create_group(db, group_id=group_id, nome=nome, descricao=None, created_at=utc_now_iso())
        )
        return group_id

    def material(self, nome: str, group_id: str | None = None, unidade: str = "un") -> str:
        material_id = new_id()

        def _insert(db):
            _CATALOG.create_material(db, material_id=material_id, nome=nome, unidade=unidade, created_at=utc_now_iso())
            if group_id:
                _CATALOG.link_material(db, material_id=material_id, group_id=group_id)

        self._run(_insert)
        return material_id

    def supplier(
        self,
        nome: str,
        *,
        group_ids: Iterable[str] = (),
        status: str = "active",
        link_user: bool = True,
    ) -> tuple[str, str]:
        """Return ``(user_id, supplier_id)``; ``link_user=False`` leaves users.fornecedor_id empty."""
        user_id = new_id()
        supplier_id = new_id()
        groups = list(group_ids)

        def _insert(db):
            now = utc_now_iso()
            _PARTIES.create_user(
                db,
                user_id=user_id,
                email=f"{user_id}@fornecedor.test",
                nome=nome,
                role="fornecedor",
                fornecedor_id=supplier_id if link_user else None,
                created_at=now,
            )
            _PARTIES.create_supplier(
                db,
                supplier_id=supplier_id,
                user_id=user_id,
                razao_social=f"{nome} Ltda",
                nome_fantasia=nome,
                cnpj="11222333000181",
                status=status,
                created_at=now,
            )
            for group_id in groups:
                _CATALOG.link_supplier(db, supplier_id=supplier_id, group_id=group_id)

        self._run(_insert)
        return user_id, supplier_id

    def backdate_order(self, order_id: str, days: int) -> None:
        created = (datetime.now(timezone.utc) - timedelta(days=days)).isoformat()
        self.execute("UPDATE pedidos SET created_at = ? WHERE id = ?", (created, order_id))

    def notifications_for(self, user_id: str) -> list[dict]:
        return self.query("SELECT * FROM notificacoes WHERE user_id = ? ORDER BY created_at ASC", (user_id,))


class MarketplaceScenario:
    """Client, site, the Cimento/Tijolos groups and two Cimento suppliers, driven over HTTP."""

    def __init__(self, app) -> None:
        self.app = app
        self.client = app.test_client()
        self.fx = MarketplaceFixtures(app)
        self.client_id = self.fx.client_user()
        self.site_id = self.fx.site(self.client_id)
        self.cimento_id = self.fx.group("Cimento")
        self.tijolos_id = self.fx.group("Tijolos")
        self.cp2_id = self.fx.material("Cimento CP II 50kg", self.cimento_id, unidade="sc")
        self.argamassa_id = self.fx.material("Argamassa AC-III", self.cimento_id, unidade="sc")
        self.tijolo_id = self.fx.material("Tijolo 8 furos", self.tijolos_id)
        self.s1_user, self.s1_id = self.fx.supplier("Deposito Um", group_ids=[self.cimento_id])
        self.s2_user, self.s2_id = self.fx.supplier("Deposito Dois", group_ids=[self.cimento_id])

    def create_quotes(self, items: list[dict] | None = None, user_id: str | None = None, obra_id: str | None = None):
        if items is None:
            items = [
                {"nome": "Cimento CP II 50kg", "quantidade": 10, "unidade": "sc", "material_id": self.cp2_id},
                {"nome": "Argamassa AC-III", "quantidade": 5, "unidade": "sc", "material_id": self.argamassa_id},
                {"nome": "Tijolo 8 furos", "quantidade": 1000, "unidade": "un", "material_id": self.tijolo_id},
            ]
        return self.client.post(
            "/api/cotacoes",
            json={"obra_id": obra_id or self.site_id, "itens": items},
            headers=user_headers(user_id or self.client_id),
        )

    def cimento_quote(self) -> dict:
        response = self.create_quotes(
            [
                {"nome": "Cimento CP II 50kg", "quantidade": 10, "unidade": "sc", "material_id": self.cp2_id},
                {"nome": "Argamassa AC-III", "quantidade": 5, "unidade": "sc", "material_id": self.argamassa_id},
            ]
        )
        assert response.status_code == 201, response.get_json()
        quote_id = response.get_json()["data"][0]["id"]
        items = self.fx.query("SELECT * FROM cotacao_itens WHERE cotacao_id = ? ORDER BY nome ASC", (quote_id,))
        quote = self.fx.query("SELECT * FROM cotacoes WHERE id = ?", (quote_id,))[0]
        return {**quote, "itens": items}

    def submit_proposal(
        self,
        supplier_user: str,
        quote: dict,
        unit_prices: dict[str, float],
        *,
        freight: float = 0.0,
        taxes: float = 0.0,
        **extra,
    ):
        items = []
        total = 0.0
        for item in quote["itens"]:
            price = unit_prices[item["nome"]]
            subtotal = round(price * float(item["quantidade"]), 2)
            total += subtotal
            items.append(
                {
                    "cotacao_item_id": item["id"],
                    "preco_unitario": price,
                    "quantidade": item["quantidade"],
                    "subtotal": subtotal,
                    "disponibilidade": "disponivel",
                    "prazo_dias": 2,
                }
            )
        body = {
            "cotacao_id": quote["id"],
            "valor_total": round(total + freight + taxes, 2),
            "valor_frete": freight,
            "impostos": taxes,
            "prazo_entrega": 5,
            "condicoes_pagamento": "boleto 28 dias",
            "itens": items,
        }
        body.update(extra)
        return self.client.post("/api/propostas", json=body, headers=user_headers(supplier_user))

    def award_group(self, supplier_id: str, quote: dict, unit_prices: dict[str, float], **extra) -> dict:
        proposal = self.fx.query(
            "SELECT id FROM propostas WHERE cotacao_id = ? AND fornecedor_id = ?",
            (quote["id"], supplier_id),
        )
        group = {
            "fornecedor_id": supplier_id,
            "proposta_id": proposal[0]["id"] if proposal else None,
            "itens": [
                {
                    "nome": item["nome"],
                    "quantidade": item["quantidade"],
                    "unidade": item["unidade"],
                    "preco_unitario": unit_prices[item["nome"]],
                    "total": round(unit_prices[item["nome"]] * float(item["quantidade"]), 2),
                    "cotacao_item_id": item["id"],
                }
                for item in quote["itens"]
            ],
            "frete": 0,
            "impostos": 0,
            "prazo_entrega_dias": 5,
            "forma_pagamento": "boleto 28 dias",
        }
        group.update(extra)
        return group

    def finalize(self, quote_id: str, groups: list[dict], user_id: str | None = None):
        return self.client.post(
            f"/api/cotacoes/{quote_id}/finalizar",
            json={"obra_id": self.site_id, "itens_por_fornecedor": groups},
            headers=user_headers(user_id or self.client_id),
        )
