from __future__ import annotations

import click
from flask import Flask

from marketplace.db import get_db, new_id, utc_now_iso
from marketplace.infrastructure.repositories.marketplace import CatalogRepository, PartyRepository


DEMO_GROUPS = {
    "Cimento": ["Cimento CP II 50kg", "Cimento CP V ARI 40kg", "Argamassa AC-III 20kg"],
    "Tijolos": ["Tijolo ceramico 8 furos", "Bloco de concreto 14x19x39"],
    "Areia e Brita": ["Areia media lavada", "Brita 1"],
}

DEMO_CLIENT_EMAIL = "cliente@demo.obras"
DEMO_SUPPLIERS = [
    ("fornecedor.cimento@demo.obras", "Casa do Cimento Ltda", "Casa do Cimento", ["Cimento", "Areia e Brita"]),
    ("fornecedor.tijolos@demo.obras", "Ceramica Boa Vista Ltda", "Ceramica Boa Vista", ["Tijolos", "Cimento"]),
]


def seed_demo(db) -> dict:
    """Insert demo groups, materials, one client with a site and two suppliers.

    Returns the created ids, or an empty dict when the demo client already exists.
    """
    catalog = CatalogRepository()
    parties = PartyRepository()
    if db.execute("SELECT 1 FROM users WHERE email = ? LIMIT 1", (DEMO_CLIENT_EMAIL,)).fetchone():
        return {}

    now = utc_now_iso()
    group_ids: dict[str, str] = {}
    for group_name, materials in DEMO_GROUPS.items():
        group_id = new_id()
        group_ids[group_name] = group_id
        catalog.create_group(db, group_id=group_id, nome=group_name, descricao=None, created_at=now)
        for material_name in materials:
            material_id = new_id()
            unit = "sc" if "kg" in material_name else "un"
            if material_name.startswith(("Areia", "Brita")):
                unit = "m3"
            catalog.create_material(db, material_id=material_id, nome=material_name, unidade=unit, created_at=now)
            catalog.link_material(db, material_id=material_id, group_id=group_id)

    client_id = new_id()
    parties.create_user(
        db,
        user_id=client_id,
        email=DEMO_CLIENT_EMAIL,
        nome="Construtora Demo",
        role="cliente",
        created_at=now,
    )
    site_id = new_id()
    parties.create_site(
        db,
        site_id=site_id,
        user_id=client_id,
        nome="Residencial Jardim das Flores",
        cidade="Curitiba",
        estado="PR",
        horario_entrega="07:00-16:00",
        created_at=now,
    )

    supplier_ids = []
    for email, razao_social, nome_fantasia, groups in DEMO_SUPPLIERS:
        user_id = new_id()
        supplier_id = new_id()
        parties.create_user(
            db,
            user_id=user_id,
            email=email,
            nome=nome_fantasia,
            role="fornecedor",
            fornecedor_id=supplier_id,
            created_at=now,
        )
        parties.create_supplier(
            db,
            supplier_id=supplier_id,
            user_id=user_id,
            razao_social=razao_social,
            nome_fantasia=nome_fantasia,
            email=email,
            cidade="Curitiba",
            estado="PR",
            created_at=now,
        )
        for group_name in groups:
            catalog.link_supplier(db, supplier_id=supplier_id, group_id=group_ids[group_name])
        supplier_ids.append(supplier_id)

    db.commit()
    return {"cliente_id": client_id, "obra_id": site_id, "fornecedor_ids": supplier_ids}


def register_seed_cli(app: Flask) -> None:
    @app.cli.command("seed-demo")
    def seed_demo_command() -> None:
        """Popula grupos, materiais, cliente e fornecedores de demonstracao."""
        created = seed_demo(get_db())
        if not created:
            click.echo("Dados de demonstracao ja existem.")
            return
        click.echo(f"Cliente demo: {created['cliente_id']} (obra {created['obra_id']}).")
        for supplier_id in created["fornecedor_ids"]:
            click.echo(f"Fornecedor demo: {supplier_id}")
