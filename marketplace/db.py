import json
import sqlite3
import uuid
from datetime import datetime, timezone
from typing import Any, Iterable, List

try:
    import psycopg2
    import psycopg2.errors
    import psycopg2.extras
except ImportError:  # pragma: no cover - optional dependency for postgres
    psycopg2 = None

from flask import current_app, g


class Database:
    def __init__(self, backend: str, connection):
        self.backend = backend
        self._conn = connection

    def execute(self, sql: str, params: Iterable | None = None):
        if self.backend == "postgres":
            cursor = self._conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor)
            if params:
                sql = _convert_qmark_to_pg(sql)
                cursor.execute(sql, list(params))
            else:
                cursor.execute(sql)
            return cursor
        return self._conn.execute(sql, params or ())

    def commit(self):
        self._conn.commit()

    def rollback(self):
        self._conn.rollback()

    def close(self):
        self._conn.close()


def _convert_qmark_to_pg(sql: str) -> str:
    return sql.replace("?", "%s")


def _connect_database(db_path: str) -> Database:
    if db_path.lower().startswith("postgres"):
        if psycopg2 is None:
            raise RuntimeError("psycopg2 nao instalado.")
        conn = psycopg2.connect(db_path)
        conn.autocommit = True
        return Database("postgres", conn)

    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return Database("sqlite", conn)


def get_db():
    if "db" not in g:
        db_path = current_app.config["DB_PATH"]
        g.db = _connect_database(db_path)
    return g.db


def close_db(_error=None):
    db = g.pop("db", None)
    if db is not None:
        db.close()


def new_id() -> str:
    return str(uuid.uuid4())


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def utc_now_iso() -> str:
    return utc_now().isoformat()


def parse_timestamp(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        raw = str(value).strip().replace("Z", "+00:00")
        if " " in raw and "T" not in raw:
            raw = raw.replace(" ", "T", 1)
        try:
            parsed = datetime.fromisoformat(raw)
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def dump_json(value: Any) -> str | None:
    if value is None:
        return None
    return json.dumps(value, ensure_ascii=False, default=str)


def load_json(value: Any, default: Any = None) -> Any:
    if value is None or value == "":
        return default
    if isinstance(value, (dict, list)):
        return value
    try:
        return json.loads(value)
    except (TypeError, ValueError):
        return default


def is_unique_violation(exc: Exception) -> bool:
    if isinstance(exc, sqlite3.IntegrityError):
        return "unique" in str(exc).lower()
    if psycopg2 is not None and isinstance(exc, psycopg2.errors.UniqueViolation):
        return True
    return False


def is_missing_column(exc: Exception, column: str) -> bool:
    message = str(exc).lower()
    if column.lower() not in message:
        return False
    if isinstance(exc, sqlite3.OperationalError):
        return "no such column" in message or "has no column" in message
    if psycopg2 is not None and isinstance(exc, psycopg2.errors.UndefinedColumn):
        return True
    return False


_COLUMN_TYPES = {
    "sqlite": {"ts": "TEXT", "real": "REAL", "json": "TEXT", "bool": "INTEGER"},
    "postgres": {"ts": "TIMESTAMPTZ", "real": "DOUBLE PRECISION", "json": "JSONB", "bool": "BOOLEAN"},
}


SCHEMA_TABLES: List[tuple[str, str]] = [
    (
        "users",
        """
        CREATE TABLE IF NOT EXISTS users (
            id TEXT PRIMARY KEY,
            email TEXT NOT NULL UNIQUE,
            nome TEXT,
            telefone TEXT,
            cpf_cnpj TEXT,
            role TEXT NOT NULL DEFAULT 'cliente' CHECK (role IN ('admin','cliente','fornecedor')),
            fornecedor_id TEXT,
            created_at {ts} NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
        """,
    ),
    (
        "fornecedores",
        """
        CREATE TABLE IF NOT EXISTS fornecedores (
            id TEXT PRIMARY KEY,
            user_id TEXT,
            razao_social TEXT NOT NULL,
            nome_fantasia TEXT,
            cnpj TEXT,
            email TEXT,
            telefone TEXT,
            logradouro TEXT,
            numero TEXT,
            bairro TEXT,
            cidade TEXT,
            estado TEXT,
            status TEXT NOT NULL DEFAULT 'active' CHECK (status IN ('pending','active','suspended')),
            created_at {ts} NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
        """,
    ),
    (
        "obras",
        """
        CREATE TABLE IF NOT EXISTS obras (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            nome TEXT NOT NULL,
            cep TEXT,
            logradouro TEXT,
            numero TEXT,
            complemento TEXT,
            bairro TEXT,
            cidade TEXT,
            estado TEXT,
            horario_entrega TEXT,
            restricoes_entrega TEXT,
            created_at {ts} NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
        """,
    ),
    (
        "grupos_insumo",
        """
        CREATE TABLE IF NOT EXISTS grupos_insumo (
            id TEXT PRIMARY KEY,
            nome TEXT NOT NULL UNIQUE,
            descricao TEXT,
            created_at {ts} NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
        """,
    ),
    (
        "materiais",
        """
        CREATE TABLE IF NOT EXISTS materiais (
            id TEXT PRIMARY KEY,
            nome TEXT NOT NULL,
            unidade TEXT NOT NULL DEFAULT 'un',
            created_at {ts} NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
        """,
    ),
    (
        "material_grupo",
        """
        CREATE TABLE IF NOT EXISTS material_grupo (
            material_id TEXT NOT NULL,
            grupo_id TEXT NOT NULL,
            UNIQUE (material_id, grupo_id)
        )
        """,
    ),
    (
        "fornecedor_grupo",
        """
        CREATE TABLE IF NOT EXISTS fornecedor_grupo (
            fornecedor_id TEXT NOT NULL,
            grupo_id TEXT NOT NULL,
            UNIQUE (fornecedor_id, grupo_id)
        )
        """,
    ),
    (
        "cotacoes",
        """
        CREATE TABLE IF NOT EXISTS cotacoes (
            id TEXT PRIMARY KEY,
            numero TEXT,
            user_id TEXT NOT NULL,
            obra_id TEXT NOT NULL,
            status TEXT NOT NULL DEFAULT 'enviada' CHECK (status IN ('enviada','respondida','fechada')),
            observacoes TEXT,
            data_envio {ts},
            data_validade {ts},
            total_propostas INTEGER,
            created_at {ts} NOT NULL DEFAULT CURRENT_TIMESTAMP,
            updated_at {ts} NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
        """,
    ),
    (
        "cotacao_itens",
        """
        CREATE TABLE IF NOT EXISTS cotacao_itens (
            id TEXT PRIMARY KEY,
            cotacao_id TEXT NOT NULL REFERENCES cotacoes (id) ON DELETE CASCADE,
            material_id TEXT,
            nome TEXT NOT NULL,
            quantidade {real} NOT NULL DEFAULT 1,
            unidade TEXT,
            grupo TEXT,
            grupo_id TEXT,
            observacao TEXT,
            fase_nome TEXT,
            servico_nome TEXT
        )
        """,
    ),
    (
        "propostas",
        """
        CREATE TABLE IF NOT EXISTS propostas (
            id TEXT PRIMARY KEY,
            numero TEXT,
            cotacao_id TEXT NOT NULL,
            fornecedor_id TEXT NOT NULL,
            status TEXT NOT NULL DEFAULT 'enviada' CHECK (status IN ('enviada','aceita','recusada')),
            valor_total {real} NOT NULL DEFAULT 0,
            valor_frete {real} NOT NULL DEFAULT 0,
            impostos {real} NOT NULL DEFAULT 0,
            prazo_entrega INTEGER,
            condicoes_pagamento TEXT,
            observacoes TEXT,
            data_envio {ts},
            data_validade {ts},
            created_at {ts} NOT NULL DEFAULT CURRENT_TIMESTAMP,
            updated_at {ts} NOT NULL DEFAULT CURRENT_TIMESTAMP,
            UNIQUE (cotacao_id, fornecedor_id)
        )
        """,
    ),
    (
        "proposta_itens",
        """
        CREATE TABLE IF NOT EXISTS proposta_itens (
            id TEXT PRIMARY KEY,
            proposta_id TEXT NOT NULL REFERENCES propostas (id) ON DELETE CASCADE,
            cotacao_item_id TEXT NOT NULL,
            preco_unitario {real} NOT NULL DEFAULT 0,
            quantidade {real} NOT NULL DEFAULT 0,
            subtotal {real} NOT NULL DEFAULT 0,
            disponibilidade TEXT NOT NULL DEFAULT 'indisponivel',
            prazo_dias INTEGER,
            observacao TEXT
        )
        """,
    ),
    (
        "pedidos",
        """
        CREATE TABLE IF NOT EXISTS pedidos (
            id TEXT PRIMARY KEY,
            numero TEXT,
            cotacao_id TEXT NOT NULL,
            proposta_id TEXT,
            user_id TEXT NOT NULL,
            fornecedor_id TEXT NOT NULL,
            obra_id TEXT,
            valor_total {real} NOT NULL DEFAULT 0,
            impostos {real} NOT NULL DEFAULT 0,
            status TEXT NOT NULL DEFAULT 'pendente' CHECK (
                status IN ('pendente','confirmado','em_preparacao','enviado','entregue','cancelado')
            ),
            snapshot {json},
            condicoes_pagamento TEXT,
            nota_fiscal {json},
            observacoes TEXT,
            data_confirmacao {ts},
            data_entrega {ts},
            data_prevista_entrega {ts},
            created_at {ts} NOT NULL DEFAULT CURRENT_TIMESTAMP,
            updated_at {ts} NOT NULL DEFAULT CURRENT_TIMESTAMP,
            UNIQUE (cotacao_id, fornecedor_id)
        )
        """,
    ),
    (
        "pedido_itens",
        """
        CREATE TABLE IF NOT EXISTS pedido_itens (
            id TEXT PRIMARY KEY,
            pedido_id TEXT NOT NULL REFERENCES pedidos (id) ON DELETE CASCADE,
            nome TEXT NOT NULL,
            quantidade {real} NOT NULL DEFAULT 0,
            unidade TEXT,
            preco_unitario {real} NOT NULL DEFAULT 0,
            subtotal {real} NOT NULL DEFAULT 0
        )
        """,
    ),
    (
        "notificacoes",
        """
        CREATE TABLE IF NOT EXISTS notificacoes (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            titulo TEXT NOT NULL,
            mensagem TEXT NOT NULL,
            tipo TEXT NOT NULL DEFAULT 'info' CHECK (tipo IN ('info','success','warning','error')),
            link TEXT,
            lida {bool} NOT NULL DEFAULT FALSE,
            created_at {ts} NOT NULL DEFAULT CURRENT_TIMESTAMP
        )
        """,
    ),
]


SCHEMA_INDEXES: List[str] = [
    "CREATE INDEX IF NOT EXISTS idx_cotacoes_user ON cotacoes (user_id)",
    "CREATE INDEX IF NOT EXISTS idx_cotacao_itens_cotacao ON cotacao_itens (cotacao_id)",
    "CREATE INDEX IF NOT EXISTS idx_propostas_cotacao ON propostas (cotacao_id)",
    "CREATE INDEX IF NOT EXISTS idx_proposta_itens_proposta ON proposta_itens (proposta_id)",
    "CREATE INDEX IF NOT EXISTS idx_pedidos_fornecedor ON pedidos (fornecedor_id)",
    "CREATE INDEX IF NOT EXISTS idx_pedido_itens_pedido ON pedido_itens (pedido_id)",
    "CREATE INDEX IF NOT EXISTS idx_notificacoes_user ON notificacoes (user_id, lida)",
]


def init_db():
    db = get_db()
    create_schema(db)
    db.commit()


def create_schema(db) -> None:
    types = _COLUMN_TYPES["postgres" if db.backend == "postgres" else "sqlite"]
    for _table, ddl in SCHEMA_TABLES:
        db.execute(ddl.format(**types))
    for ddl in SCHEMA_INDEXES:
        db.execute(ddl)


def drop_schema(db) -> None:
    for table, _ddl in reversed(SCHEMA_TABLES):
        db.execute(f"DROP TABLE IF EXISTS {table}")
