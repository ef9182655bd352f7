import os


def _bool_env(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _int_env(name: str, default: int) -> int:
    value = os.environ.get(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


DEV_SECRET_KEY = "dev-secret-marketplace-obras"


class Config:
    BASE_DIR = os.path.dirname(os.path.dirname(__file__))
    DATABASE_URL = os.environ.get("DATABASE_URL")
    DATABASE_DIR = None if DATABASE_URL else os.path.join(BASE_DIR, "database")
    DB_PATH = DATABASE_URL or os.path.join(DATABASE_DIR, "marketplace_obras.db")
    DB_AUTO_INIT = _bool_env("DB_AUTO_INIT", False)

    SECRET_KEY = os.environ.get("SECRET_KEY", DEV_SECRET_KEY)
    AUTH_ENABLED = _bool_env("AUTH_ENABLED", True)
    LOG_JSON = _bool_env("LOG_JSON", True)
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    QUOTE_NUMBER_START = _int_env("QUOTE_NUMBER_START", 10001)
    QUOTE_VALIDITY_DAYS = _int_env("QUOTE_VALIDITY_DAYS", 7)
    PROPOSAL_VALIDITY_DAYS = _int_env("PROPOSAL_VALIDITY_DAYS", 7)
    INVOICE_MAX_BYTES = _int_env("INVOICE_MAX_BYTES", 10 * 1024 * 1024)
    INVOICE_ALLOWED_TYPES = os.environ.get(
        "INVOICE_ALLOWED_TYPES",
        "application/pdf,image/jpeg,image/png",
    )



def validate_production_config(config) -> None:
    """Refuse to boot a production app on the dev database or dev secret."""
    env = (os.environ.get("FLASK_ENV", "development") or "development").strip().lower()
    if env != "production":
        return
    if not config.get("DATABASE_URL"):
        raise RuntimeError("DATABASE_URL nao definida para ambiente de producao.")
    if config.get("SECRET_KEY") in (None, "", DEV_SECRET_KEY):
        raise RuntimeError("SECRET_KEY insegura para producao.")
