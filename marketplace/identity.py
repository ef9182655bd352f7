from __future__ import annotations

from flask import g, jsonify, request, session

from marketplace.errors import AuthenticationError
from marketplace.infrastructure.repositories.marketplace import PartyRepository
from marketplace.observability import ensure_request_id
from marketplace.ui_strings import error_message


_PUBLIC_PATHS = {"/health"}
_PARTY_REPOSITORY = PartyRepository()


def register_identity(app) -> None:
    @app.before_request
    def _load_identity():
        g.user_id = _identity_from_request()
        if not app.config.get("AUTH_ENABLED", True):
            return None

        path = request.path or "/"
        if path in _PUBLIC_PATHS or not path.startswith("/api/"):
            return None
        if g.user_id:
            return None
        return (
            jsonify(
                {
                    "error": "auth_required",
                    "message": error_message("auth_required"),
                    "request_id": ensure_request_id(),
                }
            ),
            401,
        )


def _identity_from_request() -> str | None:
    session_user = str(session.get("user_id") or "").strip()
    if session_user:
        return session_user
    # Prototype: identity injected by the gateway in front of the API.
    header_user = (request.headers.get("X-User-Id") or "").strip()
    return header_user or None


def current_user_id() -> str | None:
    if "user_id" not in g:
        g.user_id = _identity_from_request()
    return g.user_id


def require_user_id() -> str:
    user_id = current_user_id()
    if not user_id:
        raise AuthenticationError()
    return user_id


def resolve_supplier_id(db, user_id: str | None) -> str | None:
    """Supplier record behind ``user_id``: the user's link first, then the supplier's owner column."""
    if not user_id:
        return None
    user = _PARTY_REPOSITORY.get_user(db, user_id)
    linked = str((user or {}).get("fornecedor_id") or "").strip()
    if linked and _PARTY_REPOSITORY.get_supplier(db, linked):
        return linked
    supplier = _PARTY_REPOSITORY.get_supplier_by_user(db, user_id)
    return str(supplier["id"]) if supplier else None
