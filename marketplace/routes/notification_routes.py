from __future__ import annotations

from flask import Blueprint, jsonify, request

from marketplace.application.notification_service import NotificationService
from marketplace.db import get_db
from marketplace.identity import require_user_id


notification_bp = Blueprint("notifications", __name__)

_NOTIFICATION_SERVICE = NotificationService()


def _parse_int(value: str | None, default: int, min_value: int, max_value: int) -> int:
    if value is None:
        return default
    try:
        parsed = int(value)
    except ValueError:
        return default
    return max(min_value, min(parsed, max_value))


@notification_bp.route("/api/notificacoes", methods=["GET"])
def notificacoes_api():
    user_id = require_user_id()
    unread_only = (request.args.get("nao_lidas") or "").strip().lower() in {"1", "true", "sim"}
    result = _NOTIFICATION_SERVICE.list_for_user(
        get_db(),
        user_id=user_id,
        unread_only=unread_only,
        limit=_parse_int(request.args.get("limit"), default=50, min_value=1, max_value=200),
    )
    return jsonify(result.payload), result.status_code


@notification_bp.route("/api/notificacoes/<notification_id>/lida", methods=["POST"])
def notificacao_lida_api(notification_id: str):
    user_id = require_user_id()
    db = get_db()
    result = _NOTIFICATION_SERVICE.mark_read(db, user_id=user_id, notification_id=notification_id)
    db.commit()
    return jsonify(result.payload), result.status_code
