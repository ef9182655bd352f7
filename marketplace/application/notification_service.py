from __future__ import annotations

import logging

from marketplace.db import new_id, utc_now_iso
from marketplace.domain.contracts import ServiceOutput
from marketplace.errors import NotFoundError
from marketplace.infrastructure.repositories.marketplace import NotificationRepository
from marketplace.ui_strings import NOTIFICATION_LINKS, notification_text


LOGGER = logging.getLogger("marketplace.notifications")

SEVERITIES = ("info", "success", "warning", "error")


class NotificationSink:
    def __init__(self, repository: NotificationRepository | None = None) -> None:
        self.repository = repository or NotificationRepository()

    def notify(
        self,
        db,
        *,
        user_id: str | None,
        title: str,
        message: str,
        severity: str = "info",
        link: str | None = None,
    ) -> bool:
        """Record a notification; failures are logged and never propagate."""
        if not user_id:
            return False
        tipo = severity if severity in SEVERITIES else "info"
        try:
            self.repository.create(
                db,
                notification_id=new_id(),
                user_id=user_id,
                titulo=title,
                mensagem=message,
                tipo=tipo,
                link=link,
                created_at=utc_now_iso(),
            )
        except Exception:
            LOGGER.warning(
                "notification_failed",
                extra={"user_id": user_id, "title": title, "severity": tipo},
                exc_info=True,
            )
            return False
        return True

    def notify_key(
        self,
        db,
        *,
        user_id: str | None,
        key: str,
        audience: str,
        severity: str = "info",
        **values,
    ) -> bool:
        title, message = notification_text(key, **values)
        return self.notify(
            db,
            user_id=user_id,
            title=title,
            message=message,
            severity=severity,
            link=NOTIFICATION_LINKS.get(audience),
        )


class NotificationService:
    def __init__(self, repository: NotificationRepository | None = None) -> None:
        self.repository = repository or NotificationRepository()

    def list_for_user(self, db, *, user_id: str, unread_only: bool = False, limit: int = 50) -> ServiceOutput:
        rows = self.repository.list_for_user(db, user_id, unread_only=unread_only, limit=limit)
        items = [{**row, "lida": bool(row.get("lida"))} for row in rows]
        return ServiceOutput(
            payload={
                "data": items,
                "unread": sum(1 for item in items if not item["lida"]),
            }
        )

    def mark_read(self, db, *, user_id: str, notification_id: str) -> ServiceOutput:
        if not self.repository.mark_read(db, notification_id, user_id):
            raise NotFoundError(code="notification_not_found", message_key="notification_not_found")
        return ServiceOutput(payload={"success": True, "id": notification_id})
