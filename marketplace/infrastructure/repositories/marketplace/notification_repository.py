from __future__ import annotations

from marketplace.infrastructure.repositories.base import BaseRepository


class NotificationRepository(BaseRepository):
    def create(
        self,
        db,
        *,
        notification_id: str,
        user_id: str,
        titulo: str,
        mensagem: str,
        tipo: str,
        link: str | None,
        created_at: str,
    ) -> None:
        db.execute(
            """
            INSERT INTO notificacoes (id, user_id, titulo, mensagem, tipo, link, lida, created_at)
            VALUES (?, ?, ?, ?, ?, ?, FALSE, ?)
            """,
            (notification_id, user_id, titulo, mensagem, tipo, link, created_at),
        )

    def list_for_user(self, db, user_id: str, *, unread_only: bool = False, limit: int = 50) -> list[dict]:
        sql = "SELECT * FROM notificacoes WHERE user_id = ?"
        if unread_only:
            sql += " AND lida = FALSE"
        rows = db.execute(sql + " ORDER BY created_at DESC LIMIT ?", (user_id, int(limit))).fetchall()
        return self.rows_to_dicts(rows)

    def mark_read(self, db, notification_id: str, user_id: str) -> bool:
        cursor = db.execute(
            "UPDATE notificacoes SET lida = TRUE WHERE id = ? AND user_id = ?",
            (notification_id, user_id),
        )
        return bool(cursor.rowcount)
