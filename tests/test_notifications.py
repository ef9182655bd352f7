import sqlite3
import unittest

from marketplace.application.notification_service import NotificationSink
from marketplace.db import close_db, get_db
from marketplace.infrastructure.repositories.marketplace import NotificationRepository
from tests.helpers.fixtures import MarketplaceScenario, build_temp_app, user_headers
from tests.helpers.temp_db import TempDbSandbox


CP2 = "Cimento CP II 50kg"
ARGAMASSA = "Argamassa AC-III"


class FailingNotificationRepository(NotificationRepository):
    def create(self, db, **kwargs):
        raise sqlite3.OperationalError("no such table: notificacoes")


class NotificationApiTest(unittest.TestCase):
    def setUp(self) -> None:
        self._temp_db = TempDbSandbox(prefix="notifications")
        self.app = build_temp_app(self._temp_db)
        self.scenario = MarketplaceScenario(self.app)
        self.client = self.scenario.client
        self.headers = user_headers(self.scenario.client_id)
        quote = self.scenario.cimento_quote()
        self.scenario.submit_proposal(self.scenario.s1_user, quote, {CP2: 40.0, ARGAMASSA: 20.0})
        self.scenario.submit_proposal(self.scenario.s2_user, quote, {CP2: 36.0, ARGAMASSA: 18.0})

    def tearDown(self) -> None:
        with self.app.app_context():
            close_db()
        self._temp_db.cleanup()

    def test_list_and_mark_read(self) -> None:
        response = self.client.get("/api/notificacoes", headers=self.headers)
        self.assertEqual(response.status_code, 200)
        payload = response.get_json()
        self.assertEqual(payload["unread"], 2)
        self.assertEqual({item["titulo"] for item in payload["data"]}, {"Nova Proposta Recebida"})
        self.assertEqual({item["link"] for item in payload["data"]}, {"/dashboard/cliente"})

        target = payload["data"][0]["id"]
        marked = self.client.post(f"/api/notificacoes/{target}/lida", headers=self.headers)
        self.assertEqual(marked.status_code, 200)

        unread = self.client.get("/api/notificacoes?nao_lidas=1", headers=self.headers).get_json()
        self.assertEqual(unread["unread"], 1)
        self.assertNotIn(target, [item["id"] for item in unread["data"]])

    def test_limit_is_applied(self) -> None:
        payload = self.client.get("/api/notificacoes?limit=1", headers=self.headers).get_json()
        self.assertEqual(len(payload["data"]), 1)

    def test_cannot_mark_someone_elses_notification(self) -> None:
        target = self.client.get("/api/notificacoes", headers=self.headers).get_json()["data"][0]["id"]
        response = self.client.post(
            f"/api/notificacoes/{target}/lida",
            headers=user_headers(self.scenario.s1_user),
        )
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.get_json()["error"], "notification_not_found")

    def test_delivery_failure_does_not_raise(self) -> None:
        sink = NotificationSink(FailingNotificationRepository())
        with self.app.app_context():
            try:
                delivered = sink.notify(
                    get_db(),
                    user_id=self.scenario.client_id,
                    title="Teste",
                    message="Mensagem",
                )
            finally:
                close_db()
        self.assertFalse(delivered)


if __name__ == "__main__":
    unittest.main()
