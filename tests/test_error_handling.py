import unittest
from unittest.mock import patch

from marketplace.db import close_db
from marketplace.routes import marketplace_routes
from marketplace.ui_strings import error_message
from tests.helpers.fixtures import MarketplaceScenario, build_temp_app, user_headers
from tests.helpers.temp_db import TempDbSandbox


class ErrorPermissionTest(unittest.TestCase):
    def setUp(self) -> None:
        self._temp_db = TempDbSandbox(prefix="error_perm")
        self.app = build_temp_app(self._temp_db)
        self.client = self.app.test_client()

    def tearDown(self) -> None:
        with self.app.app_context():
            close_db()
        self._temp_db.cleanup()

    def test_unauthenticated_api_call(self) -> None:
        response = self.client.get("/api/cotacoes")
        self.assertEqual(response.status_code, 401)

        payload = response.get_json()
        self.assertEqual(payload.get("error"), "auth_required")
        self.assertEqual(payload.get("message"), error_message("auth_required"))
        self.assertTrue((payload.get("request_id") or "").strip())
        self.assertEqual(response.headers.get("X-Request-Id"), payload["request_id"])
        self.assertNotIn("Traceback", response.get_data(as_text=True))

    def test_health_is_public(self) -> None:
        response = self.client.get("/health")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json()["status"], "ok")

    def test_request_id_is_echoed(self) -> None:
        response = self.client.get("/api/cotacoes", headers={"X-Request-Id": "req-abc-123"})
        self.assertEqual(response.get_json()["request_id"], "req-abc-123")


class ErrorHandlingApiTest(unittest.TestCase):
    def setUp(self) -> None:
        self._temp_db = TempDbSandbox(prefix="error_api")
        self.app = build_temp_app(self._temp_db)
        self.scenario = MarketplaceScenario(self.app)
        self.client = self.scenario.client
        self.headers = user_headers(self.scenario.client_id)

    def tearDown(self) -> None:
        with self.app.app_context():
            close_db()
        self._temp_db.cleanup()

    def test_not_found_carries_code_message_and_request_id(self) -> None:
        response = self.client.get("/api/cotacoes/nao-existe", headers=self.headers)
        self.assertEqual(response.status_code, 404)
        payload = response.get_json()
        self.assertEqual(payload.get("error"), "quote_not_found")
        self.assertEqual(payload.get("message"), error_message("quote_not_found"))
        self.assertTrue((payload.get("request_id") or "").strip())

    def test_room_access_denied(self) -> None:
        response = self.client.get("/api/salas/sala-inexistente/acesso", headers=self.headers)
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.get_json().get("error"), "access_denied")

    def test_malformed_number_is_a_validation_error(self) -> None:
        quote = self.scenario.cimento_quote()
        response = self.client.post(
            "/api/propostas",
            json={
                "cotacao_id": quote["id"],
                "valor_total": "muito",
                "itens": [{"cotacao_item_id": quote["itens"][0]["id"], "preco_unitario": 1}],
            },
            headers=user_headers(self.scenario.s1_user),
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json().get("error"), "validation_error")

    def test_unexpected_error_hides_internals(self) -> None:
        with patch.object(
            marketplace_routes._QUOTE_SERVICE,
            "list_for_client",
            side_effect=RuntimeError("database exploded"),
        ):
            response = self.client.get("/api/cotacoes", headers=self.headers)

        self.assertEqual(response.status_code, 500)
        payload = response.get_json()
        self.assertEqual(payload.get("error"), "unexpected_error")
        self.assertEqual(payload.get("message"), error_message("unexpected_error"))
        self.assertTrue((payload.get("request_id") or "").strip())
        body = response.get_data(as_text=True)
        self.assertNotIn("database exploded", body)
        self.assertNotIn("Traceback", body)


if __name__ == "__main__":
    unittest.main()
