import io
import unittest
from datetime import datetime, timedelta, timezone

from marketplace.db import close_db, load_json
from tests.helpers.fixtures import MarketplaceScenario, build_temp_app, user_headers
from tests.helpers.temp_db import TempDbSandbox


CP2 = "Cimento CP II 50kg"
ARGAMASSA = "Argamassa AC-III"
S1_PRICES = {CP2: 40.0, ARGAMASSA: 20.0}
S2_PRICES = {CP2: 36.0, ARGAMASSA: 18.0}


class OrderFulfillmentTest(unittest.TestCase):
    def setUp(self) -> None:
        self._temp_db = TempDbSandbox(prefix="order_fulfillment")
        self.app = build_temp_app(self._temp_db)
        self.scenario = MarketplaceScenario(self.app)
        self.client = self.scenario.client
        self.fx = self.scenario.fx
        self.quote = self.scenario.cimento_quote()
        self.scenario.submit_proposal(self.scenario.s1_user, self.quote, S1_PRICES)
        self.scenario.submit_proposal(self.scenario.s2_user, self.quote, S2_PRICES)
        finalized = self.scenario.finalize(
            self.quote["id"], [self.scenario.award_group(self.scenario.s2_id, self.quote, S2_PRICES)]
        )
        self.order_id = finalized.get_json()["orders"][0]["id"]

    def tearDown(self) -> None:
        with self.app.app_context():
            close_db()
        self._temp_db.cleanup()

    def _set_status(self, status: str, user_id: str | None = None, **extra):
        body = {"status": status}
        body.update(extra)
        return self.client.post(
            f"/api/pedidos/{self.order_id}/status",
            json=body,
            headers=user_headers(user_id or self.scenario.s2_user),
        )

    def _order(self) -> dict:
        return self.fx.query("SELECT * FROM pedidos WHERE id = ?", (self.order_id,))[0]

    def _client_titles(self) -> list[str]:
        return [row["titulo"] for row in self.fx.notifications_for(self.scenario.client_id)]

    def test_confirmation_and_delivery_are_stamped(self) -> None:
        confirmed = self._set_status("confirmado")
        self.assertEqual(confirmed.status_code, 200)
        self.assertEqual(confirmed.get_json()["data"]["status"], "confirmado")
        self.assertIsNotNone(self._order()["data_confirmacao"])
        self.assertIsNone(self._order()["data_entrega"])

        self.assertEqual(self._set_status("em_preparacao").status_code, 200)
        self.assertEqual(self._set_status("enviado").status_code, 200)
        delivered = self._set_status("entregue")
        self.assertEqual(delivered.status_code, 200)
        self.assertFalse(delivered.get_json()["atrasado"])
        self.assertIsNotNone(self._order()["data_entrega"])

        titles = self._client_titles()
        for title in ("Pedido Confirmado", "Pedido em Separacao", "Pedido Saiu para Entrega", "Pedido Entregue"):
            self.assertIn(title, titles)

    def test_steps_may_be_skipped_forward(self) -> None:
        response = self._set_status("enviado")
        self.assertEqual(response.status_code, 200)
        self.assertIsNone(self._order()["data_confirmacao"])

    def test_status_never_moves_backwards(self) -> None:
        self._set_status("enviado")
        response = self._set_status("confirmado")
        self.assertEqual(response.status_code, 400)
        payload = response.get_json()
        self.assertEqual(payload["error"], "order_status_backwards")
        self.assertEqual(payload["status_atual"], "enviado")
        self.assertEqual(self._order()["status"], "enviado")

        cancel = self._set_status("cancelado")
        self.assertEqual(cancel.status_code, 400)
        self.assertEqual(cancel.get_json()["error"], "order_status_backwards")

    def test_terminal_orders_are_frozen(self) -> None:
        self._set_status("entregue")
        response = self._set_status("enviado")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()["error"], "order_status_terminal")

    def test_unknown_status(self) -> None:
        response = self._set_status("arquivado")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()["error"], "status_invalid")

    def test_cancellation_warns_client(self) -> None:
        self.assertEqual(self._set_status("cancelado").status_code, 200)
        notes = [row for row in self.fx.notifications_for(self.scenario.client_id) if row["titulo"] == "Pedido Cancelado"]
        self.assertEqual(len(notes), 1)
        self.assertEqual(notes[0]["tipo"], "warning")

    def test_invoice_type_and_size_are_checked(self) -> None:
        wrong_type = self._set_status(
            "enviado",
            nota_fiscal={"filename": "nf.docx", "content_type": "application/msword", "size_bytes": 100},
        )
        self.assertEqual(wrong_type.status_code, 400)
        self.assertEqual(wrong_type.get_json()["error"], "invoice_invalid_type")

        too_large = self._set_status(
            "enviado",
            nota_fiscal={"filename": "nf.pdf", "content_type": "application/pdf", "size_bytes": 11 * 1024 * 1024},
        )
        self.assertEqual(too_large.status_code, 400)
        self.assertEqual(too_large.get_json()["error"], "invoice_too_large")

        order = self._order()
        self.assertEqual(order["status"], "pendente")
        self.assertIsNone(order["nota_fiscal"])

    def test_multipart_invoice_upload_with_summary_patch(self) -> None:
        response = self.client.post(
            f"/api/pedidos/{self.order_id}/status",
            data={
                "status": "enviado",
                "resumo": '{"tracking_code": "BR123"}',
                "nota_fiscal": (io.BytesIO(b"%PDF-1.4 nota fiscal"), "nf-10001.pdf", "application/pdf"),
            },
            content_type="multipart/form-data",
            headers=user_headers(self.scenario.s2_user),
        )
        self.assertEqual(response.status_code, 200)
        invoice = response.get_json()["data"]["nota_fiscal"]
        self.assertEqual(invoice["filename"], "nf-10001.pdf")
        self.assertEqual(invoice["content_type"], "application/pdf")
        self.assertEqual(invoice["size_bytes"], len(b"%PDF-1.4 nota fiscal"))
        self.assertIn("uploaded_at", invoice)

        snapshot = load_json(self._order()["snapshot"], {})
        self.assertEqual(snapshot["summary"]["tracking_code"], "BR123")
        self.assertEqual(snapshot["summary"]["total"], 450.0)

    def test_multipart_invoice_with_spoofed_type_is_rejected(self) -> None:
        response = self.client.post(
            f"/api/pedidos/{self.order_id}/status",
            data={
                "status": "enviado",
                "nota_fiscal": (io.BytesIO(b"MZ\x90\x00"), "malware.exe", "application/pdf"),
            },
            content_type="multipart/form-data",
            headers=user_headers(self.scenario.s2_user),
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()["error"], "invoice_invalid_type")
        self.assertEqual(self._order()["status"], "pendente")

    def test_late_order_notifies_client(self) -> None:
        self.fx.backdate_order(self.order_id, days=10)
        response = self._set_status("confirmado")
        self.assertEqual(response.status_code, 200)
        payload = response.get_json()
        self.assertTrue(payload["atrasado"])
        self.assertTrue(payload["data"]["atrasado"])

        late = [row for row in self.fx.notifications_for(self.scenario.client_id) if row["titulo"] == "Pedido em Atraso"]
        self.assertEqual(len(late), 1)
        self.assertEqual(late[0]["tipo"], "warning")
        self.assertRegex(late[0]["mensagem"], r"\d{2}/\d{2}/\d{4}")

    def test_explicit_expected_date_overrides_lead_time(self) -> None:
        self.fx.backdate_order(self.order_id, days=10)
        expected = (datetime.now(timezone.utc) + timedelta(days=3)).isoformat()
        response = self._set_status("confirmado", data_prevista_entrega=expected)
        self.assertEqual(response.status_code, 200)
        self.assertFalse(response.get_json()["atrasado"])
        self.assertNotIn("Pedido em Atraso", self._client_titles())

        invalid = self._set_status("em_preparacao", data_prevista_entrega="amanha")
        self.assertEqual(invalid.status_code, 400)
        self.assertEqual(invalid.get_json()["error"], "validation_error")

    def test_only_the_awarded_supplier_updates_the_order(self) -> None:
        for user_id in (self.scenario.s1_user, self.scenario.client_id):
            response = self._set_status("confirmado", user_id=user_id)
            self.assertEqual(response.status_code, 404)
            self.assertEqual(response.get_json()["error"], "pedido_not_found")
        self.assertEqual(self._order()["status"], "pendente")

    def test_proposal_change_syncs_negotiable_order(self) -> None:
        response = self.scenario.submit_proposal(self.scenario.s2_user, self.quote, S2_PRICES, freight=50.0)
        self.assertEqual(response.status_code, 200)
        synced = response.get_json()["pedido_sincronizado"]
        self.assertEqual(synced["pedido_id"], self.order_id)
        self.assertEqual(synced["valor_total"], 500.0)
        self.assertEqual(synced["itens_sem_correspondencia"], [])

        order = self._order()
        self.assertEqual(order["valor_total"], 500.0)
        snapshot = load_json(order["snapshot"], {})
        self.assertEqual(snapshot["summary"]["freight"], 50.0)
        self.assertEqual(snapshot["summary"]["subtotal"], 450.0)
        self.assertEqual(snapshot["supplier"]["name"], "Deposito Dois")

        self._set_status("confirmado")
        repriced = self.scenario.submit_proposal(self.scenario.s2_user, self.quote, {CP2: 35.0, ARGAMASSA: 18.0})
        self.assertEqual(repriced.status_code, 200)
        self.assertEqual(self._order()["valor_total"], 440.0)
        items = self.fx.query("SELECT * FROM pedido_itens WHERE pedido_id = ? AND nome = ?", (self.order_id, CP2))
        self.assertEqual(items[0]["preco_unitario"], 35.0)

    def test_no_sync_once_preparation_started(self) -> None:
        self._set_status("em_preparacao")
        response = self.scenario.submit_proposal(self.scenario.s2_user, self.quote, S2_PRICES, freight=50.0)
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.get_json()["error"], "quote_closed_for_proposals")
        self.assertEqual(self._order()["valor_total"], 450.0)


if __name__ == "__main__":
    unittest.main()
