import unittest

from marketplace.procurement.flow_policy import ORDER_STATUS_SEQUENCE
from marketplace.ui_strings import (
    MESSAGES,
    STATUS_GROUPS,
    error_message,
    notification_text,
    status_keys_for_group,
)


class UiStringsStatusGroupsTest(unittest.TestCase):
    def test_required_status_groups_exist(self) -> None:
        self.assertEqual(set(status_keys_for_group("cotacao")), {"enviada", "respondida", "fechada"})
        self.assertTrue(set(ORDER_STATUS_SEQUENCE).issubset(status_keys_for_group("pedido")))
        self.assertIn("cancelado", status_keys_for_group("pedido"))

    def test_status_labels_and_descriptions_are_not_empty(self) -> None:
        for group_name, statuses in STATUS_GROUPS.items():
            for status in statuses:
                self.assertTrue((status.get("label") or "").strip(), f"label vazio em {group_name}:{status.get('key')}")
                self.assertTrue(
                    (status.get("description") or "").strip(),
                    f"descricao vazia em {group_name}:{status.get('key')}",
                )

    def test_error_codes_have_messages(self) -> None:
        codes = (
            "auth_required",
            "access_denied",
            "invalid_group_items",
            "quote_closed_for_proposals",
            "no_orders_created",
            "order_status_backwards",
            "order_status_terminal",
            "status_invalid",
            "invoice_invalid_type",
            "invoice_too_large",
            "pedido_not_found",
        )
        for code in codes:
            self.assertIn(code, MESSAGES["error"], code)
            self.assertNotEqual(error_message(code), code)

    def test_every_order_status_has_a_notification(self) -> None:
        for status in status_keys_for_group("pedido"):
            if status == "pendente":
                continue
            title, message = notification_text(f"order_{status}", number="10001")
            self.assertNotEqual(title, f"order_{status}.title")
            self.assertIn("10001", message)

    def test_late_notification_carries_expected_date(self) -> None:
        _title, message = notification_text("order_late", number="10001", expected="07/03/2026")
        self.assertIn("07/03/2026", message)


if __name__ == "__main__":
    unittest.main()
