import unittest
from datetime import datetime, timedelta, timezone

from marketplace.procurement.delivery import expected_delivery, is_late
from marketplace.procurement.numbering import next_quote_number, order_number, proposal_number


T0 = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


class NumberingTest(unittest.TestCase):
    def test_quote_numbers_start_at_configured_value(self) -> None:
        self.assertEqual(next_quote_number([]), "10001")
        self.assertEqual(next_quote_number([], start=500), "500")

    def test_quote_numbers_follow_highest_numeric(self) -> None:
        self.assertEqual(next_quote_number(["10001", "10007", "legado-3", None]), "10008")

    def test_proposal_number_is_zero_padded(self) -> None:
        self.assertEqual(proposal_number(1), "PROP-0001")
        self.assertEqual(proposal_number(42), "PROP-0042")

    def test_order_number_single_and_split(self) -> None:
        self.assertEqual(order_number("10005", 1, 1), "10005")
        self.assertEqual([order_number("10005", n, 3) for n in (1, 2, 3)], ["10005.1", "10005.2", "10005.3"])
        self.assertIsNone(order_number(None, 1, 1))


class DeliveryTest(unittest.TestCase):
    def test_expected_from_created_at_plus_delivery_days(self) -> None:
        order = {"created_at": T0.isoformat(), "status": "pendente"}
        self.assertEqual(expected_delivery(order, {"delivery_days": 5}), T0 + timedelta(days=5))

    def test_explicit_expected_date_wins(self) -> None:
        order = {"created_at": T0.isoformat(), "data_prevista_entrega": "2026-03-04T00:00:00+00:00"}
        self.assertEqual(expected_delivery(order, {"delivery_days": 30}), datetime(2026, 3, 4, tzinfo=timezone.utc))

    def test_without_delivery_days_no_expectation(self) -> None:
        self.assertIsNone(expected_delivery({"created_at": T0.isoformat()}, {}))
        self.assertFalse(is_late({"created_at": T0.isoformat(), "status": "pendente"}, {}, T0 + timedelta(days=90)))

    def test_open_order_late_after_deadline(self) -> None:
        order = {"created_at": T0.isoformat(), "status": "confirmado"}
        summary = {"delivery_days": 5}
        self.assertFalse(is_late(order, summary, T0 + timedelta(days=4)))
        self.assertTrue(is_late(order, summary, T0 + timedelta(days=5, minutes=1)))

    def test_delivered_order_compares_delivery_timestamp(self) -> None:
        summary = {"delivery_days": 5}
        on_time = {"created_at": T0.isoformat(), "status": "entregue", "data_entrega": (T0 + timedelta(days=3)).isoformat()}
        late = {"created_at": T0.isoformat(), "status": "entregue", "data_entrega": (T0 + timedelta(days=6)).isoformat()}
        self.assertFalse(is_late(on_time, summary, T0 + timedelta(days=60)))
        self.assertTrue(is_late(late, summary, T0 + timedelta(days=6)))

    def test_cancelled_order_is_never_late(self) -> None:
        order = {"created_at": T0.isoformat(), "status": "cancelado"}
        self.assertFalse(is_late(order, {"delivery_days": 1}, T0 + timedelta(days=10)))


if __name__ == "__main__":
    unittest.main()
