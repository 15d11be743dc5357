import unittest

from satinalma.procurement.evaluation_scoring import (
    answer_value,
    decision_for,
    evaluate,
    resolve_weights,
)
from satinalma.procurement.matching import three_way_match
from satinalma.procurement.reconciliation import (
    delivery_status_for,
    next_order_status,
    reconcile_delivery_quantities,
)
from satinalma.procurement.validators import (
    contact_errors,
    order_items_total,
    parse_datetime,
    validate_order_items,
)


ORDER_ITEMS = [
    {"id": 1, "name": "Vida", "sku": "VD-10", "quantity": 10, "unit_price": 2.5},
    {"id": 2, "name": "Somun", "sku": None, "quantity": 5, "unit_price": 1},
]


class ReconciliationTest(unittest.TestCase):
    def test_only_approved_deliveries_count(self) -> None:
        deliveries = [
            {"status": "approved", "items": [{"order_item_id": 1, "quantity": 4}]},
            {"status": "pending", "items": [{"order_item_id": 1, "quantity": 6}]},
            {"status": "rejected", "items": [{"order_item_id": 2, "quantity": 5}]},
        ]
        result = reconcile_delivery_quantities(ORDER_ITEMS, deliveries)

        self.assertEqual(
            result["items"],
            [
                {"order_item_id": 1, "ordered": 10.0, "delivered": 4.0, "remaining": 6.0},
                {"order_item_id": 2, "ordered": 5.0, "delivered": 0.0, "remaining": 5.0},
            ],
        )
        self.assertFalse(result["all_delivered"])
        self.assertTrue(result["any_delivered"])
        self.assertEqual(delivery_status_for(result), "partially_delivered")

    def test_approved_quantity_wins_over_quantity(self) -> None:
        deliveries = [
            {
                "status": "approved",
                "items": [
                    {"order_item_id": 1, "quantity": 12, "approved_quantity": 10},
                    {"order_item_id": 2, "quantity": 5, "approved_quantity": None},
                    {"order_item_id": 99, "quantity": 1},
                ],
            }
        ]
        result = reconcile_delivery_quantities(ORDER_ITEMS, deliveries)

        self.assertTrue(result["all_delivered"])
        self.assertEqual(delivery_status_for(result), "delivered")

    def test_over_delivery_never_goes_negative(self) -> None:
        deliveries = [{"status": "approved", "items": [{"order_item_id": 2, "quantity": 8}]}]
        result = reconcile_delivery_quantities(ORDER_ITEMS, deliveries)
        self.assertEqual(result["items"][1]["remaining"], 0.0)

    def test_nothing_delivered_keeps_status(self) -> None:
        result = reconcile_delivery_quantities(ORDER_ITEMS, [])
        self.assertIsNone(delivery_status_for(result))
        self.assertEqual(next_order_status("approved", result), "approved")

    def test_order_without_items_is_never_delivered(self) -> None:
        result = reconcile_delivery_quantities(
            [],
            [{"status": "approved", "items": [{"order_item_id": 1, "quantity": 3}]}],
        )
        self.assertEqual(result["items"], [])
        self.assertFalse(result["all_delivered"])
        self.assertFalse(result["any_delivered"])
        self.assertIsNone(delivery_status_for(result))
        self.assertEqual(next_order_status("approved", result), "approved")

    def test_terminal_statuses_are_kept(self) -> None:
        done = reconcile_delivery_quantities(
            ORDER_ITEMS,
            [{"status": "approved", "items": [{"order_item_id": 1, "quantity": 10}, {"order_item_id": 2, "quantity": 5}]}],
        )
        self.assertEqual(next_order_status("pending", done), "delivered")
        self.assertEqual(next_order_status("completed", done), "completed")
        self.assertEqual(next_order_status("cancelled", done), "cancelled")


class ThreeWayMatchTest(unittest.TestCase):
    def test_flags_per_item(self) -> None:
        order = {"barcode": "ORD-1", "realized_total": 30.0}
        deliveries = [{"status": "approved", "items": [{"order_item_id": 1, "quantity": 10}, {"order_item_id": 2, "quantity": 3}]}]
        invoices = [
            {
                "amount": 20.0,
                "items": [
                    {"name": "VD-10 paslanmaz vida", "quantity": 10},
                    {"name": "Somun", "quantity": 4},
                ],
            }
        ]

        result = three_way_match(order, ORDER_ITEMS, deliveries, invoices)

        self.assertEqual(result["order_barcode"], "ORD-1")
        screw, nut = result["analysis"]
        self.assertEqual((screw["ordered"], screw["delivered"], screw["invoiced"]), (10.0, 10.0, 10.0))
        self.assertTrue(screw["status"]["qty_match"])
        self.assertEqual((nut["delivered"], nut["invoiced"]), (3.0, 4.0))
        self.assertTrue(nut["status"]["under_delivered"])
        self.assertTrue(nut["status"]["over_invoiced"])
        self.assertFalse(nut["status"]["over_delivered"])
        self.assertEqual(result["totals"], {"ordered": 30.0, "invoiced": 20.0, "balance": 10.0})

    def test_only_first_matching_invoice_line_counts(self) -> None:
        invoices = [{"amount": 0, "items": [{"name": "Vida", "quantity": 2}, {"name": "Vida", "quantity": 7}]}]
        result = three_way_match({"barcode": "ORD-2", "realized_total": 0}, ORDER_ITEMS, [], invoices)
        self.assertEqual(result["analysis"][0]["invoiced"], 2.0)


class ValidatorsTest(unittest.TestCase):
    def test_order_items_total_includes_extra_costs(self) -> None:
        items, errors = validate_order_items(
            [
                {"name": "Vida", "quantity": "10", "unit_price": "2,5"},
                {"name": "Somun", "quantity": 5, "unit_price": 1, "extra_costs": 3},
            ]
        )
        self.assertEqual(errors, [])
        self.assertEqual(order_items_total(items), 33.0)

    def test_contact_errors_skip_blank_fields(self) -> None:
        self.assertEqual(contact_errors(None, "", None), [])
        self.assertEqual(contact_errors("x@y.co", "0212 555 1234", "1234 5678"), [])
        self.assertEqual(contact_errors("x@", "123", "12"), ["invalid_email", "invalid_phone", "invalid_taxId"])

    def test_parse_datetime_normalizes_to_utc(self) -> None:
        parsed = parse_datetime("2026-03-01T12:00:00+03:00")
        self.assertEqual((parsed.hour, parsed.utcoffset().total_seconds()), (9, 0))
        self.assertEqual(parse_datetime("2026-03-01T12:00:00Z").hour, 12)
        self.assertIsNone(parse_datetime("yarın"))


class EvaluationScoringTest(unittest.TestCase):
    def test_answer_values(self) -> None:
        self.assertEqual(answer_value("o1"), 5.0)
        self.assertEqual(answer_value("O4"), 2.0)
        self.assertEqual(answer_value("3.5"), 3.5)
        self.assertEqual(answer_value("-1"), 0.0)
        self.assertEqual(answer_value("nan"), 0.0)
        self.assertEqual(answer_value("bilinmiyor"), 0.0)

    def test_weights_resolution(self) -> None:
        self.assertEqual(resolve_weights("malzeme"), ({"A": 0.4, "B": 0.4, "C": 0.2}, "default"))
        weights, source = resolve_weights("genel")
        self.assertEqual(source, "equal")
        self.assertAlmostEqual(sum(weights.values()), 1.0)
        configured = {"weight_a": 0.5, "weight_b": 0.25, "weight_c": 0.25}
        self.assertEqual(resolve_weights("malzeme", configured), ({"A": 0.5, "B": 0.25, "C": 0.25}, "database"))

    def test_decision_thresholds(self) -> None:
        self.assertEqual(decision_for(4.5), "Onaylı Tedarikçi")
        self.assertEqual(decision_for(4.49), "Çalışılabilir")
        self.assertEqual(decision_for(2.5), "Şartlı Çalışılabilir")
        self.assertEqual(decision_for(1.0), "Yetersiz")
        self.assertEqual(decision_for(0.99), "Belirsiz")
        self.assertEqual(decision_for(4.8, "insaat"), "Onaylı Yüklenici")
        self.assertEqual(decision_for(3.6, "INSAAT"), "Çalışılabilir Yüklenici")

    def test_evaluate_weighted_rating(self) -> None:
        result = evaluate([("A", "o1"), ("A", "o3"), ("B", "5"), ("C", "o4")], "malzeme")

        self.assertEqual((result["avg_a"], result["avg_b"], result["avg_c"]), (4.0, 5.0, 2.0))
        self.assertEqual(result["overall_rating"], 4.0)
        self.assertEqual(result["score"], 80.0)
        self.assertEqual(result["decision"], "Çalışılabilir")

    def test_empty_section_averages_zero(self) -> None:
        result = evaluate([("A", "o1")], "bakim")
        self.assertEqual(result["avg_b"], 0.0)
        self.assertEqual(result["overall_rating"], 2.5)


if __name__ == "__main__":
    unittest.main()
