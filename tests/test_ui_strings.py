import unittest

from satinalma.ui_strings import (
    DEFAULT_ERROR_MESSAGE,
    MESSAGES,
    STATUS_LABELS,
    audit_action_label,
    audit_entity_label,
    error_message,
    status_keys_for_group,
    status_label,
    success_message,
)


class UiStringsStatusGroupsTest(unittest.TestCase):
    def test_required_status_groups_exist(self) -> None:
        required_groups = {"request", "order", "rfq", "contract", "invoice", "meeting"}
        self.assertTrue(required_groups.issubset(set(STATUS_LABELS.keys())))

    def test_status_labels_are_not_empty(self) -> None:
        for group_name, statuses in STATUS_LABELS.items():
            self.assertTrue(statuses, f"boş grup: {group_name}")
            for key, label in statuses.items():
                self.assertTrue(label.strip(), f"boş etiket: {group_name}:{key}")

    def test_order_lifecycle_statuses(self) -> None:
        self.assertEqual(
            status_keys_for_group("order"),
            ["pending", "approved", "partially_delivered", "delivered", "completed", "cancelled"],
        )
        self.assertEqual(set(status_keys_for_group("rfq")), {"ACTIVE", "OPEN", "PASSIVE", "CANCELLED", "COMPLETED"})

    def test_status_label_falls_back_to_key(self) -> None:
        self.assertEqual(status_label("order", "partially_delivered"), "Kısmi Teslim Edildi")
        self.assertEqual(status_label("order", "bilinmeyen"), "bilinmeyen")
        self.assertEqual(status_label("yok", None), "")


class UiStringsMessagesTest(unittest.TestCase):
    def test_messages_are_not_empty(self) -> None:
        for category, messages in MESSAGES.items():
            for key, text in messages.items():
                self.assertTrue(text.strip(), f"boş mesaj: {category}:{key}")

    def test_error_codes_used_by_the_api_have_messages(self) -> None:
        for code in (
            "unauthorized",
            "forbidden",
            "invalid_payload",
            "missing_fields",
            "no_changes",
            "rate_limit_exceeded",
            "order_not_found",
            "duplicate_barcode",
            "rfq_expired",
            "email_delivery_failed",
            "workflow_not_found",
            "entity_not_found",
            "invalid_action",
            "invalid_step",
            "no_workflow",
            "approval_closed",
        ):
            self.assertIn(code, MESSAGES["error"], code)

    def test_lookup_fallbacks(self) -> None:
        self.assertEqual(error_message("yok_boyle_kod"), "yok_boyle_kod")
        self.assertEqual(error_message("yok_boyle_kod", DEFAULT_ERROR_MESSAGE), DEFAULT_ERROR_MESSAGE)
        self.assertEqual(success_message("delivery_recorded"), "Teslimat kaydedildi.")

    def test_audit_labels_fall_back_to_raw_values(self) -> None:
        self.assertEqual(audit_action_label("APPROVE"), "Onaylama")
        self.assertEqual(audit_entity_label("Workflow"), "Onay Akışı")
        self.assertEqual(audit_action_label("ARCHIVE"), "ARCHIVE")
        self.assertEqual(audit_entity_label(None), "")


if __name__ == "__main__":
    unittest.main()
