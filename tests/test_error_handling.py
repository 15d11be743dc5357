import unittest
from unittest.mock import patch

from satinalma.errors import ConflictError, NotFoundError, UserActionError, ValidationError, error_response
from satinalma.ui_strings import error_message
from tests.helpers.api_case import ApiTestCase


class AppErrorPayloadTest(unittest.TestCase):
    def test_details_only_present_when_given(self) -> None:
        without = NotFoundError(code="order_not_found").to_response_payload("req-1")
        self.assertEqual(
            without,
            {
                "error": "order_not_found",
                "code": "order_not_found",
                "message": error_message("order_not_found"),
                "request_id": "req-1",
            },
        )

        with_none = UserActionError(code="invalid_payload", details=None).to_response_payload()
        self.assertIn("details", with_none)
        self.assertIsNone(with_none["details"])

    def test_explicit_message_and_extra_payload(self) -> None:
        error = ValidationError(code="rate_limit_exceeded", http_status=429, message="Yavaş", payload={"retry_after": 3})
        payload = error.to_response_payload()
        self.assertEqual(error.http_status, 429)
        self.assertEqual(payload["message"], "Yavaş")
        self.assertEqual(payload["retry_after"], 3)

    def test_status_defaults(self) -> None:
        self.assertEqual(ConflictError().http_status, 409)
        self.assertEqual(ConflictError().code, "duplicate")
        self.assertFalse(NotFoundError().critical)


class ErrorHandlingApiTest(ApiTestCase):
    config_overrides = {"PROPAGATE_EXCEPTIONS": False}

    def test_validation_error_envelope(self) -> None:
        response = self.client.post("/api/orders", json={}, headers=self.headers)

        self.assertEqual(response.status_code, 400)
        payload = response.get_json()
        self.assertEqual(payload["error"], "missing_fields")
        self.assertEqual(payload["code"], "missing_fields")
        self.assertEqual(payload["message"], error_message("missing_fields"))
        self.assertEqual(payload["details"], ["barcode"])
        self.assertEqual(payload["request_id"], response.headers["X-Request-Id"])

    def test_not_found_has_no_details(self) -> None:
        response = self.client.get("/api/orders/999", headers=self.headers)
        self.assertEqual(response.status_code, 404)
        self.assertNotIn("details", response.get_json())

    def test_incoming_request_id_is_echoed(self) -> None:
        response = self.client.get("/api/orders/999", headers={**self.headers, "X-Request-Id": "istek-42"})
        self.assertEqual(response.get_json()["request_id"], "istek-42")
        self.assertEqual(response.headers["X-Request-Id"], "istek-42")

    def test_stack_trace_not_exposed_for_unhandled_error(self) -> None:
        with patch(
            "satinalma.application.order_service.OrderService.list",
            side_effect=RuntimeError("stack_secret_token"),
        ):
            response = self.client.get("/api/orders", headers=self.headers)

        self.assertEqual(response.status_code, 500)
        payload = response.get_json()
        self.assertEqual(payload["error"], "server_error")
        self.assertEqual(payload["message"], error_message("server_error"))
        body = response.get_data(as_text=True)
        self.assertNotIn("Traceback", body)
        self.assertNotIn("stack_secret_token", body)

    def test_unknown_route_stays_http_404(self) -> None:
        self.assertEqual(self.client.get("/api/yok", headers=self.headers).status_code, 404)

    def test_error_response_helper(self) -> None:
        with self.app.test_request_context("/api/orders"):
            response, status = error_response("order_not_found", 404, details={"order_id": 3})
            self.assertEqual(status, 404)
            self.assertEqual(response.get_json()["details"], {"order_id": 3})

            _response, server_status = error_response("server_error", 503)
            self.assertEqual(server_status, 503)


if __name__ == "__main__":
    unittest.main()
