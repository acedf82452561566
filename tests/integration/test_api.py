"""Integration tests for API endpoints"""

import pytest
from fastapi.testclient import TestClient

MERCHANT_HEADERS = {"X-Merchant-Id": "merchant-1"}

CARD = {
    "card_number": "4000001234567899",
    "cardholder_name": "Jane Doe",
    "expiry_month": 12,
    "expiry_year": 2030,
    "cvv": "123",
}


def _authorize(client: TestClient, reference: str = "order-1", headers=None, **fields):
    body = {"merchant_reference": reference, "amount": "100.00", "currency": "USD", "card": CARD}
    body.update(fields)
    return client.post("/v1/payments/authorize", json=body, headers=headers or MERCHANT_HEADERS)


@pytest.fixture
def authorized_id(client: TestClient) -> str:
    response = _authorize(client, "fixture-order")
    assert response.json()["success"] is True
    return response.json()["payment_id"]


def test_health_endpoint(client: TestClient):
    """Test health check endpoint"""
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "service": "lcr-gateway"}


def test_metrics_endpoint(client: TestClient):
    """Test Prometheus metrics endpoint"""
    _authorize(client)

    response = client.get("/metrics")
    assert response.status_code == 200
    assert "lcr_payment_operations_total" in response.text
    assert "lcr_routing_selections_total" in response.text


def test_request_id_is_propagated(client: TestClient):
    response = client.get("/health", headers={"X-Request-ID": "trace-123"})
    assert response.headers["X-Request-ID"] == "trace-123"

    assert client.get("/health").headers["X-Request-ID"]


def test_authorize_card_payment(client: TestClient):
    """Test POST /v1/payments/authorize with a plain Visa card"""
    response = _authorize(client)

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["status"] == "AUTHORIZED"
    assert data["message"] == "Payment authorized successfully"
    assert data["network"] == "VISA"
    assert data["representation"] == "PAN"
    assert data["used_token"] is False
    assert data["auth_code"]
    assert data["payment_id"].startswith("PMT")
    assert float(data["routing_cost"]) > 0
    assert "card_number" not in data


def test_authorize_business_failure_is_200(client: TestClient, processor):
    processor.approve = False

    response = _authorize(client)

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is False
    assert data["status"] == "FAILED"
    assert data["message"] == "Authorization declined by issuer"
    assert data["payment_id"] is not None


def test_duplicate_reference(client: TestClient):
    _authorize(client, "dup")

    data = _authorize(client, "dup").json()

    assert data["success"] is False
    assert data["payment_id"] is None
    assert "Duplicate merchant reference" in data["message"]


def test_card_and_token_together_rejected(client: TestClient):
    data = _authorize(client, token_reference="tok-1").json()

    assert data["success"] is False
    assert data["payment_id"] is None


@pytest.mark.parametrize(
    "fields",
    [
        {"amount": "0"},
        {"amount": "-5"},
        {"currency": "DOLLARS"},
        {"card": {**CARD, "card_number": "4000-0012"}},
        {"card": {**CARD, "expiry_month": 13}},
    ],
)
def test_authorize_schema_validation(client: TestClient, fields):
    response = _authorize(client, **fields)
    assert response.status_code == 422


def test_merchant_header_required(client: TestClient):
    response = client.post(
        "/v1/payments/authorize",
        json={"merchant_reference": "x", "amount": "1", "currency": "USD", "card": CARD},
    )
    assert response.status_code == 422


def test_token_payment_flow(client: TestClient, processor):
    token = client.post("/v1/tokens", json={"card": CARD, "networks": ["PULSE", "VISA"]})
    assert token.status_code == 201
    reference = token.json()["token_reference"]

    response = _authorize(client, card=None, token_reference=reference)

    data = response.json()
    assert data["success"] is True
    assert data["used_token"] is True
    assert data["representation"] == "TOKEN"
    assert data["network"] == "PULSE"
    assert processor.calls[-1][1] == token.json()["token_value"]


def test_capture_and_refund_flow(client: TestClient, authorized_id: str):
    captured = client.post(f"/v1/payments/{authorized_id}/capture", headers=MERCHANT_HEADERS)
    assert captured.status_code == 200
    assert captured.json()["status"] == "CAPTURED"
    assert captured.json()["captured_amount"] == "100.00"

    partial = client.post(f"/v1/payments/{authorized_id}/refund", json={"amount": "40"}, headers=MERCHANT_HEADERS)
    assert partial.json()["status"] == "PARTIALLY_REFUNDED"

    rest = client.post(f"/v1/payments/{authorized_id}/refund", headers=MERCHANT_HEADERS)
    assert rest.json()["status"] == "REFUNDED"

    status = client.get(f"/v1/payments/{authorized_id}/status", headers=MERCHANT_HEADERS)
    assert status.json() == {"payment_id": authorized_id, "status": "REFUNDED"}


def test_partial_capture(client: TestClient, authorized_id: str):
    response = client.post(
        f"/v1/payments/{authorized_id}/capture", json={"amount": "25.50"}, headers=MERCHANT_HEADERS
    )
    assert response.json()["status"] == "PARTIALLY_CAPTURED"


def test_capture_over_authorized_is_422(client: TestClient, authorized_id: str):
    response = client.post(
        f"/v1/payments/{authorized_id}/capture", json={"amount": "500"}, headers=MERCHANT_HEADERS
    )
    assert response.status_code == 422


def test_refund_before_capture_is_409(client: TestClient, authorized_id: str):
    response = client.post(f"/v1/payments/{authorized_id}/refund", headers=MERCHANT_HEADERS)

    assert response.status_code == 409
    assert response.json()["detail"] == "Only captured payments can be refunded"


def test_modify_and_cancel(client: TestClient, authorized_id: str):
    modified = client.put(f"/v1/payments/{authorized_id}/modify", json={"amount": "80"}, headers=MERCHANT_HEADERS)
    assert modified.status_code == 200
    assert modified.json()["amount"] == "80"

    cancelled = client.post(f"/v1/payments/{authorized_id}/cancel", headers=MERCHANT_HEADERS)
    assert cancelled.json()["status"] == "CANCELLED"

    again = client.post(f"/v1/payments/{authorized_id}/cancel", headers=MERCHANT_HEADERS)
    assert again.status_code == 409


def test_processor_failure_is_502(client: TestClient, authorized_id: str, processor):
    processor.confirm = False

    response = client.post(f"/v1/payments/{authorized_id}/capture", headers=MERCHANT_HEADERS)

    assert response.status_code == 502
    status = client.get(f"/v1/payments/{authorized_id}/status", headers=MERCHANT_HEADERS)
    assert status.json()["status"] == "AUTHORIZED"


def test_get_payment(client: TestClient, authorized_id: str):
    response = client.get(f"/v1/payments/{authorized_id}", headers=MERCHANT_HEADERS)

    data = response.json()
    assert response.status_code == 200
    assert data["merchant_reference"] == "fixture-order"
    assert data["card_last_four"] == "7899"
    assert data["risk_band"] == "MEDIUM"


def test_other_merchant_cannot_see_payment(client: TestClient, authorized_id: str):
    other = {"X-Merchant-Id": "merchant-2"}

    assert client.get(f"/v1/payments/{authorized_id}", headers=other).status_code == 404
    assert client.post(f"/v1/payments/{authorized_id}/capture", headers=other).status_code == 404


def test_unknown_payment_is_404(client: TestClient):
    assert client.get("/v1/payments/PMT0/status", headers=MERCHANT_HEADERS).status_code == 404


def test_token_lifecycle(client: TestClient):
    created = client.post("/v1/tokens", json={"card": CARD, "network": "VISA"}).json()
    reference = created["token_reference"]
    assert created["status"] == "ACTIVE"
    assert created["last_four"] == "7899"
    assert "protected_pan" not in created

    suspended = client.patch(f"/v1/tokens/{reference}/status", json={"status": "SUSPENDED"})
    assert suspended.json()["status"] == "SUSPENDED"

    payment = _authorize(client, card=None, token_reference=reference).json()
    assert payment["success"] is False
    assert "not active" in payment["message"]

    reactivated = client.patch(f"/v1/tokens/{reference}/status", json={"status": "ACTIVE"})
    assert reactivated.json()["status"] == "ACTIVE"

    with_network = client.post(f"/v1/tokens/{reference}/networks", json={"network": "STAR"})
    assert with_network.json()["networks"] == ["VISA", "STAR"]

    refreshed = client.post(f"/v1/tokens/{reference}/refresh", json={"extra_months": 12})
    assert refreshed.json()["expires_at"] > created["expires_at"]

    assert client.get(f"/v1/tokens/{reference}").status_code == 200
    assert client.delete(f"/v1/tokens/{reference}").status_code == 204
    assert client.get(f"/v1/tokens/{reference}").status_code == 404
    assert client.delete(f"/v1/tokens/{reference}").status_code == 404


def test_invalid_token_status_transition_is_409(client: TestClient):
    reference = client.post("/v1/tokens", json={"card": CARD}).json()["token_reference"]
    client.patch(f"/v1/tokens/{reference}/status", json={"status": "EXPIRED"})

    response = client.patch(f"/v1/tokens/{reference}/status", json={"status": "ACTIVE"})
    assert response.status_code == 409


def test_bin_lookup_cobadged(client: TestClient):
    response = client.get("/v1/bins/453201")

    assert response.status_code == 200
    networks = [m["network"] for m in response.json()["matches"]]
    assert "ACCEL" in networks
    assert "VISA" in networks

    accel = next(m for m in response.json()["matches"] if m["network"] == "ACCEL")
    assert accel["network_name"] == "Accel"
    assert accel["debit"] is True


@pytest.mark.parametrize("prefix", ["900000", "12ab56", "123"])
def test_bin_lookup_not_found(client: TestClient, prefix):
    response = client.get(f"/v1/bins/{prefix}")
    assert response.status_code == 404
