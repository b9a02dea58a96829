"""
Integration tests for the booking HTTP API.

Verifies bearer authentication, the error envelope and status mapping,
and the create -> confirm -> complete flow over HTTP.
"""

import pytest
from datetime import timedelta
from decimal import Decimal
from booking_backend.app.core.jwt import create_access_token


@pytest.fixture
def booking_payload(scheduled):
    return {
        "agent_id": "agent-1",
        "service_id": "svc-1",
        "scheduled_date": scheduled.isoformat(),
        "amount": "150.00",
        "notes": "Ring the bell",
    }


@pytest.fixture
async def created(client, auth, customer, booking_payload):
    response = await client.post("/v1/bookings", json=booking_payload, headers=auth(customer))
    assert response.status_code == 201
    return response.json()


async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert "X-Correlation-ID" in response.headers


async def test_missing_token(client, booking_payload):
    response = await client.post("/v1/bookings", json=booking_payload)
    assert response.status_code == 401
    assert response.json()["error_code"] == "ERR_AUTH_001"


async def test_invalid_tokens(client):
    expired = create_access_token({"sub": "user-1", "role": "USER"}, expires_delta=timedelta(minutes=-5))
    unknown_role = create_access_token({"sub": "user-1", "role": "DRIVER"})
    no_subject = create_access_token({"role": "USER"})

    for token in ("not-a-jwt", expired, unknown_role, no_subject):
        response = await client.get("/v1/bookings", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401, token
        assert response.json()["error_code"] == "ERR_AUTH_001"


async def test_create_defaults_customer_to_caller(created):
    assert created["user_id"] == "user-1"
    assert created["status"] == "PENDING"
    assert created["payment_status"] == "PENDING"
    assert created["version"] == 1
    assert Decimal(created["amount"]) == Decimal("150.00")
    assert len(created["status_history"]) == 1


async def test_create_rejects_negative_amount(client, auth, customer, booking_payload):
    booking_payload["amount"] = "-1"
    response = await client.post("/v1/bookings", json=booking_payload, headers=auth(customer))

    assert response.status_code == 422
    assert response.json()["error_code"] == "ERR_VALIDATION_001"


async def test_lifecycle_over_http(client, auth, created, agent, customer):
    url = f"/v1/bookings/{created['id']}/transitions"

    response = await client.post(url, json={"status": "CONFIRMED"}, headers=auth(agent))
    assert response.status_code == 200
    assert response.json()["status"] == "CONFIRMED"

    response = await client.post(url, json={"status": "COMPLETED"}, headers=auth(agent))
    assert response.status_code == 200
    body = response.json()
    assert body["version"] == 3
    assert [h["status"] for h in body["status_history"]] == ["PENDING", "CONFIRMED", "COMPLETED"]

    response = await client.post(f"/v1/bookings/{created['id']}/cancel", headers=auth(customer))
    assert response.status_code == 409
    assert response.json()["error_code"] == "ERR_TRANSITION_001"


async def test_customer_cannot_confirm(client, auth, created, customer):
    response = await client.post(
        f"/v1/bookings/{created['id']}/transitions",
        json={"status": "CONFIRMED"},
        headers=auth(customer)
    )
    assert response.status_code == 403
    assert response.json()["error_code"] == "ERR_PERM_001"


async def test_unknown_status_literal(client, auth, created, agent):
    response = await client.post(
        f"/v1/bookings/{created['id']}/transitions",
        json={"status": "SHIPPED"},
        headers=auth(agent)
    )
    assert response.status_code == 422
    assert response.json()["error_code"] == "ERR_VALIDATION_001"


async def test_get_missing_booking(client, auth, admin):
    response = await client.get("/v1/bookings/nope", headers=auth(admin))
    assert response.status_code == 404
    assert response.json()["error_code"] == "ERR_NOT_FOUND_001"


async def test_other_customer_cannot_read(client, auth, created, other_customer):
    response = await client.get(f"/v1/bookings/{created['id']}", headers=auth(other_customer))
    assert response.status_code == 403


async def test_list_is_narrowed(client, auth, created, customer, other_customer, admin):
    response = await client.get("/v1/bookings", headers=auth(customer))
    assert response.status_code == 200
    assert response.json()["total"] == 1

    response = await client.get("/v1/bookings", params={"user_id": "user-1"}, headers=auth(other_customer))
    assert response.json()["total"] == 0

    response = await client.get("/v1/bookings", params={"status": "pending"}, headers=auth(admin))
    body = response.json()
    assert body["total"] == 1
    assert body["page_size"] == 20


async def test_patch_details(client, auth, created, customer, agent):
    url = f"/v1/bookings/{created['id']}"

    response = await client.patch(url, json={"notes": "Gate code 42"}, headers=auth(customer))
    assert response.status_code == 200
    assert response.json()["notes"] == "Gate code 42"

    response = await client.patch(url, json={"amount": "99.00"}, headers=auth(customer))
    assert response.status_code == 403

    response = await client.patch(url, json={"amount": "99.00", "agent_notes": "discount"}, headers=auth(agent))
    assert response.status_code == 200
    body = response.json()
    assert Decimal(body["amount"]) == Decimal("99.00")
    assert body["agent_notes"] == "discount"
    assert body["notes"] == "Gate code 42"

    response = await client.patch(url, json={}, headers=auth(agent))
    assert response.status_code == 422


async def test_payment_endpoint(client, auth, created, agent):
    url = f"/v1/bookings/{created['id']}/payment"

    response = await client.post(url, json={"payment_status": "PAID"}, headers=auth(agent))
    assert response.status_code == 200
    assert response.json()["payment_status"] == "PAID"

    response = await client.post(url, json={"payment_status": "PAID"}, headers=auth(agent))
    assert response.status_code == 409
    assert response.json()["details"]["field"] == "payment_status"


async def test_summary(client, auth, created, agent):
    response = await client.get("/v1/bookings/summary", headers=auth(agent))
    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 1
    assert body["by_status"]["PENDING"] == 1


async def test_audit_logs_admin_only(client, auth, created, customer, admin):
    response = await client.get("/v1/audit-logs", headers=auth(customer))
    assert response.status_code == 403

    response = await client.get(
        "/v1/audit-logs",
        params={"entity_id": created["id"]},
        headers={**auth(admin), "User-Agent": "ops-console"}
    )
    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 1
    entry = body["logs"][0]
    assert entry["action"] == "BOOKING_CREATED"
    assert entry["actor_id"] == "user-1"


async def test_audit_logs_bad_sort_key(client, auth, admin):
    response = await client.get("/v1/audit-logs", params={"sort_by": "details"}, headers=auth(admin))
    assert response.status_code == 422
    assert response.json()["error_code"] == "ERR_VALIDATION_001"
