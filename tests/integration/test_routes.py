"""HTTP surface: auth, error envelope and the happy path through the routers."""

import pytest
from httpx import ASGITransport, AsyncClient

from expense_api.database import get_db
from expense_api.main import app
from expense_api.middleware.lifecycle import get_lifecycle_service
from expense_api.services.auth_service import create_access_token
from expense_api.services.lifecycle_service import LifecycleService


@pytest.fixture
async def client(session, blob_store):
    async def _db():
        yield session
        await session.commit()

    app.dependency_overrides[get_db] = _db
    app.dependency_overrides[get_lifecycle_service] = lambda: LifecycleService(
        session, blob_store=blob_store
    )
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


def _auth(user_id: str, role: str) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user_id=user_id, role=role)}"}


USER = _auth("user-1", "user")
OTHER = _auth("user-2", "user")
APPROVER = _auth("approver-1", "approver")
ADMIN = _auth("admin-1", "admin")


async def _create_po(client) -> str:
    resp = await client.post(
        "/api/v1/requests",
        json={"kind": "purchase_order", "title": "Microfone e estabilizador"},
        headers=USER,
    )
    assert resp.status_code == 201
    return resp.json()["id"]


@pytest.mark.asyncio
async def test_missing_token_is_rejected(client):
    resp = await client.get("/api/v1/requests")
    assert resp.status_code in (401, 403)
    assert "error" in resp.json()


@pytest.mark.asyncio
async def test_unknown_role_is_rejected(client):
    resp = await client.get("/api/v1/requests", headers=_auth("x", "superuser"))
    assert resp.status_code == 401
    assert resp.json()["error"]["code"] == "AUTH_TOKEN_INVALID"


@pytest.mark.asyncio
async def test_purchase_order_flow(client, blob_store):
    pr_id = await _create_po(client)

    resp = await client.post(
        f"/api/v1/requests/{pr_id}/items",
        json={"name": "Microfone", "quantity": 2, "unit_price_cents": 1000},
        headers=USER,
    )
    assert resp.status_code == 201
    body = resp.json()
    assert body["total_cents"] == 2000
    assert body["items"][0]["total_price_cents"] == 2000

    resp = await client.post(
        f"/api/v1/requests/{pr_id}/receipts",
        files={"file": ("nota.pdf", b"%PDF-1.7 test", "application/pdf")},
        headers=USER,
    )
    assert resp.status_code == 201
    receipt = resp.json()
    assert "storage_path" not in receipt

    resp = await client.get(f"/api/v1/receipts/{receipt['id']}/url", headers=APPROVER)
    assert resp.status_code == 200
    assert resp.json()["url"].startswith("https://blobs.test/receipts/")
    assert resp.json()["expires_at"]

    resp = await client.post(f"/api/v1/requests/{pr_id}/approve", headers=APPROVER)
    assert resp.status_code == 200
    assert resp.json()["status"] == "approved"
    assert resp.json()["approved_by"] == "approver-1"

    resp = await client.post(
        f"/api/v1/requests/{pr_id}/payment", json={"paid": True}, headers=ADMIN
    )
    assert resp.status_code == 200
    assert resp.json()["is_paid"] is True

    resp = await client.get(f"/api/v1/requests/{pr_id}", headers=USER)
    assert resp.status_code == 200
    assert len(resp.json()["receipts"]) == 1


@pytest.mark.asyncio
async def test_typed_errors_map_to_envelope(client):
    pr_id = await _create_po(client)

    resp = await client.post(f"/api/v1/requests/{pr_id}/approve", headers=USER)
    assert resp.status_code == 403
    assert resp.json()["error"]["code"] == "INSUFFICIENT_PERMISSIONS"

    resp = await client.post(
        f"/api/v1/requests/{pr_id}/reject", json={"reason": ""}, headers=APPROVER
    )
    assert resp.status_code == 409
    assert resp.json()["error"]["code"] == "REJECTION_REASON_REQUIRED"

    resp = await client.post(
        f"/api/v1/requests/{pr_id}/payment", json={"paid": True}, headers=APPROVER
    )
    assert resp.status_code == 409
    assert resp.json()["error"]["code"] == "INVALID_TRANSITION"

    resp = await client.get(f"/api/v1/requests/{pr_id}", headers=OTHER)
    assert resp.status_code == 403

    resp = await client.get(
        "/api/v1/requests/7d0c7cb1-4f5a-4a55-9d2e-3f55d7a7c0a1", headers=ADMIN
    )
    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "NOT_FOUND"


@pytest.mark.asyncio
async def test_schema_validation_envelope(client):
    pr_id = await _create_po(client)
    resp = await client.post(
        f"/api/v1/requests/{pr_id}/items",
        json={"name": "Café", "quantity": 0, "unit_price_cents": 500},
        headers=USER,
    )
    assert resp.status_code == 422
    assert resp.json()["error"]["code"] == "VALIDATION_ERROR"


@pytest.mark.asyncio
async def test_list_and_delete(client, blob_store):
    pr_id = await _create_po(client)
    await client.post(
        f"/api/v1/requests/{pr_id}/receipts",
        files={"file": ("recibo.png", b"\x89PNG....", "image/png")},
        headers=USER,
    )

    resp = await client.get("/api/v1/requests", params={"status": "pending"}, headers=USER)
    assert resp.status_code == 200
    assert resp.json()["pagination"]["total"] == 1

    resp = await client.get("/api/v1/requests", headers=OTHER)
    assert resp.json()["pagination"]["total"] == 0

    resp = await client.delete(f"/api/v1/requests/{pr_id}", headers=ADMIN)
    assert resp.status_code == 204
    blob_store.delete.assert_called_once()

    resp = await client.get(f"/api/v1/requests/{pr_id}", headers=ADMIN)
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_reference_data_routes(client, category, cost_center):
    resp = await client.get("/api/v1/categories", headers=USER)
    assert resp.status_code == 200
    assert resp.json() == [{"id": str(category.id), "name": "Viagens"}]

    resp = await client.get("/api/v1/cost-centers", headers=USER)
    assert resp.json()[0]["code"] == "INST"


@pytest.mark.asyncio
async def test_request_id_is_echoed(client):
    resp = await client.get(
        "/api/v1/categories", headers={**USER, "X-Request-ID": "req-123"}
    )
    assert resp.headers["X-Request-ID"] == "req-123"
