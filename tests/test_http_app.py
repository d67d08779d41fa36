from __future__ import annotations

import logging
from unittest.mock import patch

import pytest
from starlette.testclient import TestClient

from console_core.transport.http_app import create_http_app


def _as(subject_id: str) -> dict[str, str]:
    return {
        "X-Authenticated-Subject": subject_id,
        "X-Authenticated-Email": f"{subject_id}@example.com",
    }


@pytest.fixture(autouse=True)
def _staff(seed_profile) -> None:
    seed_profile("su", "superuser")
    seed_profile("adm", "admin")
    seed_profile("op", "operator")


@pytest.fixture
def client(context) -> TestClient:
    return TestClient(create_http_app(context))


def test_health_needs_no_identity(client: TestClient) -> None:
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_missing_identity_is_401(client: TestClient) -> None:
    response = client.post("/api/users/list", json={})
    assert response.status_code == 401
    assert response.json()["error"] == "unauthenticated"


def test_malformed_subject_header_is_treated_as_anonymous(client: TestClient) -> None:
    response = client.post(
        "/api/users/list", json={}, headers={"X-Authenticated-Subject": "bad value!"}
    )
    assert response.status_code == 401


def test_permission_denied_is_403(client: TestClient) -> None:
    response = client.post("/api/users/list", json={}, headers=_as("op"))
    assert response.status_code == 403
    assert response.json()["error"] == "permission-denied"


def test_invalid_body_is_400(client: TestClient) -> None:
    response = client.post(
        "/api/users/provision", content=b"{not json", headers=_as("adm")
    )
    assert response.status_code == 400
    assert response.json()["error"] == "invalid-argument"

    response = client.post("/api/audit/entity", json={"entityType": "x"}, headers=_as("adm"))
    assert response.status_code == 400


def test_not_found_is_404(client: TestClient) -> None:
    response = client.post("/api/users/delete", json={"uid": "ghost"}, headers=_as("su"))
    assert response.status_code == 404
    assert response.json()["error"] == "not-found"


def test_unexpected_error_is_500(client: TestClient, context) -> None:
    with patch.object(context.users, "list_users", side_effect=RuntimeError("boom")):
        response = client.post("/api/users/list", json={}, headers=_as("adm"))
    assert response.status_code == 500
    assert response.json() == {"error": "internal", "message": "An unexpected error occurred."}


def test_user_lifecycle_and_audit_trail(client: TestClient) -> None:
    response = client.post(
        "/api/users/provision",
        json={"uid": "new1", "data": {"email": "new1@example.com"}},
        headers=_as("adm"),
    )
    assert response.status_code == 201
    assert response.json()["user"]["roles"] == ["operator"]

    response = client.post(
        "/api/users/update",
        json={"uid": "new1", "data": {"phone": "555"}},
        headers=_as("adm"),
    )
    assert response.status_code == 200

    response = client.post(
        "/api/users/self", json={"data": {"displayName": "Newt"}}, headers=_as("new1")
    )
    assert response.status_code == 200

    response = client.post(
        "/api/audit/entity",
        json={"entityType": "users", "entityId": "new1", "limit": 10},
        headers=_as("adm"),
    )
    logs = response.json()["logs"]
    assert [log["action"] for log in logs] == ["update", "update", "create"]
    assert logs[0]["actorId"] == "new1"

    response = client.post(
        "/api/audit/search", json={"actorId": "adm", "action": "create"}, headers=_as("adm")
    )
    assert len(response.json()["logs"]) == 1

    response = client.post("/api/users/delete", json={"uid": "new1"}, headers=_as("adm"))
    assert response.json() == {"success": True}


def test_records_endpoints(client: TestClient) -> None:
    response = client.post(
        "/api/records/clients/create", json={"data": {"name": "Acme"}}, headers=_as("op")
    )
    assert response.status_code == 201
    doc_id = response.json()["record"]["id"]

    response = client.post(
        "/api/records/clients/update",
        json={"id": doc_id, "data": {"name": "Acme AS"}},
        headers=_as("op"),
    )
    assert response.json()["record"]["name"] == "Acme AS"

    response = client.post("/api/records/clients/delete", json={"id": doc_id}, headers=_as("op"))
    assert response.status_code == 403

    response = client.post("/api/records/clients/delete", json={"id": doc_id}, headers=_as("adm"))
    assert response.status_code == 200

    response = client.post("/api/records/unknown/create", json={"data": {}}, headers=_as("su"))
    assert response.status_code == 404


def test_attachment_delete_endpoint(client: TestClient, context) -> None:
    context.blobs.put("clients/c1/a.txt", b"x")
    response = client.post(
        "/api/attachments/delete",
        json={"id": "missing", "storagePath": "clients/c1/a.txt"},
        headers=_as("adm"),
    )
    body = response.json()
    assert response.status_code == 200
    assert body["recordDeleted"] is False
    assert body["cleanup"] == {"succeeded": True, "error": None}


def test_manual_log_and_purge(client: TestClient) -> None:
    response = client.post(
        "/api/audit/log",
        json={"entityType": "client", "entityId": "c1", "action": "read"},
        headers=_as("op"),
    )
    assert response.status_code == 201

    response = client.post("/api/audit/purge", json={"daysToKeep": 0}, headers=_as("adm"))
    assert response.status_code == 403

    response = client.post("/api/audit/purge", json={"daysToKeep": 0}, headers=_as("su"))
    assert response.json() == {"success": True, "deletedCount": 1}


def test_permissions_endpoint(client: TestClient) -> None:
    response = client.get("/api/permissions", params={"route": "/users"}, headers=_as("op"))
    body = response.json()
    assert body["roles"] == ["operator"]
    assert body["permissions"]["can_create_clients"] is True
    assert body["canAccess"] is False

    response = client.get("/api/permissions", headers=_as("stranger"))
    assert response.json() == {"roles": [], "permissions": {}}


def test_request_log_lines(client: TestClient, caplog) -> None:
    with caplog.at_level(logging.INFO, logger="console_core.middleware.request_log"):
        client.post("/api/users/list", params={"token": "hunter2"}, json={}, headers=_as("adm"))

    messages = [record.getMessage() for record in caplog.records]
    start = next(m for m in messages if m.startswith("REQUEST_START"))
    end = next(m for m in messages if m.startswith("REQUEST_END"))
    assert "hunter2" not in start
    assert "***MASKED***" in start
    assert "user_id=adm" in end
    assert "status=200" in end


def test_initialize_with_existing_users_is_409(client: TestClient) -> None:
    response = client.post("/api/users/initialize", json={}, headers=_as("newcomer"))
    assert response.status_code == 409
    assert response.json()["error"] == "failed-precondition"


def test_initialize_on_empty_deployment(context, store) -> None:
    for subject_id in ("su", "adm", "op"):
        store.delete("users", subject_id)
    client = TestClient(create_http_app(context))

    response = client.post(
        "/api/users/initialize", json={"data": {"firstName": "Ada"}}, headers=_as("founder")
    )

    assert response.status_code == 201
    assert response.json()["user"]["roles"] == ["superuser"]
    response = client.post("/api/users/list", json={}, headers=_as("founder"))
    assert [user["id"] for user in response.json()["users"]] == ["founder"]


def test_attachment_upload_update_and_history(client: TestClient, context) -> None:
    response = client.post(
        "/api/attachments/upload",
        json={
            "entityCollection": "clients",
            "entityId": "c1",
            "fileName": "offer.pdf",
            "contentType": "application/pdf",
            "content": "JVBERg==",
        },
        headers=_as("op"),
    )
    assert response.status_code == 201
    attachment = response.json()["attachment"]
    assert attachment["size"] == 4
    assert context.blobs.exists(attachment["storagePath"])

    response = client.post(
        "/api/attachments/update",
        json={"id": attachment["id"], "data": {"fileName": "offer-signed.pdf"}},
        headers=_as("op"),
    )
    assert response.status_code == 403

    response = client.post(
        "/api/attachments/update",
        json={"id": attachment["id"], "data": {"fileName": "offer-signed.pdf"}},
        headers=_as("adm"),
    )
    assert response.status_code == 200
    assert response.json()["attachment"]["fileName"] == "offer-signed.pdf"

    response = client.post(
        "/api/audit/entity",
        json={"entityType": "clients", "entityId": "c1"},
        headers=_as("adm"),
    )
    assert sorted(log["action"] for log in response.json()["logs"]) == ["create", "update"]


def test_attachment_upload_rejects_bad_content(client: TestClient) -> None:
    response = client.post(
        "/api/attachments/upload",
        json={
            "entityCollection": "clients",
            "entityId": "c1",
            "fileName": "a.bin",
            "content": "abc",
        },
        headers=_as("op"),
    )
    assert response.status_code == 400
