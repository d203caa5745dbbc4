from __future__ import annotations

from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from assemblyvote.models import Unit


def test_digital_delegation_round_trip(
    client: TestClient, db_session: Session, community, auth_headers, gateway
) -> None:
    headers = auth_headers(community.alice)

    requested = client.post(
        "/api/delegations/digital",
        json={"representative": "1002"},
        headers={**headers, "User-Agent": "assembly-tests"},
    )
    assert requested.status_code == 201
    body = requested.json()
    assert body["success"] is True
    assert body["channels"] == ["email", "sms"]

    wrong = client.post(
        f"/api/delegations/digital/{body['signature_id']}/verify",
        json={"code": "0000000"},
        headers=headers,
    )
    assert wrong.status_code == 422
    assert wrong.json()["code"] == "INVALID_CODE"

    verified = client.post(
        f"/api/delegations/digital/{body['signature_id']}/verify",
        json={"code": gateway.last_code()},
        headers=headers,
    )
    assert verified.status_code == 200
    result = verified.json()
    assert result["status"] == "APPROVED"
    assert result["representative_id"] == community.bob.id
    assert result["units_transferred"] == 1

    db_session.expire_all()
    assert db_session.get(Unit, community.units["101"].id).current_representative_id == community.bob.id

    power = client.get("/api/delegations/power", headers=auth_headers(community.bob)).json()
    assert power["total_weight"] == "0.70000000"
    assert power["represented_weight"] == "0.30000000"
    assert {unit["number"] for unit in power["units"]} == {"101", "102", "103"}

    again = client.post(
        f"/api/delegations/digital/{body['signature_id']}/verify",
        json={"code": gateway.last_code()},
        headers=headers,
    )
    assert again.status_code == 409
    assert again.json()["code"] == "ALREADY_PROCESSED"


def test_self_delegation_is_rejected(client: TestClient, community, auth_headers) -> None:
    response = client.post(
        "/api/delegations/digital",
        json={"representative": community.alice.document_id},
        headers=auth_headers(community.alice),
    )

    assert response.status_code == 422
    assert response.json()["success"] is False
    assert response.json()["code"] == "VALIDATION_ERROR"


def test_failed_dispatch_reports_dependency_error(client: TestClient, community, auth_headers, gateway) -> None:
    gateway.fail_email = True
    gateway.fail_sms = True

    response = client.post(
        "/api/delegations/digital", json={"representative": "1002"}, headers=auth_headers(community.alice)
    )

    assert response.status_code == 502
    assert response.json()["code"] == "EXTERNAL_DEPENDENCY_FAILED"


def test_manual_delegation_document_and_revoke(
    client: TestClient, community, auth_headers, document_store
) -> None:
    bob = auth_headers(community.bob)

    granted = client.post(
        "/api/delegations/manual",
        json={"representative": "1003", "type": "PDF", "document_ref": "s3://test-proxies/manual/bob.pdf"},
        headers=bob,
    )
    assert granted.status_code == 201
    proxy_id = granted.json()["proxy_id"]
    assert granted.json()["units_transferred"] == 2

    uploaded = client.post(
        f"/api/delegations/{proxy_id}/document",
        content=b"%PDF-1.7 signed",
        headers={**bob, "Content-Type": "application/pdf", "X-Upload-Filename": "poder.pdf"},
    )
    assert uploaded.status_code == 200
    url = uploaded.json()["document_url"]
    assert document_store.objects[url] == b"%PDF-1.7 signed"

    mine = client.get("/api/delegations/mine", headers=bob).json()
    assert [(item["id"], item["status"], item["document_url"]) for item in mine] == [(proxy_id, "APPROVED", url)]

    forbidden = client.post(f"/api/delegations/{proxy_id}/revoke", headers=auth_headers(community.alice))
    assert forbidden.status_code == 403

    revoked = client.post(f"/api/delegations/{proxy_id}/revoke", headers=bob)
    assert revoked.status_code == 200
    assert revoked.json()["status"] == "REVOKED"
    assert revoked.json()["units_transferred"] == 2
    assert url in document_store.deleted


def test_operator_registers_delegation_for_owner(client: TestClient, community, auth_headers) -> None:
    response = client.post(
        "/api/delegations/manual",
        json={
            "representative": "5555",
            "type": "OPERATOR",
            "principal_document": "1003",
            "external_name": "Dana Delegate",
        },
        headers=auth_headers(community.operator),
    )

    assert response.status_code == 201
    assert response.json()["units_transferred"] == 1

    rejected = client.post(
        "/api/delegations/manual",
        json={"representative": "1003", "type": "DIGITAL"},
        headers=auth_headers(community.operator),
    )
    assert rejected.status_code == 422
    assert rejected.json()["code"] == "VALIDATION_ERROR"
