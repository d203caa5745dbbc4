from __future__ import annotations

from cryptography.hazmat.primitives import serialization
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy.orm import Session

from assemblyvote.core.config import get_settings
from assemblyvote.db.session import serializable_transaction
from assemblyvote.services.identities import IdentityDirectory


def _public_key() -> str:
    settings = get_settings()
    private_key = serialization.load_pem_private_key(settings.jwt_private_key.encode("utf-8"), password=None)
    return private_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode("utf-8")


def _provision_login(db_session: Session, document: str) -> None:
    with serializable_transaction(db_session):
        IdentityDirectory(db_session).ensure_identity(document)


def test_login_with_document_returns_signed_tokens(client: TestClient, db_session: Session, community) -> None:
    _provision_login(db_session, community.alice.document_id)

    response = client.post("/api/auth/login", json={"document": "1.001", "password": "1001"})

    assert response.status_code == 200
    body = response.json()
    access = jwt.decode(body["access_token"], _public_key(), algorithms=[get_settings().jwt_algorithm])
    refresh = jwt.decode(body["refresh_token"], _public_key(), algorithms=[get_settings().jwt_algorithm])
    assert access["sub"] == community.alice.id
    assert access["role"] == "USER"
    assert access["type"] == "access"
    assert refresh["type"] == "refresh"


def test_login_with_synthetic_handle(client: TestClient, db_session: Session, community) -> None:
    _provision_login(db_session, community.admin.document_id)

    response = client.post("/api/auth/login", json={"document": "9001@assemblyvote.local", "password": "9001"})

    assert response.status_code == 200


def test_login_rejects_bad_credentials(client: TestClient, db_session: Session, community) -> None:
    _provision_login(db_session, community.alice.document_id)

    response = client.post("/api/auth/login", json={"document": "1001", "password": "wrong"})

    assert response.status_code == 401
    assert response.json() == {"success": False, "code": "UNAUTHORIZED", "message": "Invalid credentials"}


def test_refresh_rotates_and_blacklists_tokens(client: TestClient, db_session: Session, community) -> None:
    _provision_login(db_session, community.bob.document_id)
    refresh_token = client.post("/api/auth/login", json={"document": "1002", "password": "1002"}).json()[
        "refresh_token"
    ]

    first = client.post("/api/auth/refresh", json={"refresh_token": refresh_token})
    assert first.status_code == 200

    # The rotated-out token cannot be used again.
    second = client.post("/api/auth/refresh", json={"refresh_token": refresh_token})
    assert second.status_code == 401

    third = client.post("/api/auth/refresh", json={"refresh_token": first.json()["refresh_token"]})
    assert third.status_code == 200


def test_access_token_cannot_refresh(client: TestClient, community, auth_headers) -> None:
    access_token = auth_headers(community.alice)["Authorization"].removeprefix("Bearer ")

    response = client.post("/api/auth/refresh", json={"refresh_token": access_token})

    assert response.status_code == 400
    assert response.json()["code"] == "BAD_REQUEST"


def test_protected_routes_require_a_token(client: TestClient, community) -> None:
    response = client.get("/api/delegations/power")

    assert response.status_code in (401, 403)
    assert response.json()["success"] is False
