from __future__ import annotations

from fastapi.testclient import TestClient


def test_attendance_reports(client: TestClient, community, auth_headers) -> None:
    operator = auth_headers(community.operator)
    client.post(f"/api/attendance/{community.units['101'].id}/toggle", headers=operator)

    present = client.get(f"/api/assemblies/{community.assembly.id}/reports/attendance", headers=operator)
    absent = client.get(f"/api/assemblies/{community.assembly.id}/reports/absence", headers=operator)

    assert present.status_code == 200
    assert [(row["unit"], row["representative"]) for row in present.json()["rows"]] == [("101", "Alice")]
    assert present.json()["total_coefficient"] == "0.30000000"
    assert [row["unit"] for row in absent.json()["rows"]] == ["102", "103", "201"]


def test_reports_are_staff_only(client: TestClient, community, auth_headers) -> None:
    response = client.get(
        f"/api/assemblies/{community.assembly.id}/reports/proxies", headers=auth_headers(community.alice)
    )

    assert response.status_code == 403
    assert response.json() == {
        "success": False,
        "code": "FORBIDDEN",
        "message": response.json()["message"],
    }


def test_proxies_and_votes_reports(client: TestClient, community, auth_headers) -> None:
    admin = auth_headers(community.admin)
    client.post(
        "/api/delegations/manual",
        json={"representative": "1003", "type": "PDF", "document_ref": "s3://test-proxies/bob.pdf"},
        headers=auth_headers(community.bob),
    )
    client.post(
        "/api/votes",
        json={"assembly_id": community.assembly.id, "title": "Budget", "options": ["Yes", "No"]},
        headers=admin,
    )

    proxies = client.get(f"/api/assemblies/{community.assembly.id}/reports/proxies", headers=admin).json()
    votes = client.get(f"/api/assemblies/{community.assembly.id}/reports/votes", headers=admin).json()

    assert [(row["principal"], row["representative"]) for row in proxies["rows"]] == [("Bob", "Carol")]
    assert proxies["rows"][0]["principal_units"] == ["102", "103"]
    assert [(entry["title"], entry["total_ballots"]) for entry in votes["votes"]] == [("Budget", 0)]


def test_custom_welcome_template_is_used(client: TestClient, community, auth_headers, gateway) -> None:
    admin = auth_headers(community.admin)

    saved = client.put(
        f"/api/assemblies/{community.assembly.id}/templates/WELCOME/SMS",
        json={"body": "Bienvenido {{name}} a {{assembly_name}}"},
        headers=admin,
    )
    assert saved.status_code == 200
    assert saved.json()["type"] == "WELCOME"
    assert saved.json()["channel"] == "SMS"

    sent = client.post(f"/api/assemblies/{community.assembly.id}/notifications/welcome", headers=admin)

    assert sent.status_code == 200
    assert sent.json()["recipients"] == 3
    assert sent.json()["emails_sent"] == 2
    assert sent.json()["sms_sent"] == 2
    assert {"to": "3001112233", "body": "Bienvenido Alice a Torres del Parque"} in gateway.sms


def test_template_body_is_required(client: TestClient, community, auth_headers) -> None:
    response = client.put(
        f"/api/assemblies/{community.assembly.id}/templates/OTP_SIGN/EMAIL",
        json={"subject": "Codigo", "body": ""},
        headers=auth_headers(community.admin),
    )

    assert response.status_code == 422
    assert response.json()["code"] == "VALIDATION_ERROR"
