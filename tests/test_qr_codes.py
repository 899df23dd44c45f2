# tests/test_qr_codes.py

"""
Tests for visitor QR codes, gate validation and the access log.
"""

from unittest.mock import patch

from fastapi.testclient import TestClient
from postgrest.exceptions import APIError

from routers.qr_codes import effective_status
from tests.conftest import ADMIN, GUARD, RESIDENT, RESIDENT_2
from tests.fakes import now_iso


VISITOR = {"visitor_name": "  María López ", "visitor_id": "V-12345678", "entry_type": "entry"}


def test_resident_creates_code(client: TestClient, login, fake_db, org_id):
    login(RESIDENT)

    response = client.post("/qr-codes", json={"organization_id": org_id, "notes": "Plomero"})
    assert response.status_code == 201
    body = response.json()
    assert body["message"] == "Enlace generado exitosamente."

    qr = body["data"]
    assert qr["status"] == "active"
    assert qr["is_used"] is False
    assert qr["created_by"] == RESIDENT.id
    assert len(qr["identifier"].split(" ")) == 2
    assert fake_db.rows("qr_codes", id=qr["id"])


def test_guard_cannot_create_code(client: TestClient, login, org_id):
    login(GUARD)

    response = client.post("/qr-codes", json={"organization_id": org_id})
    assert response.status_code == 403


def test_validation_is_single_use(client: TestClient, login, fake_db, org_id):
    qr = fake_db.add_qr_code(org_id, RESIDENT.id)
    login(GUARD)

    first = client.post(f"/qr-codes/validate/{qr['token']}", json=VISITOR)
    assert first.status_code == 200
    data = first.json()["data"]
    assert data["qr_code"]["status"] == "used"
    assert data["qr_code"]["visitor_name"] == "María López"
    assert data["access_log"]["scanned_by"] == GUARD.id

    second = client.post(f"/qr-codes/validate/{qr['token']}", json=VISITOR)
    assert second.status_code == 409
    assert second.json()["message"] == "Este código ya ha sido utilizado."

    assert len(fake_db.rows("access_logs", qr_code_id=qr["id"])) == 1


def test_losing_validation_race_writes_no_log(client: TestClient, login, fake_db, org_id):
    """Another gate marked the code used between our read and our update."""
    qr = fake_db.add_qr_code(org_id, RESIDENT.id)
    login(GUARD)

    def stale_read(row):
        fake_db.rows("qr_codes", id=row["id"])[0]["is_used"] = True

    with patch("routers.qr_codes.ensure_validatable", side_effect=stale_read):
        response = client.post(f"/qr-codes/validate/{qr['token']}", json=VISITOR)

    assert response.status_code == 409
    assert fake_db.rows("access_logs") == []


def test_failed_access_log_releases_code(client: TestClient, login, fake_db, org_id):
    qr = fake_db.add_qr_code(org_id, RESIDENT.id)
    login(GUARD)
    insert_row = fake_db.insert_row

    def reject_access_logs(table, row):
        if table == "access_logs":
            raise APIError({"code": "XX000", "message": "disk full", "details": None, "hint": None})
        return insert_row(table, row)

    with patch.object(fake_db, "insert_row", side_effect=reject_access_logs):
        response = client.post(f"/qr-codes/validate/{qr['token']}", json=VISITOR)

    assert response.status_code == 500
    stored = fake_db.rows("qr_codes", id=qr["id"])[0]
    assert stored["is_used"] is False
    assert stored["status"] == "active"
    assert stored["validated_by"] is None

    retry = client.post(f"/qr-codes/validate/{qr['token']}", json=VISITOR)
    assert retry.status_code == 200
    assert len(fake_db.rows("access_logs", qr_code_id=qr["id"])) == 1


def test_expired_and_revoked_codes_are_gone(client: TestClient, login, fake_db, org_id):
    expired = fake_db.add_qr_code(org_id, RESIDENT.id, expires_at=now_iso(hours=-1))
    revoked = fake_db.add_qr_code(org_id, RESIDENT.id, status="revoked")
    login(GUARD)

    response = client.post(f"/qr-codes/validate/{expired['token']}", json=VISITOR)
    assert response.status_code == 410
    assert response.json()["message"] == "Este código ha expirado."

    response = client.post(f"/qr-codes/validate/{revoked['token']}", json=VISITOR)
    assert response.status_code == 410


def test_validation_requires_visitor_document(client: TestClient, login, fake_db, org_id):
    qr = fake_db.add_qr_code(org_id, RESIDENT.id)
    login(GUARD)

    response = client.post(f"/qr-codes/validate/{qr['token']}", json={"visitor_name": "Ana"})
    assert response.status_code == 400

    response = client.post(f"/qr-codes/validate/{qr['token']}", json={"visitor_id": "123"})
    assert response.status_code == 400


def test_resident_cannot_validate(client: TestClient, login, fake_db, org_id):
    qr = fake_db.add_qr_code(org_id, RESIDENT.id)
    login(RESIDENT_2)

    response = client.post(f"/qr-codes/validate/{qr['token']}", json=VISITOR)
    assert response.status_code == 403
    assert fake_db.rows("qr_codes", id=qr["id"])[0]["is_used"] is False


def test_unknown_token(client: TestClient, login, org_id):
    login(GUARD)

    assert client.get("/qr-codes/validate/does-not-exist").status_code == 404


def test_preview_code(client: TestClient, login, fake_db, org_id):
    qr = fake_db.add_qr_code(org_id, RESIDENT.id)
    login(GUARD)

    response = client.get(f"/qr-codes/validate/{qr['token']}")
    assert response.status_code == 200
    assert response.json()["data"]["status"] == "active"


def test_security_lists_pending_codes(client: TestClient, login, fake_db, org_id):
    fake_db.add_qr_code(org_id, RESIDENT.id)
    fake_db.add_qr_code(org_id, RESIDENT.id, is_used=True, status="used")
    fake_db.add_qr_code(org_id, RESIDENT.id, expires_at=now_iso(hours=-2))
    login(GUARD)

    response = client.get("/qr-codes", params={"role": "security", "organization_id": org_id})
    assert response.status_code == 200
    codes = response.json()["data"]
    assert len(codes) == 1
    assert codes[0]["created_by_name"] == RESIDENT.full_name

    login(RESIDENT)
    response = client.get("/qr-codes", params={"role": "security", "organization_id": org_id})
    assert response.status_code == 403


def test_own_codes_report_derived_expiry(client: TestClient, login, fake_db, org_id):
    fake_db.add_qr_code(org_id, RESIDENT.id, expires_at=now_iso(hours=-2))
    fake_db.add_qr_code(org_id, RESIDENT_2.id)
    login(RESIDENT)

    response = client.get("/qr-codes")
    codes = response.json()["data"]
    assert [c["status"] for c in codes] == ["expired"]


def test_revoke_and_delete(client: TestClient, login, fake_db, org_id):
    qr = fake_db.add_qr_code(org_id, RESIDENT.id)

    login(RESIDENT_2)
    assert client.put(f"/qr-codes/{qr['id']}", json={"status": "revoked"}).status_code == 404

    login(RESIDENT)
    response = client.put(f"/qr-codes/{qr['id']}", json={"status": "revoked"})
    assert response.status_code == 200
    assert response.json()["data"]["status"] == "revoked"

    assert client.put(f"/qr-codes/{qr['id']}", json={"status": "active"}).status_code == 400
    assert client.delete(f"/qr-codes/{qr['id']}").status_code == 200
    assert fake_db.rows("qr_codes", id=qr["id"]) == []


def test_used_code_is_immutable(client: TestClient, login, fake_db, org_id):
    qr = fake_db.add_qr_code(org_id, RESIDENT.id, is_used=True, status="used")
    login(RESIDENT)

    assert client.put(f"/qr-codes/{qr['id']}", json={"notes": "x"}).status_code == 409
    assert client.delete(f"/qr-codes/{qr['id']}").status_code == 409


def test_effective_status():
    assert effective_status({"status": "active", "is_used": True}) == "used"
    assert effective_status({"status": "revoked", "expires_at": now_iso(hours=-1)}) == "revoked"
    assert effective_status({"status": "active", "expires_at": now_iso(hours=-1)}) == "expired"
    assert effective_status({"status": "active", "expires_at": now_iso(hours=1)}) == "active"


# -----------------------------------------------------
# Access log
# -----------------------------------------------------
def test_access_log_history(client: TestClient, login, fake_db, org_id):
    qr = fake_db.add_qr_code(org_id, RESIDENT.id)
    login(GUARD)
    client.post(f"/qr-codes/validate/{qr['token']}", json=VISITOR)

    response = client.get("/access-logs", params={"organization_id": org_id})
    assert response.status_code == 200
    body = response.json()["data"]
    assert body["total"] == 1
    log = body["logs"][0]
    assert log["visitor_name"] == "María López"
    assert log["scanned_by_name"] == GUARD.full_name

    login(ADMIN)
    response = client.get("/access-logs", params={"organization_id": org_id, "entry_type": "exit"})
    assert response.json()["data"]["total"] == 0

    login(RESIDENT)
    assert client.get("/access-logs", params={"organization_id": org_id}).status_code == 403

    login(RESIDENT)
    response = client.get(f"/qr-codes/{qr['id']}/access-logs")
    assert response.status_code == 200
    assert len(response.json()["data"]) == 1
