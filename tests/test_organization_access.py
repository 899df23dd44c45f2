# tests/test_organization_access.py

"""
Tests for organization membership, route access and page redirects.
"""

import uuid

import pytest
from fastapi import HTTPException
from fastapi.testclient import TestClient

from core.organization_access import (
    NO_ACCESS_MESSAGE,
    NO_ROLE_MESSAGE,
    NOT_FOUND_MESSAGE,
    RouteAccessDenied,
    check_route_access,
    load_organization_context,
    normalize_role_name,
    require_role,
    require_route_access,
)
from tests.conftest import ADMIN, GUARD, OUTSIDER, RESIDENT


def test_security_personnel_is_normalized(fake_db, org_id):
    context = load_organization_context(fake_db, GUARD.id, org_id)

    assert context.role_name == "security"
    assert context.has_permission("qr:validate")
    assert not context.is_admin
    assert normalize_role_name("security_personnel") == "security"
    assert normalize_role_name(None) is None


def test_non_member_gets_not_found(fake_db, org_id):
    with pytest.raises(HTTPException) as exc:
        load_organization_context(fake_db, OUTSIDER.id, org_id)
    assert exc.value.status_code == 404


def test_route_access_from_menu_permission(fake_db, org_id):
    result = check_route_access(fake_db, GUARD.id, org_id, "/validate")
    assert result.has_access
    assert result.error is None

    result = check_route_access(fake_db, RESIDENT.id, org_id, "/members")
    assert not result.has_access
    assert result.error.status == 403
    assert result.error.message == NO_ACCESS_MESSAGE


def test_permission_code_overrides_role_table(fake_db, org_id):
    """A resident granted members:view reaches /members even though the role table says admin only."""
    fake_db.role_permissions["resident"].append("members:view")

    result = check_route_access(fake_db, RESIDENT.id, org_id, "/members")
    assert result.has_access


def test_role_table_fallback_for_ungated_paths(fake_db, org_id):
    assert check_route_access(fake_db, ADMIN.id, org_id, "/chat-permissions").has_access
    assert not check_route_access(fake_db, RESIDENT.id, org_id, "/chat-permissions").has_access


def test_member_without_role(fake_db, org_id):
    user_id = str(uuid.uuid4())
    fake_db.add_member(org_id, user_id, None)

    result = check_route_access(fake_db, user_id, org_id, "/chat")
    assert not result.has_access
    assert result.error.status == 403
    assert result.error.message == NO_ROLE_MESSAGE


def test_non_member_route_check_looks_like_missing_organization(fake_db, org_id):
    result = check_route_access(fake_db, OUTSIDER.id, org_id, "/chat")
    assert not result.has_access
    assert result.organization is None
    assert result.error.status == 404
    assert result.error.message == NOT_FOUND_MESSAGE

    missing = check_route_access(fake_db, OUTSIDER.id, str(uuid.uuid4()), "/chat")
    assert missing.error == result.error

    with pytest.raises(HTTPException) as exc:
        require_route_access(fake_db, OUTSIDER.id, org_id, "/chat")
    assert exc.value.status_code == 404


def test_missing_organization_is_reported_not_raised(fake_db):
    result = check_route_access(fake_db, ADMIN.id, str(uuid.uuid4()), "/chat")
    assert not result.has_access
    assert result.error.status == 404


def test_require_route_access_raises_redirect(fake_db, org_id):
    with pytest.raises(RouteAccessDenied) as exc:
        require_route_access(fake_db, RESIDENT.id, org_id, "/validate")
    assert exc.value.redirect_to == f"/organizations/{org_id}"


def test_require_role(fake_db, org_id):
    assert require_role(fake_db, ADMIN.id, org_id, "admin").role_name == "admin"

    with pytest.raises(HTTPException) as exc:
        require_role(fake_db, RESIDENT.id, org_id, "admin", message="Solo administradores.")
    assert exc.value.status_code == 403
    assert exc.value.detail == "Solo administradores."

    with pytest.raises(HTTPException) as exc:
        require_role(fake_db, OUTSIDER.id, org_id, "admin")
    assert exc.value.status_code == 403


# -----------------------------------------------------
# HTTP surface
# -----------------------------------------------------
def test_route_access_endpoint(client: TestClient, login, org_id):
    login(RESIDENT)

    response = client.get(f"/organizations/{org_id}/route-access", params={"path": "/invites"})
    assert response.status_code == 200
    body = response.json()
    assert body["error"] is False
    assert body["data"]["hasAccess"] is True
    assert body["data"]["role"] == "resident"

    response = client.get(f"/organizations/{org_id}/route-access", params={"path": "/validate"})
    assert response.status_code == 200
    assert response.json()["data"]["hasAccess"] is False


def test_page_denial_redirects_to_org_home(client: TestClient, login, org_id):
    login(RESIDENT)

    response = client.get(
        f"/organizations/{org_id}/route-access",
        params={"path": "/validate", "redirect": "true"},
        follow_redirects=False,
    )
    assert response.status_code == 307
    assert response.headers["location"] == f"/organizations/{org_id}"


def test_route_access_hides_organization_from_non_member(client: TestClient, login, org_id):
    login(OUTSIDER)

    existing = client.get(f"/organizations/{org_id}/route-access", params={"path": "/chat"})
    missing = client.get(f"/organizations/{uuid.uuid4()}/route-access", params={"path": "/chat"})

    assert existing.status_code == missing.status_code == 404
    assert existing.json() == missing.json()
    assert "Residencial" not in existing.text

    response = client.get(
        f"/organizations/{org_id}/route-access",
        params={"path": "/chat", "redirect": "true"},
        follow_redirects=False,
    )
    assert response.status_code == 404


def test_invalid_organization_id(client: TestClient, login):
    login(ADMIN)

    response = client.get("/organizations/not-a-uuid")
    assert response.status_code == 400
    assert response.json()["error"] is True
    assert "ID de organización inválido" in response.json()["message"]
