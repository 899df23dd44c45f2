# tests/conftest.py

"""
Pytest configuration and shared fixtures for testing.
"""

from contextlib import ExitStack
from typing import Generator
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from main import create_app
from dependencies.auth import CurrentUser, get_current_user, get_optional_auth
from tests.fakes import (
    ADMIN_ROLE_ID,
    RESIDENT_ROLE_ID,
    SECURITY_ROLE_ID,
    FakeSupabase,
)


# Every module that resolves its own Supabase client
ROUTER_MODULES = [
    "routers.organizations",
    "routers.members",
    "routers.invitations",
    "routers.general_invite_links",
    "routers.qr_codes",
    "routers.access_logs",
    "routers.chat",
    "routers.organization_roles",
]

ADMIN = CurrentUser(id="0b6a3c1e-5d1f-4d8e-9a44-0a1b2c3d4e01", email="ana@example.com", full_name="Ana Admin")
RESIDENT = CurrentUser(id="0b6a3c1e-5d1f-4d8e-9a44-0a1b2c3d4e02", email="rita@example.com", full_name="Rita Residente")
RESIDENT_2 = CurrentUser(id="0b6a3c1e-5d1f-4d8e-9a44-0a1b2c3d4e03", email="raul@example.com", full_name="Raúl Residente")
GUARD = CurrentUser(id="0b6a3c1e-5d1f-4d8e-9a44-0a1b2c3d4e04", email="sergio@example.com", full_name="Sergio Seguridad")
OUTSIDER = CurrentUser(id="0b6a3c1e-5d1f-4d8e-9a44-0a1b2c3d4e05", email="otto@example.com", full_name="Otto Externo")


@pytest.fixture
def fake_db() -> FakeSupabase:
    """Fresh in-memory Supabase for each test."""
    return FakeSupabase()


@pytest.fixture
def org_id(fake_db) -> str:
    """Residential organization with an admin, two residents and a guard."""
    organization_id = fake_db.add_organization(created_by=ADMIN.id)
    fake_db.add_member(organization_id, ADMIN.id, ADMIN_ROLE_ID, ADMIN.full_name)
    fake_db.add_member(organization_id, RESIDENT.id, RESIDENT_ROLE_ID, RESIDENT.full_name)
    fake_db.add_member(organization_id, RESIDENT_2.id, RESIDENT_ROLE_ID, RESIDENT_2.full_name)
    fake_db.add_member(organization_id, GUARD.id, SECURITY_ROLE_ID, GUARD.full_name)
    return organization_id


@pytest.fixture(scope="function")
def app(fake_db):
    """Create a test FastAPI application instance backed by the fake store."""
    application = create_app()
    with ExitStack() as stack:
        for module in ROUTER_MODULES:
            stack.enter_context(patch(f"{module}.get_supabase_client", return_value=fake_db))
        yield application
    application.dependency_overrides.clear()


@pytest.fixture(scope="function")
def client(app) -> Generator[TestClient, None, None]:
    """Create a test client for the FastAPI application."""
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def login(app):
    """Authenticate subsequent requests as the given user."""
    def _login(user: CurrentUser):
        app.dependency_overrides[get_current_user] = lambda: user
        app.dependency_overrides[get_optional_auth] = lambda: user
        return user
    return _login
