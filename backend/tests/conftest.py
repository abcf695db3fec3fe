"""Pytest configuration and fixtures."""

import os

os.environ.setdefault("SUPABASE_URL", "https://test-project.supabase.co")
os.environ.setdefault("SUPABASE_KEY", "test-anon-key")
os.environ.setdefault("SUPABASE_SERVICE_KEY", "test-service-key")
os.environ.setdefault("SUPABASE_JWT_SECRET", "test-jwt-secret-for-unit-tests-only")
os.environ.setdefault("EMQX_API_URL", "")
os.environ.setdefault("MQTT_BROKER_HOST", "mqtt.test.local")

import pytest
from fastapi import Depends
from fastapi.testclient import TestClient

from app.core.database import SystemStore, UserStore
from app.core.dependencies import get_broker_registrar, get_current_identity, get_system_db, get_user_db
from app.core.security import UserIdentity
from app.main import app

from fakes import OWNER_ID, FakeSupabase, RecordingRegistrar


@pytest.fixture
def fake_db() -> FakeSupabase:
    return FakeSupabase()


@pytest.fixture
def registrar() -> RecordingRegistrar:
    return RecordingRegistrar()


@pytest.fixture
def system_store(fake_db) -> SystemStore:
    return SystemStore(fake_db)


@pytest.fixture
def project(fake_db) -> dict:
    return fake_db.seed("projects", user_id=OWNER_ID, name="Greenhouse", slug="greenhouse")


@pytest.fixture
def device(fake_db, project) -> dict:
    return fake_db.seed(
        "devices",
        id="22222222-bbbb-4ccc-8ddd-000000000002",
        project_id=project["id"],
        name="Sensor A",
        device_token="f" * 64,
    )


@pytest.fixture
def client(fake_db, registrar):
    """Test client: real bearer verification, in-memory store and registrar."""

    def override_user_db(identity: UserIdentity = Depends(get_current_identity)) -> UserStore:
        return UserStore(fake_db, identity)

    app.dependency_overrides[get_system_db] = lambda: SystemStore(fake_db)
    app.dependency_overrides[get_user_db] = override_user_db
    app.dependency_overrides[get_broker_registrar] = lambda: registrar

    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client

    app.dependency_overrides.clear()
