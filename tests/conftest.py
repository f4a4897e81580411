"""
Pytest configuration and fixtures.
"""
import os

# Settings and the auth manager read the environment at import time
os.environ["JWT_SECRET"] = "test-secret-key-for-the-document-vault-suite"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["LOG_DIR"] = ""
os.environ["EXPOSE_RESET_TOKEN"] = "true"
os.environ.pop("AZURE_STORAGE_CONNECTION_STRING", None)
os.environ.pop("ADMIN_EMAIL", None)

import pytest
from fastapi.testclient import TestClient

from auth.access_control import Principal
from auth.auth_manager import auth_manager
from auth.roles import Role
from core.database import DatabaseConfig, DatabaseManager
from core.models import Base, User
from core.observability import observability
from documents.blob_store import LocalBlobStore, get_blob_store

DEFAULT_PASSWORD = "secret123"


@pytest.fixture(scope="session", autouse=True)
def engine():
    """One in-memory database for the whole run."""
    DatabaseManager.initialize(DatabaseConfig("sqlite://"))
    yield DatabaseManager.get_engine()
    DatabaseManager.dispose()


@pytest.fixture(autouse=True)
def clean_database(engine):
    """Recreate empty tables and reset metrics before every test."""
    Base.metadata.drop_all(bind=engine)
    DatabaseManager.create_tables()
    observability.clear()
    yield


@pytest.fixture
def db():
    """Session used by the test body."""
    session = DatabaseManager.new_session()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def make_user(db):
    """Factory creating committed users."""
    counter = {"n": 0}

    def _make_user(
        role=Role.CLIENT,
        name=None,
        email=None,
        password=DEFAULT_PASSWORD,
        is_active=True,
        manager_id=None,
        credits=10,
    ) -> User:
        counter["n"] += 1
        user = User(
            name=name or f"{role.value} {counter['n']}",
            email=email or f"{role.value}{counter['n']}@example.com",
            password_hash=auth_manager.hash_password(password) if password else None,
            role=role,
            is_active=is_active,
            manager_id=manager_id,
            credits=credits,
        )
        db.add(user)
        db.commit()
        return user

    return _make_user


@pytest.fixture
def principal():
    """Build a Principal from a User row."""
    return Principal.from_user


@pytest.fixture
def auth_headers():
    def _auth_headers(user: User) -> dict:
        return {"Authorization": f"Bearer {auth_manager.create_access_token(user)}"}

    return _auth_headers


@pytest.fixture
def blob_store(tmp_path):
    """Local blob store in a temporary directory."""
    return LocalBlobStore(str(tmp_path / "uploads"))


@pytest.fixture
def client(blob_store):
    """API client with the blob store pointed at the temporary directory."""
    from apps.api.main import app

    app.dependency_overrides[get_blob_store] = lambda: blob_store
    yield TestClient(app)
    app.dependency_overrides.clear()
