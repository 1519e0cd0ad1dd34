"""Shared pytest fixtures for the ContractFlow backend.

Tests run against an in-memory SQLite database. The environment is set up
before contractflow is imported because settings are read at import time.
"""

import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("JWT_SECRET", "test-jwt-secret-for-contractflow-tests-only")
os.environ.setdefault("PASSWORD_PEPPER", "test-pepper")
os.environ["LOG_JSON"] = "false"
os.environ["LOG_LEVEL"] = "WARNING"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from contractflow.auth.jwt import create_access_token
from contractflow.auth.password import hash_password
from contractflow.auth.roles import UserRole, UserStatus
from contractflow.database import get_db
from contractflow.main import app
from contractflow.models import Base, Org, User, Vendor

from tests.fixtures.contract_samples import contract_payload

TEST_PASSWORD = "correct-horse-battery"

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


# pysqlite does not emit BEGIN itself, which breaks SAVEPOINT handling.
@event.listens_for(engine, "connect")
def _disable_pysqlite_begin(dbapi_connection, connection_record):
    dbapi_connection.isolation_level = None


@event.listens_for(engine, "begin")
def _emit_begin(conn):
    conn.exec_driver_sql("BEGIN")


TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session():
    """Fresh schema and session per test."""
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="session")
def password_hash():
    # Argon2id at production cost is slow; hash once for the whole run.
    return hash_password(TEST_PASSWORD)


@pytest.fixture
def org(db_session):
    org = Org(name="Blue Lagoon Pools", slug="blue-lagoon", settings_json={})
    db_session.add(org)
    db_session.commit()
    return org


@pytest.fixture
def other_org(db_session):
    org = Org(name="Desert Oasis Builders", slug="desert-oasis", settings_json={})
    db_session.add(org)
    db_session.commit()
    return org


@pytest.fixture
def make_user(db_session, org, password_hash):
    """Factory for users; defaults to an active admin in ``org``."""
    counter = {"n": 0}

    def _make_user(
        role=UserRole.ADMIN,
        status=UserStatus.ACTIVE,
        username=None,
        email=None,
        sales_rep_name=None,
        user_org=None,
    ):
        counter["n"] += 1
        role_value = role.value if isinstance(role, UserRole) else role
        user = User(
            org_id=(user_org or org).id,
            username=username or f"user{counter['n']}",
            email=email,
            password_hash=password_hash,
            role=role_value,
            status=status.value if isinstance(status, UserStatus) else status,
            sales_rep_name=sales_rep_name,
        )
        db_session.add(user)
        db_session.commit()
        return user

    return _make_user


@pytest.fixture
def admin_user(make_user):
    return make_user(UserRole.ADMIN, username="admin", email="admin@bluelagoon.com")


@pytest.fixture
def manager_user(make_user):
    return make_user(UserRole.CONTRACT_MANAGER, username="manager", email="manager@bluelagoon.com")


@pytest.fixture
def sales_rep_user(make_user):
    return make_user(
        UserRole.SALES_REP,
        username="jdoe",
        email="jdoe@bluelagoon.com",
        sales_rep_name="John Doe",
    )


@pytest.fixture
def accountant_user(make_user):
    return make_user(UserRole.ACCOUNTANT, username="accountant", email="books@bluelagoon.com")


@pytest.fixture
def viewer_user(make_user):
    return make_user(UserRole.VIEWER, username="viewer", email="viewer@bluelagoon.com")


@pytest.fixture
def vendor(db_session, org):
    vendor = Vendor(
        org_id=org.id,
        name="Pool Pros Tile",
        email="ops@poolprostile.com",
        phone="512-555-0101",
        contact_person="Maria Lopez",
        category="Tile",
        status="active",
        specialties=["tile", "coping"],
    )
    db_session.add(vendor)
    db_session.commit()
    return vendor


@pytest.fixture
def vendor_user(make_user, vendor):
    return make_user(UserRole.VENDOR, username="poolpros", email="OPS@poolprostile.com")


def auth_headers(user):
    token = create_access_token(user.id, user.org_id, user.role, user.username)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def client(db_session):
    """Unauthenticated client sharing the test session."""

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    try:
        with TestClient(app) as test_client:
            yield test_client
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def client_for(client):
    """Factory returning a client authenticated as the given user."""
    clients = []

    def _client_for(user):
        authed = TestClient(app, headers=auth_headers(user))
        clients.append(authed)
        return authed

    yield _client_for
    for authed in clients:
        authed.close()


@pytest.fixture
def admin_client(client_for, admin_user):
    return client_for(admin_user)


@pytest.fixture
def manager_client(client_for, manager_user):
    return client_for(manager_user)


@pytest.fixture
def stored_contract(manager_client):
    """The sample contract stored through the API by a contract manager."""
    response = manager_client.post("/api/v1/contracts", json=contract_payload())
    assert response.status_code == 201
    return response.json()["contract"]
