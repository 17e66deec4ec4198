"""Pytest configuration and shared fixtures."""

import os
from decimal import Decimal

# Point settings at an in-memory database BEFORE importing marketplace
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["PANEL_AUTH_SECRET"] = "test-panel-secret"
os.environ["SMTP_HOST"] = ""
os.environ["PANEL_URL"] = "https://panel.example.com"

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from marketplace.api.app import app  # noqa: E402
from marketplace.models import Base, Order, Server, User  # noqa: E402
from marketplace.services import SessionLocal, engine, get_db  # noqa: E402
from marketplace.services.auth_service import sign_panel_payload  # noqa: E402
from marketplace.services.notification_service import (  # noqa: E402
    MockTransport,
    init_notification_service,
)

TEST_SECRET = "test-panel-secret"


@pytest.fixture(scope="function")
def db_session():
    """Provide a test database session with all tables created."""
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()

    def override_get_db():
        """Override get_db to use the test session."""
        try:
            yield session
        finally:
            pass  # Closed by the fixture

    app.dependency_overrides[get_db] = override_get_db

    yield session

    session.close()
    app.dependency_overrides.clear()
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client(db_session):
    """Provide a FastAPI test client bound to the test database."""
    return TestClient(app)


@pytest.fixture(autouse=True)
def mail_transport():
    """Record outgoing mail instead of sending it."""
    transport = MockTransport()
    init_notification_service(transport)
    yield transport
    init_notification_service(MockTransport())


@pytest.fixture
def make_user(db_session):
    """Factory creating committed users."""
    counter = {"n": 0}

    def _make_user(
        email: str | None = None,
        credits: Decimal | str = "0.00",
        is_administrator: bool = False,
        name_first: str | None = None,
        name_last: str | None = None,
    ) -> User:
        counter["n"] += 1
        n = counter["n"]
        user = User(
            username=f"user{n}",
            email=email or f"user{n}@example.com",
            name_first=name_first,
            name_last=name_last,
            credits=Decimal(credits),
            is_administrator=is_administrator,
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make_user


@pytest.fixture
def make_server(db_session):
    """Factory creating committed servers."""

    def _make_server(owner: User, name: str = "Survival SMP") -> Server:
        server = Server(name=name, owner_id=owner.id)
        db_session.add(server)
        db_session.commit()
        db_session.refresh(server)
        return server

    return _make_server


@pytest.fixture
def make_order(db_session):
    """Factory creating committed orders."""

    def _make_order(user: User, total: Decimal | str) -> Order:
        order = Order(user_id=user.id, subtotal=Decimal(total), total=Decimal(total))
        db_session.add(order)
        db_session.commit()
        db_session.refresh(order)
        return order

    return _make_order


@pytest.fixture
def admin(make_user) -> User:
    return make_user(email="admin@example.com", is_administrator=True)


@pytest.fixture
def owner(make_user) -> User:
    return make_user(email="owner@example.com", name_first="Olivia", name_last="Owner")


@pytest.fixture
def partner(make_user) -> User:
    return make_user(email="partner@example.com", name_first="Pat")


@pytest.fixture
def server(make_server, owner) -> Server:
    return make_server(owner)


def auth_headers(user: User) -> dict:
    """Signed identity header for the given user."""
    return {"Authorization": f"panel {sign_panel_payload(user.id, TEST_SECRET)}"}


@pytest.fixture
def headers_for():
    """Build signed identity headers: headers_for(user)."""
    return auth_headers
