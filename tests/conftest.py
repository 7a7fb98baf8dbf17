"""
Pytest configuration and shared fixtures for the scheduling engine tests.

Every test gets its own in-memory SQLite database; nothing touches the
PostgreSQL instance configured for the running service.
"""
import os

# Must be set before barberbook reads its settings
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["CHANGE_FEED_REDIS_ENABLED"] = "false"
os.environ["BUSINESS_OPEN_TIME"] = "08:00"
os.environ["BUSINESS_CLOSE_TIME"] = "20:00"
os.environ["BUSINESS_TIMEZONE"] = "America/Sao_Paulo"
os.environ["SUSPENDED_PLANS_RESERVE_SLOTS"] = "false"

from datetime import datetime
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from barberbook.config.database import get_db
from barberbook.config.settings import get_settings
from barberbook.models import Base, Business, Client, Service


@pytest.fixture
def engine():
    """Fresh in-memory database per test."""
    test_engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=test_engine)

    yield test_engine

    Base.metadata.drop_all(bind=test_engine)
    test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def app_settings():
    """The cached settings instance; patch it with monkeypatch.setattr"""
    return get_settings()


@pytest.fixture
def now():
    """Monday 2025-03-10 09:00, business local time"""
    return datetime(2025, 3, 10, 9, 0)


@pytest.fixture
def business(db_session):
    shop = Business(name="Barbearia Teste", is_active=True)
    db_session.add(shop)
    db_session.commit()
    return shop


@pytest.fixture
def clients(db_session, business):
    """Three clients keyed by first name"""
    people = {
        name: Client(business_id=business.id, name=name.capitalize(), phone=phone)
        for name, phone in [("alice", "+5511900000001"), ("bruno", "+5511900000002"), ("carla", "+5511900000003")]
    }
    db_session.add_all(people.values())
    db_session.commit()
    return people


@pytest.fixture
def services(db_session, business):
    """A 30 minute haircut and a 45 minute haircut + beard"""
    menu = {
        "haircut": Service(business_id=business.id, name="Corte Simples", price=Decimal("25.00"), duration=30),
        "combo": Service(business_id=business.id, name="Corte + Barba", price=Decimal("35.00"), duration=45),
    }
    db_session.add_all(menu.values())
    db_session.commit()
    return menu


@pytest.fixture
def api_client(session_factory, business):
    """TestClient wired to the per-test database; lifespan is not run."""
    from barberbook.main import create_app

    app = create_app()

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    client = TestClient(app)
    client.headers.update({"X-Business-ID": str(business.id)})
    return client
