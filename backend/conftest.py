"""Shared fixtures: in-memory database, repository, API client, batch factory."""
from datetime import date, timedelta
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from pharmastock.api.deps import get_db
from pharmastock.db.init_db import init_db
from pharmastock.main import app
from pharmastock.models import Batch
from pharmastock.services.repository import InventoryRepository

TODAY = date(2025, 6, 1)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def repo(db):
    return InventoryRepository(db)


@pytest.fixture
def client(session_factory):
    """TestClient bound to the in-memory database (lifespan not run)."""

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_batch():
    """Transient Batch rows for the pure engine tests."""

    def _make(batch_id=1, available=10, purchased=None, expires_in=100, price="5.00", medicine_id=1, as_of=TODAY):
        return Batch(
            id=batch_id,
            medicine_id=medicine_id,
            expiration_date=as_of + timedelta(days=expires_in),
            purchased_quantity=purchased if purchased is not None else max(available, 1),
            available_quantity=available,
            unit_price=Decimal(price),
        )

    return _make
