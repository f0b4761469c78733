# tests/conftest.py
"""
Pytest configuration and fixtures.
"""

import os
from datetime import datetime

import pytest

# Set test environment before anything imports bulletin.database
os.environ.setdefault("TESTING", "1")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("ADMIN_API_KEY", "test-api-key")
os.environ.setdefault("LOG_JSON", "false")


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "sqlite: tests that run against an in-memory SQLite database")


# Monday morning of a school week
SCHOOL_NOW = datetime(2025, 6, 2, 9, 0, 0)


@pytest.fixture
def engine():
    """Fresh in-memory database with every table created."""
    from bulletin import models  # noqa: F401
    from bulletin.database import Base, build_engine

    engine = build_engine("sqlite:///:memory:")
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    """Session bound to the per-test database."""
    from sqlalchemy.orm import sessionmaker

    Session = sessionmaker(bind=engine, autocommit=False, autoflush=False, future=True)
    session = Session()
    yield session
    session.close()


@pytest.fixture
def clock():
    from bulletin.clock import FixedClock

    return FixedClock(SCHOOL_NOW)


@pytest.fixture
def admin():
    from bulletin.services.audit import Actor

    return Actor(user_type="admin", user_id=7, identifier="registrar@school.edu", ip_address="10.0.0.5")


@pytest.fixture
def system_actor():
    from bulletin.services.audit import Actor

    return Actor.system()


@pytest.fixture
def audit_rows(db):
    """Callable returning audit rows for one target, oldest first."""
    from bulletin.models import AuditLog

    def _rows(target_table, target_id=None):
        query = db.query(AuditLog).filter(AuditLog.target_table == target_table)
        if target_id is not None:
            query = query.filter(AuditLog.target_id == target_id)
        return query.order_by(AuditLog.id.asc()).all()

    return _rows
