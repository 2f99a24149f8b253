"""Pytest configuration and fixtures."""

import os

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import app.models  # noqa: F401
from app.database import Base
from app.models.user import User
from app.models.workflow import Workflow
from app.services.notifications import RunNotifier
from app.steps.base import StepServices
from app.worker import Worker
from tests.fakes import FakeMigrator, FakeStorage


@pytest.fixture(scope="function")
def engine():
    """In-memory SQLite shared across threads and sessions."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def test_db(session_factory):
    """Create a test database session for each test."""
    db = session_factory()

    yield db

    db.close()


@pytest.fixture
def make_user(test_db):
    def _make(balance="10"):
        user = User(email="runner@example.com", credit_balance=Decimal(balance))
        test_db.add(user)
        test_db.commit()
        return user

    return _make


@pytest.fixture
def make_workflow(test_db):
    def _make(title="Flux Schnell", provider="fal", cost="3", dedup=False):
        workflow = Workflow(
            title=title,
            provider=provider,
            model_identifier="fal-ai/flux/schnell" if provider == "fal" else "owner/model",
            credit_cost=Decimal(cost),
            dedup_enabled=dedup,
        )
        test_db.add(workflow)
        test_db.commit()
        return workflow

    return _make


@pytest.fixture
def fake_storage():
    return FakeStorage()


@pytest.fixture
def make_worker(session_factory, fake_storage):
    def _make(adapter, migrator=None, max_poll_attempts=300, max_retries=2):
        services = StepServices(
            adapters={"fal": adapter, "replicate": adapter},
            migrator=migrator or FakeMigrator(fake_storage),
            notifier=RunNotifier(webhook_url=""),
            api_keys={"fal": "fal-key", "replicate": "rep-key"},
            poll_interval=0,
            max_poll_attempts=max_poll_attempts,
        )
        return Worker(
            session_factory=session_factory,
            services=services,
            poll_interval=0,
            max_retries=max_retries,
            retry_backoff=0,
        )

    return _make


