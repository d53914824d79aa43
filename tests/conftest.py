"""Pytest configuration and fixtures."""

import pytest
from datetime import datetime, timedelta, timezone
from fastapi.testclient import TestClient

from casework.config import get_testing_config, reset_config
from casework.core.app_manager import AppManager
from casework.core.case_manager import CaseManager
from casework.core.identity import UserDirectory
from casework.factory import create_app
from casework.models import DEFAULT_USERS, default_workflow
from casework.storage.database import configure_database, create_tables, reset_database_engine


class FakeClock:
    """Deterministic clock that advances one minute every time it is read."""

    def __init__(self, start=None):
        self.current = start or datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)
        self.readings = []

    def __call__(self):
        value = self.current
        self.readings.append(value)
        self.current += timedelta(minutes=1)
        return value


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def document():
    """The default workflow: start, triage, approval, investigate, rejected, end."""
    return default_workflow()


@pytest.fixture
def resolve_user():
    """In-memory user lookup over the default users."""
    users = {user.id: user for user in DEFAULT_USERS}
    return users.get


@pytest.fixture
def database():
    """Fresh in-memory database for each test."""
    configure_database("sqlite:///:memory:")
    create_tables()
    yield
    reset_database_engine()


@pytest.fixture
def user_directory(database):
    directory = UserDirectory()
    directory.seed()
    return directory


@pytest.fixture
def app_manager(database):
    return AppManager()


@pytest.fixture
def case_manager(app_manager, user_directory, clock):
    return CaseManager(app_manager, user_directory, clock=clock)


@pytest.fixture
def support_app(app_manager):
    return app_manager.create_app("Support Desk", icon="📞", theme_color="blue", app_id="app-1")


@pytest.fixture
def client():
    """API client over a fresh in-memory database seeded with the demo users and apps."""
    config = get_testing_config().model_copy(update={"seed_demo_data": True})
    app = create_app(config)

    with TestClient(app) as test_client:
        yield test_client

    reset_database_engine()
    reset_config()
