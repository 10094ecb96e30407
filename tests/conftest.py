"""
Shared pytest fixtures for the configuration reconciler test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - datasource: Pre-created Datasource for tenant "acme" / datasource "d1"
"""

from datetime import datetime

import pytest

from flowconfig import create_app
from flowconfig.models import db as _db
from flowconfig.models.datasource import Datasource

TENANT = "acme"
DATASOURCE = "d1"


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield _db.session
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def datasource():
    """Active datasource acme/d1 with an ingestion cursor already set."""
    ds = Datasource(
        tenant_id=TENANT,
        datasource_id=DATASOURCE,
        provider="jira-cloud",
        next_run_start_from=datetime(2026, 1, 1),
    )
    _db.session.add(ds)
    _db.session.commit()
    return ds
