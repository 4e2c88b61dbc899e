"""
Shared pytest fixtures for the MAAP check-ins test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - organization / employee / manager / position / employment_tenure:
      a teammate reporting to a manager in one organization
"""

from datetime import date, timedelta

import pytest

from maap import create_app
from maap.models import db as _db
from maap.models.organization import Organization, Person, Teammate
from maap.models.subject import Position
from maap.models.tenure import EmploymentTenure


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
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Domain fixtures ──────────────────────────────────────────────────────


def make_teammate(organization, full_name, email):
    person = Person(full_name=full_name, email=email)
    _db.session.add(person)
    _db.session.flush()
    teammate = Teammate(person_id=person.id, organization_id=organization.id)
    _db.session.add(teammate)
    _db.session.commit()
    return teammate


@pytest.fixture()
def organization():
    org = Organization(name="Acme Co")
    _db.session.add(org)
    _db.session.commit()
    return org


@pytest.fixture()
def manager(organization):
    return make_teammate(organization, "Morgan Manager", "morgan@acme.test")


@pytest.fixture()
def employee(organization):
    return make_teammate(organization, "Erin Employee", "erin@acme.test")


@pytest.fixture()
def position(organization):
    pos = Position(organization_id=organization.id, title="Software Engineer")
    _db.session.add(pos)
    _db.session.commit()
    return pos


@pytest.fixture()
def employment_tenure(employee, manager, position, organization):
    tenure = EmploymentTenure(
        teammate_id=employee.id,
        organization_id=organization.id,
        position_id=position.id,
        manager_teammate_id=manager.id,
        employment_type="full_time",
        started_at=date.today() - timedelta(days=200),
    )
    _db.session.add(tenure)
    _db.session.commit()
    return tenure


@pytest.fixture()
def other_teammate(organization):
    """A teammate in the same organization with no reporting line to ``employee``."""
    return make_teammate(organization, "Olive Other", "olive@acme.test")
