"""
Shared pytest fixtures for the PLM core test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - project / requester / approvers: seeded identity rows
    - make_part: part factory going through part_service
"""

import pytest

from plm import create_app
from plm.models import db as _db
from plm.models.auth import ProjectMember, User
from plm.models.project import Project


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


# ── ORM seed helpers ─────────────────────────────────────────────────────


def make_user(email: str, full_name: str | None = None) -> User:
    """Create and commit a User row."""
    user = User(email=email, full_name=full_name or email.split("@")[0].title())
    _db.session.add(user)
    _db.session.commit()
    return user


def make_project(code: str = "PRJ-1", name: str = "Test Project") -> Project:
    """Create and commit a Project row."""
    project = Project(code=code, name=name)
    _db.session.add(project)
    _db.session.commit()
    return project


def add_member(project: Project, user: User, role: str = "engineer") -> ProjectMember:
    """Create and commit a ProjectMember row."""
    member = ProjectMember(project_id=project.id, user_id=user.id, role_in_project=role)
    _db.session.add(member)
    _db.session.commit()
    return member


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def project():
    return make_project()


@pytest.fixture()
def requester(project):
    """Project member who raises change orders and edits parts."""
    user = make_user("req@example.com", "Rita Requester")
    add_member(project, user)
    return user


@pytest.fixture()
def approvers(project):
    """Two project members acting as change-order approvers."""
    users = [
        make_user("alice@example.com", "Alice Approver"),
        make_user("bob@example.com", "Bob Approver"),
    ]
    for user in users:
        add_member(project, user, role="reviewer")
    return users


@pytest.fixture()
def outsider():
    """A user who belongs to no project."""
    return make_user("outsider@example.com", "Olly Outsider")


@pytest.fixture()
def make_part(project, requester):
    """Factory: create a part in ``project`` as ``requester`` via the service."""
    from plm.services import part_service

    def _make(part_number: str, name: str | None = None, **extra) -> dict:
        data = {
            "project_id": project.id,
            "part_number": part_number,
            "name": name if name is not None else f"Part {part_number}",
            **extra,
        }
        return part_service.create_part(data, requester.id)

    return _make
