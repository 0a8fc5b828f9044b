"""
Pytest fixtures for kanban backend tests.

Provides test database setup, users with project roles, a project with the
default columns, and bearer-token headers for the test client.
"""

from datetime import datetime

import pytest
from app import create_app
from app.extensions import db
from app.models import User, ProjectMembership, BoardColumn
from app.models.auth import ROLE_ADMIN, ROLE_MEMBER
from app.services import project_service
from app.services.access_service import issue_token


T0 = datetime(2026, 3, 2, 9, 0, 0)


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SECRET_KEY': 'test-secret',
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'TX_RETRY_BACKOFF': 0.0,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


def _make_user(session, email: str, name: str, role: str = ROLE_MEMBER) -> User:
    user = User(email=email, name=name, role=role, is_active=True)
    session.add(user)
    session.commit()
    return user


@pytest.fixture(scope='function')
def admin_user(db_session):
    """Global ADMIN: may create projects, is ADMIN on every project."""
    return _make_user(db_session, "admin@kanban.test", "Admin", ROLE_ADMIN)


@pytest.fixture(scope='function')
def member_user(db_session):
    """Plain user; made a project MEMBER by the project fixture."""
    return _make_user(db_session, "member@kanban.test", "Member")


@pytest.fixture(scope='function')
def outsider_user(db_session):
    """Plain user with no membership anywhere."""
    return _make_user(db_session, "outsider@kanban.test", "Outsider")


@pytest.fixture(scope='function')
def project(db_session, admin_user, member_user):
    """Project with default columns; admin_user created it, member_user is a MEMBER."""
    project = project_service.create_project(name="Launch Plan", creator_id=admin_user.id)
    db_session.add(ProjectMembership(user_id=member_user.id, project_id=project.id, role=ROLE_MEMBER))
    db_session.commit()
    return project


@pytest.fixture(scope='function')
def columns(db_session, project):
    """The project's columns by order: [To Do, In Progress, Done]."""
    return (
        db_session.query(BoardColumn)
        .filter_by(project_id=project.id)
        .order_by(BoardColumn.order.asc())
        .all()
    )


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def admin_headers(admin_user):
    return auth_headers(issue_token(admin_user.id))


@pytest.fixture(scope='function')
def member_headers(member_user):
    return auth_headers(issue_token(member_user.id))


@pytest.fixture(scope='function')
def outsider_headers(outsider_user):
    return auth_headers(issue_token(outsider_user.id))
