"""
Pytest configuration file.

This file is automatically loaded by pytest and provides global test configuration.
It adds the project's source directory to the Python path and points the
application at an in-memory database and temporary folders before any test
module imports main.py.
"""
import io
import os
import sys
import tempfile

import pytest
from openpyxl import Workbook

# Add the current directory to the Python path
# This ensures imports work correctly when running tests
sys.path.insert(0, os.path.abspath(os.path.dirname(__file__)))

_TEST_ROOT = tempfile.mkdtemp(prefix="analytics-tests-")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("LOG_DIR", os.path.join(_TEST_ROOT, "logs"))
os.environ.setdefault("UPLOAD_DIR", os.path.join(_TEST_ROOT, "uploads"))
os.environ.setdefault("JWT_SECRET", "test-secret")


def build_workbook(*sheets):
    """
    Build .xlsx bytes in memory.

    Args:
        *sheets: One list of rows per sheet; each row is a list of cell values

    Returns:
        bytes: The serialized workbook
    """
    workbook = Workbook()
    workbook.remove(workbook.active)
    for index, rows in enumerate(sheets):
        sheet = workbook.create_sheet(title=f"Sheet{index + 1}")
        for row in rows:
            sheet.append(row)
    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


@pytest.fixture
def xlsx():
    """
    Fixture exposing the in-memory workbook builder.

    Returns:
        Callable[..., bytes]: build_workbook
    """
    return build_workbook


@pytest.fixture
def settings(tmp_path):
    """
    Fixture providing explicit settings backed by an in-memory database.

    Returns:
        Settings: Settings pointing uploads and logs at a temporary directory
    """
    from config import Settings
    return Settings(
        environment="test",
        database_url="sqlite://",
        jwt_secret="test-secret",
        upload_dir=str(tmp_path / "uploads"),
        log_dir=str(tmp_path / "logs"),
        frontend_url="http://frontend.test",
    )


@pytest.fixture
def db_session(settings):
    """
    Fixture providing a SQLAlchemy session on a fresh in-memory database.

    Yields:
        Session: An open session, closed after the test
    """
    from database import create_db_engine, create_session_factory, init_db
    engine = create_db_engine(settings.database_url)
    init_db(engine)
    session = create_session_factory(engine)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture
def make_user(db_session):
    """
    Fixture returning a factory that stores a user.

    Returns:
        Callable[..., User]: Factory taking email and optional names
    """
    from models import User
    from security import hash_password

    def _make_user(email, first_name="Test", last_name="User", password="secret123"):
        user = User(
            email=email,
            password_hash=hash_password(password),
            first_name=first_name,
            last_name=last_name,
        )
        db_session.add(user)
        db_session.commit()
        return user

    return _make_user


@pytest.fixture
def make_project(db_session):
    """
    Fixture returning a factory that stores a project with its creator as member.

    Returns:
        Callable[..., Project]: Factory taking the creator and the creator's role
    """
    from models import Project, ProjectMember, ProjectRole, ProjectType

    def _make_project(creator, name="Quarterly Sales", role=ProjectRole.ADMIN):
        project = Project(
            name=name,
            description="Shared sales workbooks",
            type=ProjectType.ORGANIZATION,
            creator_id=creator.id,
        )
        db_session.add(project)
        db_session.flush()
        db_session.add(ProjectMember(user_id=creator.id, project_id=project.id, role=role))
        db_session.commit()
        return project

    return _make_project
