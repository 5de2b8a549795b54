"""
Test configuration and fixtures for taskboard tests.

Provides:
- Test database with SQLite in-memory for speed
- FastAPI test client with database dependency override
- A temporary file store per test
- Authentication helpers (JWT token generation)
- Common fixtures for users, namespaces, projects and stored files
"""

import io
import os
import sys
import logging
from pathlib import Path
from typing import Callable, Dict, Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

# Add backend directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from database import Base, get_db
from main import app
import models
import filestore
from auth.security import hash_password, create_access_token

# Configure logging for tests
logging.basicConfig(level=logging.WARNING)
logger = logging.getLogger(__name__)

# SQLite in-memory database for fast testing
SQLALCHEMY_TEST_DATABASE_URL = "sqlite:///:memory:"


@pytest.fixture(scope="function")
def test_db() -> Generator[Session, None, None]:
    """
    Create a fresh in-memory SQLite database for each test.

    This ensures test isolation and fast execution.
    """
    engine = create_engine(
        SQLALCHEMY_TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    db = TestingSessionLocal()

    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)
        logger.debug("Test database cleaned up")


@pytest.fixture(autouse=True)
def files_dir(tmp_path: Path, monkeypatch) -> Path:
    """Point the file store at a per-test temporary directory."""
    path = tmp_path / "files"
    path.mkdir()
    monkeypatch.setenv("FILES_BASEPATH", str(path))
    return path


@pytest.fixture(scope="function")
def client(test_db: Session) -> TestClient:
    """
    Create FastAPI test client with database dependency override.
    """
    def override_get_db():
        try:
            yield test_db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


def _create_user(db: Session, username: str) -> models.User:
    user = models.User(
        username=username,
        email=f"{username}@test.com",
        name=username.capitalize(),
        password_hash=hash_password(f"{username}-password"),
        is_active=True,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info(f"Created user {username} with ID: {user.id}")
    return user


@pytest.fixture(scope="function")
def owner(test_db: Session) -> models.User:
    """The user owning the namespaces and the source project."""
    return _create_user(test_db, "alice")


@pytest.fixture(scope="function")
def other_user(test_db: Session) -> models.User:
    """A second user without any access unless a test grants it."""
    return _create_user(test_db, "bob")


@pytest.fixture(scope="function")
def third_user(test_db: Session) -> models.User:
    return _create_user(test_db, "carol")


@pytest.fixture(scope="function")
def auth_headers_for() -> Callable[[models.User], Dict[str, str]]:
    """
    Build authorization headers for any user.

    Example:
        >>> client.get("/api/projects", headers=auth_headers_for(other_user))
    """
    def _headers(user: models.User) -> Dict[str, str]:
        token = create_access_token({"sub": str(user.id), "username": user.username})
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture(scope="function")
def auth_headers(owner: models.User, auth_headers_for) -> Dict[str, str]:
    """Authorization headers of the owner."""
    return auth_headers_for(owner)


@pytest.fixture(scope="function")
def namespace(test_db: Session, owner: models.User) -> models.Namespace:
    """The namespace holding the source project."""
    ns = models.Namespace(title="Work", owner_id=owner.id)
    test_db.add(ns)
    test_db.commit()
    test_db.refresh(ns)
    return ns


@pytest.fixture(scope="function")
def target_namespace(test_db: Session, owner: models.User) -> models.Namespace:
    """A second namespace of the owner to duplicate into."""
    ns = models.Namespace(title="Archive", owner_id=owner.id)
    test_db.add(ns)
    test_db.commit()
    test_db.refresh(ns)
    return ns


@pytest.fixture(scope="function")
def project(test_db: Session, owner: models.User, namespace: models.Namespace) -> models.Project:
    """A source project with an identifier derived from its title."""
    project = models.Project(
        title="Website Relaunch",
        description="Everything for the new site",
        identifier="WR",
        hex_color="e8e8e8",
        owner_id=owner.id,
        namespace_id=namespace.id,
    )
    test_db.add(project)
    test_db.commit()
    test_db.refresh(project)
    logger.info(f"Created project with ID: {project.id}")
    return project


@pytest.fixture(scope="function")
def store_file(test_db: Session, owner: models.User) -> Callable[..., models.File]:
    """
    Store content in the file store and commit it.

    Example:
        >>> file = store_file(b"hello", name="hello.txt")
    """
    def _store(content: bytes, name: str = "file.txt", mime: str = "text/plain") -> models.File:
        file = filestore.create_file(test_db, io.BytesIO(content), name, len(content), owner, mime=mime)
        test_db.commit()
        test_db.refresh(file)
        return file

    return _store
