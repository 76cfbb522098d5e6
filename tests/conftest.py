import os

# Settings are read at import time
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("ADMIN_USERNAME", "admin")
os.environ.setdefault("ADMIN_PASSWORD", "s3cret")
os.environ.setdefault("ENVIRONMENT", "dev")
os.environ.setdefault("SQLITE_PATH", ":memory:")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from zurl import auth, database, models
from zurl.folders import FolderCoordinator
from zurl.gate import LinkAccessGate
from zurl.store import DocumentStore


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    models.Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def store(db):
    return DocumentStore(db)


@pytest.fixture
def gate(store):
    return LinkAccessGate(store)


@pytest.fixture
def folders(store):
    return FolderCoordinator(store)


@pytest.fixture
def make_link(db):
    """Insert a short link row directly and return its id."""
    def _make(link_id, owner_id="alice", **fields):
        fields.setdefault("original_url", f"https://example.com/{link_id}")
        db.add(models.ShortLink(id=link_id, owner_id=owner_id, **fields))
        db.commit()
        return link_id
    return _make


@pytest.fixture
def make_folder(db):
    def _make(folder_id, owner_id="alice", name="Campaigns"):
        db.add(models.Folder(id=folder_id, owner_id=owner_id, name=name))
        db.commit()
        return folder_id
    return _make


@pytest.fixture
def client(session_factory):
    from zurl.main import app

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[database.get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {auth.create_access_token({'sub': 'admin'})}"}


@pytest.fixture
def other_headers():
    return {"Authorization": f"Bearer {auth.create_access_token({'sub': 'mallory'})}"}
