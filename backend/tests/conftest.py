"""
Shared fixtures: an in-memory database wired into the app through
``dependency_overrides``, a TestClient and bearer-token helpers.
"""

import os
import tempfile

# Must be set before the app module creates its static mount
os.environ.setdefault("STORAGE_DIR", tempfile.mkdtemp(prefix="ielts-storage-"))
os.environ.setdefault("JWT_SECRET_KEY", "test-secret")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from ieltsprep.db import Base, get_db
from ieltsprep.main import app
from ieltsprep.routers.auth import User, issue_token

ENCRYPTION_KEY = "0123456789abcdef0123456789abcdef-extra-ignored"


@pytest.fixture
def db_engine():
	eng = create_engine(
		"sqlite://",
		connect_args={"check_same_thread": False},
		poolclass=StaticPool,
		future=True,
	)
	Base.metadata.create_all(bind=eng)
	yield eng
	eng.dispose()


@pytest.fixture
def session_factory(db_engine):
	return sessionmaker(bind=db_engine, autocommit=False, autoflush=False, future=True)


@pytest.fixture
def db_session(session_factory):
	db = session_factory()
	try:
		yield db
	finally:
		db.close()


@pytest.fixture
def client(session_factory):
	def override_get_db():
		db = session_factory()
		try:
			yield db
		finally:
			db.close()

	app.dependency_overrides[get_db] = override_get_db
	# Not entered as a context manager: startup (create_all, cleanup loop) stays off
	yield TestClient(app)
	app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(db_session):
	"""Factory returning Authorization headers for a fresh session."""

	def make(username: str = "alice", is_admin: bool = False):
		token = issue_token(db_session, User(username=username, is_admin=is_admin))
		return {"Authorization": f"Bearer {token.access_token}"}

	return make


@pytest.fixture
def admin_headers(auth_headers):
	return auth_headers("admin", is_admin=True)


@pytest.fixture
def encryption_key(monkeypatch):
	from ieltsprep.settings import settings

	monkeypatch.setattr(settings, "app_encryption_key", ENCRYPTION_KEY)
	return ENCRYPTION_KEY
