"""
Pytest fixtures для postback-сервиса: временная SQLite-база на каждый тест.
"""

import os
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[3]
SERVICE_DIR = ROOT / "services" / "postback"
if str(SERVICE_DIR) not in sys.path:
    sys.path.insert(0, str(SERVICE_DIR))

# До импорта config/database: тесты не должны видеть боевую БД
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["POSTBACK_SECRET"] = "test-secret"

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from database import Base
from store import SqlStatusStore
import models  # noqa: F401  (регистрирует таблицы в Base.metadata)


@pytest.fixture
def session_factory(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'postback.db'}",
        connect_args={"check_same_thread": False},
        future=True,
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(bind=engine, autoflush=False, autocommit=False)
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def store(db):
    return SqlStatusStore(db, max_attempts=5)


@pytest.fixture
def client(session_factory, monkeypatch):
    """FastAPI TestClient, сессии БД берутся из временной базы."""
    from fastapi.testclient import TestClient

    from config import settings
    from database import get_db
    from main import app

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    monkeypatch.setattr(settings, "POSTBACK_SECRET", "test-secret")
    monkeypatch.setattr(settings, "ALLOWED_AFFILIATE_IDS", "")
    monkeypatch.setattr(settings, "ALLOWED_CAMPAIGN_IDS", "")
    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
