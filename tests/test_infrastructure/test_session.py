"""
Tests for engine/session wiring and the readiness check
"""
import pytest
from unittest.mock import MagicMock, patch

import psycopg
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from academy.config import Settings
from academy.infrastructure.db import session as db_session_module
from academy.main import create_app


@pytest.fixture
def sqlite_settings(monkeypatch):
    """Point the engine singletons at a throwaway SQLite database"""
    settings = Settings(DATABASE_URL="sqlite:///:memory:")
    monkeypatch.setattr(db_session_module, "get_settings", lambda: settings)
    monkeypatch.setattr(db_session_module, "_engine", None)
    monkeypatch.setattr(db_session_module, "_SessionLocal", None)
    return settings


def test_sqlalchemy_url_uses_psycopg_driver():
    settings = Settings(DATABASE_URL="postgresql://u:p@db:5432/academy")
    assert settings.get_sqlalchemy_url() == "postgresql+psycopg://u:p@db:5432/academy"
    assert Settings(DATABASE_URL="sqlite:///x.db").get_sqlalchemy_url() == "sqlite:///x.db"


def test_engine_and_factory_are_singletons(sqlite_settings):
    engine = db_session_module.get_engine()
    assert engine is db_session_module.get_engine()
    assert engine.url.drivername == "sqlite"
    assert db_session_module.get_session_factory() is db_session_module.get_session_factory()


def test_get_db_yields_and_closes_session(sqlite_settings):
    gen = db_session_module.get_db()
    db = next(gen)
    assert isinstance(db, Session)
    with patch.object(db, "close") as close:
        with pytest.raises(StopIteration):
            next(gen)
    close.assert_called_once()


def test_ready_checks_database():
    conn = MagicMock()
    with patch("academy.infrastructure.db.session.psycopg.connect", return_value=conn) as connect:
        response = TestClient(create_app()).get("/ready")

    assert response.status_code == 200
    assert response.text == "ok"
    connect.assert_called_once()
    cursor = conn.__enter__.return_value.cursor.return_value.__enter__.return_value
    cursor.execute.assert_called_once_with("SELECT 1;")


def test_ready_fails_when_database_unreachable():
    with patch(
        "academy.infrastructure.db.session.psycopg.connect",
        side_effect=psycopg.OperationalError("connection refused"),
    ):
        response = TestClient(create_app()).get("/ready")

    assert response.status_code == 500
    assert "connection refused" in response.text


def test_ready_on_sqlite_uses_engine(sqlite_settings):
    with patch("academy.infrastructure.db.session.psycopg.connect") as connect:
        response = TestClient(create_app()).get("/ready")

    assert response.status_code == 200
    connect.assert_not_called()
