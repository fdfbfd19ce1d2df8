"""Tests for database URL configuration precedence and session helpers."""

from willregistry.db import connection
from willregistry.db.connection import get_database_url


def test_get_database_url_prefers_database_url(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "sqlite:///./preferred.db")
    monkeypatch.setenv("WILLREG_DB_PATH", "/tmp/fallback.db")

    assert get_database_url("sqlite:///configured.db") == "sqlite:///./preferred.db"


def test_get_database_url_uses_db_path_fallback(monkeypatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.setenv("WILLREG_DB_PATH", "/tmp/willregistry.db")

    assert get_database_url("sqlite:///configured.db") == "sqlite:////tmp/willregistry.db"


def test_get_database_url_uses_configured_url(monkeypatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.delenv("WILLREG_DB_PATH", raising=False)

    assert get_database_url("sqlite:///configured.db") == "sqlite:///configured.db"


def test_get_database_url_defaults_to_data_dir(monkeypatch, tmp_path):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.delenv("WILLREG_DB_PATH", raising=False)
    monkeypatch.setenv("WILLREG_DATA_DIR", str(tmp_path / "data"))

    url = get_database_url()

    assert url == f"sqlite:///{tmp_path / 'data' / 'willregistry.db'}"
    assert (tmp_path / "data").is_dir()


def test_configure_and_init_db(monkeypatch, tmp_path):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.setenv("WILLREG_DB_PATH", str(tmp_path / "wills.db"))
    try:
        engine = connection.configure()
        connection.init_db()
        with connection.get_db_context() as db:
            assert db.bind is engine
        assert (tmp_path / "wills.db").exists()
    finally:
        connection.close_db()
