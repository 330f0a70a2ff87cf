# Ensure 'dailyhelper' package (backend/dailyhelper) is importable when running tests from repo root.
import os
import sys
import tempfile

BACKEND_DIR = os.path.abspath(os.path.dirname(__file__))
if BACKEND_DIR not in sys.path:
    sys.path.insert(0, BACKEND_DIR)

# dailyhelper.main builds a module-level app on import; keep it off the real storage dir
os.environ.setdefault("DB__CONNECTION_STRING", f"sqlite:///{tempfile.mkdtemp(prefix='dailyhelper-')}/import.db")

import pytest
from fastapi.testclient import TestClient

from dailyhelper.main import create_app
from dailyhelper.settings import DbSettings, JwtSettings, Settings

STRONG_PASSWORD = "Passw0rd"


@pytest.fixture
def db_url(tmp_path):
    return f"sqlite:///{tmp_path / 'test.db'}"


@pytest.fixture
def make_settings(db_url):
    def _make(**overrides):
        jwt = overrides.pop("jwt", JwtSettings())
        db = overrides.pop("db", DbSettings(connection_string=db_url))
        return Settings(jwt=jwt, db=db, **overrides)
    return _make


@pytest.fixture
def settings(make_settings):
    return make_settings()


@pytest.fixture
def app(settings):
    return create_app(settings)


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def register(client):
    """Register a user and return Authorization headers for it."""
    def _register(username: str, password: str = STRONG_PASSWORD) -> dict:
        r = client.post('/api/identity/register', json={"username": username, "password": password})
        assert r.status_code == 200, r.text
        return {"Authorization": f"Bearer {r.json()['token']}"}
    return _register
