import os
import tempfile
from pathlib import Path

import pytest

# Settings are read once at import time, so point the app at a throwaway
# database before anything imports `biblioteca`.
_TMP = Path(tempfile.mkdtemp(prefix="biblioteca-tests-"))
os.environ["DATABASE_URL"] = f"sqlite:///{_TMP / 'test.db'}"
os.environ["ADMIN_USERNAME"] = "admin"
os.environ["ADMIN_PASSWORD"] = "admin-pass"
os.environ["LOGIN_RATE_LIMIT_PER_MIN"] = "1000"
os.environ.setdefault("LOG_LEVEL", "WARNING")


@pytest.fixture(scope="session")
def client():
    from fastapi.testclient import TestClient
    from biblioteca.main import app
    return TestClient(app)


def _login(client, username, password):
    r = client.post('/auth/login', json={'username': username, 'password': password})
    assert r.status_code == 200, r.text
    return {'Authorization': f"Bearer {r.json()['access_token']}"}


@pytest.fixture(scope="session")
def user_headers(client):
    client.post('/auth/register', json={'username': 'lector', 'password': 'lector-pass'})
    return _login(client, 'lector', 'lector-pass')


@pytest.fixture(scope="session")
def admin_headers(client):
    return _login(client, 'admin', 'admin-pass')
