import re
import uuid
from concurrent.futures import Future

import pytest

from psysite import create_app

CSRF_TOKEN_RE = re.compile(r'name="_csrf_token" value="([^"]+)"')


def extract_csrf_token(html):
    match = CSRF_TOKEN_RE.search(html or "")
    return match.group(1) if match else None


def build_test_app(tmp_path, monkeypatch, overrides=None):
    db_path = tmp_path / f"site_test_{uuid.uuid4().hex[:8]}.db"
    upload_path = tmp_path / f"uploads_{uuid.uuid4().hex[:8]}"

    monkeypatch.setenv("ADMIN_PASSWORD", "admin123")

    config = {
        "TESTING": True,
        "SECRET_KEY": "test-secret-key",
        "SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_path}",
        "UPLOAD_FOLDER": str(upload_path),
        "CONFIG_STORE_URL": "",
        "CONFIG_API_TOKEN": "test-api-token",
        "LOG_JSON": False,
    }
    if overrides:
        config.update(overrides)
    return create_app(config)


@pytest.fixture()
def app(tmp_path, monkeypatch):
    return build_test_app(tmp_path, monkeypatch)


@pytest.fixture()
def client(app):
    return app.test_client()


def admin_login(client):
    login_page = client.get("/admin/login")
    csrf_token = extract_csrf_token(login_page.get_data(as_text=True))
    assert csrf_token

    response = client.post(
        "/admin/login",
        data={
            "_csrf_token": csrf_token,
            "username": "admin",
            "password": "admin123",
        },
        follow_redirects=False,
    )
    assert response.status_code in (302, 303)

    # Login clears the session, so pick up the new token.
    page = client.get("/admin/contact-settings")
    csrf_token = extract_csrf_token(page.get_data(as_text=True))
    assert csrf_token
    return csrf_token


class ManualExecutor:
    """Runs submitted jobs only when a test asks it to."""

    def __init__(self):
        self.jobs = []

    def submit(self, fn, *args):
        future = Future()
        self.jobs.append((fn, args, future))
        return future

    def run_next(self):
        fn, args, future = self.jobs.pop(0)
        try:
            future.set_result(fn(*args))
        except Exception as exc:
            future.set_exception(exc)


@pytest.fixture()
def executor():
    return ManualExecutor()
