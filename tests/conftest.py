"""Pytest configuration for filevue tests."""
from __future__ import annotations

from dataclasses import replace

import pytest
from fastapi.testclient import TestClient

from filevue_backend.app import create_app
from filevue_backend.config import Settings
from filevue_backend.credentials import hash_password
from filevue_backend.sandbox import PathSandbox

TEST_USERNAME = "admin"
TEST_PASSWORD = "correct horse battery staple"
TEST_SECRET = "test-secret-" + "x" * 40


class FakeClock:
    """Manually advanced clock for expiry and timeout tests."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def root(tmp_path):
    """Root directory with a small tree and a secret sibling outside it."""
    root = tmp_path / "root"
    root.mkdir()
    (root / "docs").mkdir()
    (root / "docs" / "readme.txt").write_text("hello world\n")
    (root / "docs" / "nested").mkdir()
    (root / "docs" / "nested" / "deep.md").write_text("# deep\n")
    (root / "notes.txt").write_text("top level\n")
    (tmp_path / "secret").write_text("outside the root\n")
    return root.resolve()


@pytest.fixture
def sandbox(root):
    return PathSandbox(root)


@pytest.fixture(scope="session")
def password_hash():
    return hash_password(TEST_PASSWORD)


@pytest.fixture
def make_settings(root, tmp_path):
    """Build isolated Settings; keyword overrides win."""

    def _make(**overrides) -> Settings:
        base = Settings(
            root_directory=root,
            read_only=False,
            session_secret=TEST_SECRET,
            client_build_dir=tmp_path / "no-client-build",
            log_format="console",
        )
        return replace(base, **overrides)

    return _make


@pytest.fixture
def open_client(make_settings):
    """Client for an app with auth disabled and writes enabled."""
    with TestClient(create_app(make_settings())) as client:
        yield client


@pytest.fixture
def auth_client(make_settings, password_hash):
    """Client for an app with auth enabled; not logged in yet."""
    settings = make_settings(auth_username=TEST_USERNAME, auth_password_hash=password_hash)
    with TestClient(create_app(settings)) as client:
        yield client


@pytest.fixture
def csrf_token(auth_client):
    """Log in on ``auth_client`` and return the CSRF token; cookies stay on the client."""
    response = auth_client.post("/api/auth/login", json={"username": TEST_USERNAME, "password": TEST_PASSWORD})
    assert response.status_code == 200, response.text
    return response.json()["csrfToken"]
