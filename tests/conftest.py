"""
Shared pytest fixtures.

Every test gets its own application on a temporary JSON data file and
upload directory, so nothing leaks between tests.
"""

from pathlib import Path
from typing import Callable, Dict, Optional

import pytest
from fastapi.testclient import TestClient

from apps.api.main import create_app
from core.config import Settings
from core.context import AppContext, build_context

TEST_JWT_SECRET = "test-secret-with-at-least-thirty-two-bytes"
DEFAULT_PASSWORD = "correct-horse-battery"


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        environment="test",
        jwt_secret=TEST_JWT_SECRET,
        bcrypt_rounds=4,
        data_file=str(tmp_path / "data" / "lawease.json"),
        upload_dir=str(tmp_path / "uploads"),
        blob_backend="local",
        upload_max_bytes=1024,
        auth_rate_limit=1000,
        api_rate_limit=1000,
    )


@pytest.fixture
def context(settings: Settings) -> AppContext:
    ctx = build_context(settings)
    yield ctx
    ctx.close()


@pytest.fixture
def client(settings: Settings, context: AppContext) -> TestClient:
    app = create_app(settings, context)
    with TestClient(app) as test_client:
        yield test_client


def auth_header(token: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def signup(client: TestClient) -> Callable[..., Dict[str, str]]:
    """Register a user over HTTP; returns ``{"token", "id", "role", "headers"}``."""

    def _signup(email: str, role: Optional[str] = None, password: str = DEFAULT_PASSWORD, name: str = "Test User"):
        payload = {"name": name, "email": email, "password": password}
        if role is not None:
            payload["role"] = role
        res = client.post("/api/auth/signup", json=payload)
        assert res.status_code == 201, res.text
        body = res.json()
        return {
            "token": body["token"],
            "id": body["user"]["id"],
            "role": body["user"]["role"],
            "headers": auth_header(body["token"]),
        }

    return _signup


@pytest.fixture
def admin(signup):
    """The first account, which is always promoted to admin."""
    return signup("admin@lawease.test", name="Ada Admin")


@pytest.fixture
def lawyer(admin, signup):
    return signup("lawyer@lawease.test", role="lawyer", name="Lee Lawyer")


@pytest.fixture
def staff(admin, signup):
    return signup("staff@lawease.test", role="staff", name="Sam Staff")
