import json
import os

os.environ["TESTING"] = "true"

import pytest

from segmentation.app import app
from segmentation.blueprints.auth import create_user
from segmentation.extensions import db, limiter, segment_registry

ADMIN_USERNAME = "admin"
ADMIN_PASSWORD = os.environ.get("TEST_PASSWORD", "password")


@pytest.fixture
def data_root(tmp_path):
    """Points every registered provider at a fresh app-data root."""
    previous = {}
    for provider in segment_registry:
        if hasattr(provider, "data_root"):
            previous[provider.name] = provider.data_root
            provider.data_root = tmp_path
    yield tmp_path
    for provider in segment_registry:
        if provider.name in previous:
            provider.data_root = previous[provider.name]


@pytest.fixture
def write_rules(data_root):
    """Writes a raw rule file for a provider, bypassing the store."""

    def _write(provider, rules):
        directory = data_root / "Segments"
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / f"{provider.config_key}.segments.json"
        path.write_text(json.dumps(rules), encoding="utf-8")
        return path

    return _write


@pytest.fixture
def anon_client(data_root):
    """Provides an unauthenticated test client with an empty database."""
    app.config["TESTING"] = True
    app.config["SQLALCHEMY_DATABASE_URI"] = "sqlite:///:memory:"
    app.config["SECRET_KEY"] = "test-secret"

    with app.test_client() as test_client, app.app_context():
        db.create_all()
        limiter.reset()
        yield test_client
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(anon_client):
    """Provides a test client logged in as an administrator."""
    create_user(ADMIN_USERNAME, ADMIN_PASSWORD, is_admin=True)
    response = anon_client.post(
        "/api/auth/login",
        json={"username": ADMIN_USERNAME, "password": ADMIN_PASSWORD})
    assert response.status_code == 200
    return anon_client
