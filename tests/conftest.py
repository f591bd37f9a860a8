import os
import tempfile

os.environ.setdefault("SECRET_KEY", "test-secret-key-that-is-at-least-32-chars")
os.environ.setdefault("REFRESH_TOKEN_SECRET_KEY", "test-refresh-key-that-is-at-least-32-chars")
os.environ.setdefault("TELEGRAM_BOT_TOKEN", "test-bot-token")
os.environ.setdefault("BACKEND_API_URL", "http://testserver/api")
os.environ["STORAGE_BACKEND"] = "memory"
os.environ["LOG_FILE"] = os.path.join(tempfile.gettempdir(), "skillclips-tests", "app.log")

import pytest
from fastapi.testclient import TestClient

from app.core.config import UploadSettings
from app.main import create_app
from app.services.file_storage import FileStorage
from app.storage.memory import MemoryStorage

BOT_TOKEN = os.environ["TELEGRAM_BOT_TOKEN"]


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def upload_settings(tmp_path):
    return UploadSettings(UPLOAD_DIR=str(tmp_path / "uploads"), UPLOAD_CHUNK_SIZE=1024)


@pytest.fixture
def file_storage(upload_settings):
    return FileStorage(upload_settings.upload_dir, chunk_size=upload_settings.chunk_size)


@pytest.fixture
def app(storage, upload_settings):
    return create_app(storage=storage, upload_settings=upload_settings)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def auth_headers(client):
    """Registers a user and returns bearer headers for them."""

    def _login(username="alice", password="secret-pass"):
        response = client.post("/api/auth/register", json={"username": username, "password": password})
        assert response.status_code == 201, response.text
        response = client.post("/api/auth/login", json={"username": username, "password": password})
        assert response.status_code == 200, response.text
        return {"Authorization": f"Bearer {response.json()['access_token']}"}

    return _login
