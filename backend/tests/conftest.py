import pytest
from fastapi.testclient import TestClient
from pathlib import Path
from sqlalchemy.orm import Session
from typing import Generator


from flowify.config import Settings
from flowify.main import create_app, get_prediction_client


class FakePredictionClient:
    """Stands in for the image model; records every call it receives."""

    def __init__(self, result: bytes = b"modified-image-bytes", mime_type: str = "image/png", error: Exception = None):
        self.result = result
        self.mime_type = mime_type
        self.error = error
        self.calls = []

    def modify_image(self, image_bytes: bytes, prompt: str):
        self.calls.append((image_bytes, prompt))
        if self.error is not None:
            raise self.error
        return self.result, self.mime_type


@pytest.fixture
def storage_dir(tmp_path: Path) -> Path:
    return tmp_path / "uploads"


@pytest.fixture
def test_settings(storage_dir: Path) -> Settings:
    return Settings(
        _env_file=None,
        database_url="sqlite://",
        storage_dir=str(storage_dir),
        ai_project_id="test-project",
        ai_access_token="test-token",
    )


@pytest.fixture
def fake_ai() -> FakePredictionClient:
    return FakePredictionClient()


@pytest.fixture
def app(test_settings: Settings, fake_ai: FakePredictionClient):
    application = create_app(test_settings)
    application.dependency_overrides[get_prediction_client] = lambda: fake_ai
    return application


@pytest.fixture
def client(app) -> Generator[TestClient, None, None]:
    """
    Provides a TestClient; entering it runs the app lifespan (tables + placeholder user).
    """
    with TestClient(app) as c:
        yield c


@pytest.fixture
def db_session(app, client) -> Generator[Session, None, None]:
    """
    A separate session on the app's database for assertions.
    """
    db = app.state.database.SessionLocal()
    yield db
    db.close()
