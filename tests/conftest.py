"""
Root conftest.py for landscape designer tests.

This file contains shared fixtures and pytest configuration
that applies to all test modules.
"""

import base64
import io
import sys
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import mongomock
import pytest
from PIL import Image

# Ensure the backend root is in the path
backend_root = Path(__file__).parent.parent
if str(backend_root) not in sys.path:
    sys.path.insert(0, str(backend_root))

from api.app_config import app_config
from api.database import db_manager
from api.gemini_client import design_generator
from api.image_store import image_store
from api.schemas import UploadedImage
from api.session_store import app_states, session_store


# ============================================================================
# Pytest Hooks
# ============================================================================


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers",
        "websocket: mark test as involving WebSocket communication",
    )
    config.addinivalue_line(
        "markers",
        "slow: mark test as slow running",
    )


def pytest_collection_modifyitems(config, items):
    """Mark tests with 'websocket' in their name."""
    for item in items:
        if "websocket" in item.name.lower():
            item.add_marker(pytest.mark.websocket)


# ============================================================================
# Shared Fixtures
# ============================================================================


SERVICE_ENV = {
    "GEMINI_API_KEY": "test-gemini-key",
    "CLOUDINARY_CLOUD_NAME": "demo-cloud",
    "CLOUDINARY_API_KEY": "test-cloudinary-key",
    "CLOUDINARY_API_SECRET": "test-cloudinary-secret",
    "POLAR_ACCESS_TOKEN": "polar-test-token",
    "POLAR_SERVER": "sandbox",
    "APP_BASE_URL": "https://app.example.com",
}


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Point config and data folders at tmp_path and set test credentials."""
    monkeypatch.setenv("LANDSCAPE_CONFIG", str(tmp_path / "config"))
    monkeypatch.setenv("LANDSCAPE_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.delenv("POLAR_WEBHOOK_SECRET", raising=False)
    for key, value in SERVICE_ENV.items():
        monkeypatch.setenv(key, value)
    app_config.reload()
    yield app_config
    monkeypatch.undo()
    app_config.reload()


@pytest.fixture(autouse=True)
def mongo_db():
    """In-memory MongoDB shared by all stores."""
    db = mongomock.MongoClient().landscape_designer_test
    db_manager.use(db)
    yield db
    db_manager.close()


@pytest.fixture(autouse=True)
def session_dir(tmp_path, monkeypatch):
    """Persist designer sessions under tmp_path and reset in-memory app state."""
    path = tmp_path / "sessions"
    monkeypatch.setattr(session_store, "_base_dir", path)
    app_states.reset()
    yield path
    app_states.reset()


def make_png(width: int = 400, height: int = 300, color=(34, 139, 34)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def png_bytes():
    return make_png()


@pytest.fixture
def png_base64(png_bytes):
    return base64.b64encode(png_bytes).decode("ascii")


@pytest.fixture
def wide_png_base64():
    """4000x1000 image: aspect ratio 4, outside the accepted range."""
    return base64.b64encode(make_png(4000, 1000)).decode("ascii")


@pytest.fixture
def mask_data_url():
    return "data:image/png;base64," + base64.b64encode(make_png(400, 300, (64, 64, 64))).decode("ascii")


@pytest.fixture
def model_response():
    """Factory for fake generate_content responses."""

    def _make(image_bytes=b"redesigned-png", mime_type="image/png", text=None, block_reason=None, candidates=True):
        parts = []
        if image_bytes is not None:
            parts.append(SimpleNamespace(
                inline_data=SimpleNamespace(data=image_bytes, mime_type=mime_type),
                text=None,
            ))
        if text is not None:
            parts.append(SimpleNamespace(inline_data=None, text=text))
        feedback = None
        if block_reason:
            feedback = SimpleNamespace(block_reason=block_reason, block_reason_message="Blocked for testing")
        return SimpleNamespace(
            prompt_feedback=feedback,
            candidates=[SimpleNamespace(content=SimpleNamespace(parts=parts))] if candidates else [],
            text=text,
        )

    return _make


@pytest.fixture
def fake_genai(model_response):
    """Install a fake Google GenAI client on the shared generator."""
    catalog_text = (
        '```json\n{"plants": [{"name": "Lavender", "species": "Lavandula angustifolia"}], '
        '"features": [{"name": "Stone Path", "description": "Flagstone walkway"}]}\n```'
    )
    models = SimpleNamespace(
        generate_content=AsyncMock(return_value=model_response(text=catalog_text)),
        generate_images=AsyncMock(return_value=SimpleNamespace(
            generated_images=[SimpleNamespace(image=SimpleNamespace(image_bytes=b"element-png"))],
        )),
    )
    client = SimpleNamespace(aio=SimpleNamespace(models=models))
    design_generator.use_client(client)
    yield client
    design_generator.use_client(None)


@pytest.fixture
def fake_image_store():
    """Replace Cloudinary uploads with numbered fake results."""
    counter = {"n": 0}

    async def _upload(data, mime_type="image/png", folder=None):
        counter["n"] += 1
        folder = folder or image_store.root_folder
        public_id = f"{folder}/img{counter['n']}"
        return UploadedImage(
            public_id=public_id,
            secure_url=f"https://res.cloudinary.com/demo-cloud/image/upload/{public_id}.png",
            width=400,
            height=300,
            format="png",
        )

    with patch.object(image_store, "upload_image", AsyncMock(side_effect=_upload)) as mock_upload:
        yield mock_upload


@pytest.fixture
def client():
    """Create a FastAPI TestClient."""
    from fastapi.testclient import TestClient
    from main import app

    with TestClient(app) as c:
        yield c


@pytest.fixture
def user_headers():
    return {"X-User-Id": "user-1", "X-Device-Id": "device-1", "X-Device-Fingerprint": "fp-1"}


@pytest.fixture
def anon_headers():
    return {"X-Anonymous-Id": "anon_1_abc", "X-Device-Id": "device-anon", "X-Device-Fingerprint": "fp-anon"}
