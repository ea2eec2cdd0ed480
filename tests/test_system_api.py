"""
Tests for system endpoints, error logging and image uploads.

Run with: pytest tests/test_system_api.py -v
"""

import pytest

from api import system
from api.shared.image_validation import BAD_RATIO_MESSAGE, INVALID_TYPE_MESSAGE

from conftest import make_png


@pytest.fixture(autouse=True)
def clear_error_log():
    system._error_log.clear()
    yield
    system._error_log.clear()


class TestSystemApi:
    def test_health(self, client):
        data = client.get("/api/health").json()
        assert data["status"] == "healthy"
        assert data["ready"] is True

    def test_info(self, client):
        data = client.get("/api/system/info").json()
        assert "python" in data
        assert "fastapi" in data["packages"]

    def test_status(self, client):
        status = client.get("/api/system/status").json()["status"]
        assert status["services"] == {"gemini": True, "cloudinary": True, "polar": True}
        assert status["database"] is True

    def test_unconfigured_service(self, client, monkeypatch):
        from api.app_config import app_config

        monkeypatch.delenv("POLAR_ACCESS_TOKEN")
        app_config.reload()
        status = client.get("/api/system/status").json()["status"]
        assert status["services"]["polar"] is False


class TestErrorLog:
    def test_log_error_with_traceback(self):
        try:
            raise RuntimeError("kaboom")
        except RuntimeError as e:
            entry = system.log_error("/api/x", "kaboom", level="critical", exc=e)
        assert "RuntimeError: kaboom" in entry["traceback"]

    def test_log_is_bounded(self):
        for i in range(system.MAX_ERROR_LOG + 10):
            system.log_error("/api/x", f"error {i}")
        assert len(system._error_log) == system.MAX_ERROR_LOG

    def test_server_errors_are_recorded(self, client, fake_genai, anon_headers, png_base64):
        fake_genai.aio.models.generate_content.side_effect = RuntimeError("boom")
        client.post("/api/designer/refine-layout", json={
            "image": {"type": "image/png", "base64": png_base64},
            "layout_mask": "data:image/png;base64," + png_base64,
        }, headers=anon_headers)

        data = client.get("/api/system/errors").json()
        assert data["total"] == 1
        assert data["errors"][0]["endpoint"] == "/api/designer/refine-layout"
        assert data["errors"][0]["details"] == "GenerationError"

    def test_client_errors_are_not_recorded(self, client, anon_headers):
        client.post("/api/designer/redesign", json={
            "image": {"type": "image/png", "base64": "@@@"},
        }, headers=anon_headers)
        assert client.get("/api/system/errors").json()["total"] == 0

    def test_clear(self, client):
        system.log_error("/api/x", "one")
        client.delete("/api/system/errors")
        assert client.get("/api/system/errors").json()["total"] == 0


class TestImagesApi:
    def test_validate(self, client):
        resp = client.post("/api/images/validate", files={"file": ("yard.png", make_png(1600, 900), "image/png")})
        data = resp.json()
        assert data["valid"] is True
        assert (data["width"], data["height"]) == (1600, 900)

    def test_validate_rejects_extreme_ratio(self, client):
        resp = client.post("/api/images/validate", files={"file": ("pano.png", make_png(4000, 1000), "image/png")})
        assert resp.status_code == 400
        assert resp.json()["detail"] == BAD_RATIO_MESSAGE

    def test_upload(self, client, fake_image_store):
        resp = client.post("/api/images/upload", files={"file": ("yard.png", make_png(), "image/png")})
        data = resp.json()
        assert data["name"] == "yard.png"
        assert data["public_id"] == "ai-landscape-designer/img1"
        assert data["width"] == 400
        fake_image_store.assert_awaited_once()

    def test_upload_wrong_type(self, client, fake_image_store):
        resp = client.post("/api/images/upload", files={"file": ("notes.txt", b"hello", "text/plain")})
        assert resp.status_code == 400
        assert resp.json()["detail"] == INVALID_TYPE_MESSAGE
        fake_image_store.assert_not_awaited()
