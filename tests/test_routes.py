import inspect
import re

import pytest
from fastapi.testclient import TestClient
from google.genai import types

from app import app
from config import Config
from image import routes
from image.models import GeminiSettings
from image.routes import get_generation_client
from image.services import GenerationClient
from tests.conftest import fake_sdk, image_response


@pytest.fixture
def api():
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()


def _use_sdk(factory, api_key="test-key"):
    client = GenerationClient(GeminiSettings(api_key=api_key), client_factory=factory)
    app.dependency_overrides[get_generation_client] = lambda: client


def _new_session(api) -> str:
    resp = api.post("/api/sessions")
    assert resp.status_code == 200
    return resp.json()["session_id"]


def test_healthz(api):
    resp = api.get("/healthz")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


def test_stateless_generate_end_to_end(api, red_png_base64, blue_png, blue_png_base64):
    factory, _ = fake_sdk(image_response(types.Blob(data=blue_png)))
    _use_sdk(factory)

    resp = api.post("/api/generate", json={"image_base64": red_png_base64, "mime_type": "image/png", "prompt": ""})

    assert resp.status_code == 200
    assert resp.json() == {"image_uri": f"data:image/png;base64,{blue_png_base64}"}


def test_stateless_generate_empty_candidates(api, red_png_base64):
    factory, _ = fake_sdk(types.GenerateContentResponse(candidates=[]))
    _use_sdk(factory)

    resp = api.post("/api/generate", json={"image_base64": red_png_base64, "mime_type": "image/png"})

    assert resp.status_code == 502
    assert "No candidates" in resp.json()["detail"]


def test_stateless_generate_without_key(api, red_png_base64):
    factory, _ = fake_sdk()
    _use_sdk(factory, api_key="")

    resp = api.post("/api/generate", json={"image_base64": red_png_base64, "mime_type": "image/png"})

    assert resp.status_code == 500
    assert "API Key is missing" in resp.json()["detail"]
    factory.assert_not_called()


def test_session_flow(api, red_png_base64, blue_png, blue_png_base64):
    factory, sdk = fake_sdk(image_response(types.Blob(data=blue_png)))
    _use_sdk(factory)
    session_id = _new_session(api)

    resp = api.post(f"/api/sessions/{session_id}/image", json={"data_uri": f"data:image/png;base64,{red_png_base64}", "filename": "red.png"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["source_image"]["mime_type"] == "image/png"
    assert body["can_generate"] is True

    resp = api.put(f"/api/sessions/{session_id}/prompt", json={"prompt": ""})
    assert resp.json()["prompt"] == ""

    resp = api.post(f"/api/sessions/{session_id}/generate")
    assert resp.status_code == 200
    body = resp.json()
    assert body["result"]["url"] == f"data:image/png;base64,{blue_png_base64}"
    assert body["processing"] == {"is_loading": False, "error": None, "progress": ""}
    assert sdk.aio.models.generate_content.await_count == 1

    resp = api.get(f"/api/sessions/{session_id}/download")
    assert resp.status_code == 200
    assert resp.content == blue_png
    assert resp.headers["content-type"] == "image/png"
    assert re.fullmatch(r'attachment; filename="ratioflip-\d+\.png"', resp.headers["content-disposition"])

    resp = api.delete(f"/api/sessions/{session_id}/image")
    body = resp.json()
    assert body["source_image"] is None
    assert body["result"] is None
    assert body["processing"]["error"] is None


def test_session_generate_failure_is_reported_in_state(api, red_png_base64):
    factory, _ = fake_sdk(types.GenerateContentResponse(candidates=[]))
    _use_sdk(factory)
    session_id = _new_session(api)
    api.post(f"/api/sessions/{session_id}/image", json={"data_uri": f"data:image/png;base64,{red_png_base64}"})

    resp = api.post(f"/api/sessions/{session_id}/generate")

    assert resp.status_code == 200
    assert "No candidates" in resp.json()["processing"]["error"]
    assert resp.json()["result"] is None


def test_generate_without_image(api):
    factory, _ = fake_sdk()
    _use_sdk(factory)
    session_id = _new_session(api)

    resp = api.post(f"/api/sessions/{session_id}/generate")

    assert resp.status_code == 400
    factory.assert_not_called()


def test_non_image_upload_rejected(api):
    session_id = _new_session(api)
    resp = api.post(f"/api/sessions/{session_id}/image", json={"data_uri": "data:text/plain;base64,aGVsbG8="})
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Please upload an image file."


def test_download_without_result(api):
    session_id = _new_session(api)
    assert api.get(f"/api/sessions/{session_id}/download").status_code == 404


def test_unknown_session(api):
    assert api.get("/api/sessions/does-not-exist").status_code == 404
    assert api.delete("/api/sessions/does-not-exist").status_code == 404


def test_delete_session(api):
    session_id = _new_session(api)
    assert api.delete(f"/api/sessions/{session_id}").json() == {"deleted": True, "session_id": session_id}
    assert api.get(f"/api/sessions/{session_id}").status_code == 404


def test_multipart_upload(api, red_png, red_png_base64):
    session_id = _new_session(api)

    resp = api.post(
        f"/api/sessions/{session_id}/image/file",
        files={"file": ("red.png", red_png, "image/png")},
    )

    assert resp.status_code == 200
    source = resp.json()["source_image"]
    assert source["filename"] == "red.png"
    assert source["preview_uri"] == f"data:image/png;base64,{red_png_base64}"


def test_multipart_non_image_rejected(api):
    session_id = _new_session(api)
    resp = api.post(
        f"/api/sessions/{session_id}/image/file",
        files={"file": ("notes.txt", b"hello", "text/plain")},
    )
    assert resp.status_code == 400


def test_request_log_masking():
    from app import mask_sensitive_data

    masked = mask_sensitive_data({"api_key": "secret", "data_uri": "data:image/png;base64,AAAA", "prompt": "hi"})

    assert masked == {"api_key": "***MASKED***", "data_uri": "[26 chars]", "prompt": "hi"}


def test_snapshot_reports_upload_availability(api):
    body = api.get(f"/api/sessions/{_new_session(api)}").json()
    assert body["in_flight"] is False
    assert body["can_upload"] is True


def test_data_uri_without_type_uses_reported_mime(api, red_png_base64):
    session_id = _new_session(api)

    resp = api.post(
        f"/api/sessions/{session_id}/image",
        json={"data_uri": f"data:;base64,{red_png_base64}", "filename": "red.png", "mime_type": "image/png"},
    )

    assert resp.status_code == 200
    assert resp.json()["source_image"]["mime_type"] == "image/png"


def test_data_uri_type_wins_over_reported_mime(api):
    session_id = _new_session(api)
    resp = api.post(
        f"/api/sessions/{session_id}/image",
        json={"data_uri": "data:text/plain;base64,aGVsbG8=", "mime_type": "image/png"},
    )
    assert resp.status_code == 400


def test_stateless_generate_rejects_oversize_image(api, monkeypatch, red_png, red_png_base64):
    monkeypatch.setattr(Config, "MAX_UPLOAD_BYTES", len(red_png) - 1)
    factory, _ = fake_sdk()
    _use_sdk(factory)

    resp = api.post("/api/generate", json={"image_base64": red_png_base64, "mime_type": "image/png"})

    assert resp.status_code == 413
    factory.assert_not_called()


def test_multipart_upload_over_limit(api, monkeypatch, red_png):
    monkeypatch.setattr(Config, "MAX_UPLOAD_BYTES", len(red_png) - 1)
    monkeypatch.setattr(routes, "UPLOAD_CHUNK_SIZE", 16)
    session_id = _new_session(api)

    resp = api.post(
        f"/api/sessions/{session_id}/image/file",
        files={"file": ("red.png", red_png, "image/png")},
    )

    assert resp.status_code == 413
    assert api.get(f"/api/sessions/{session_id}").json()["source_image"] is None


def test_multipart_upload_read_in_chunks(api, monkeypatch, red_png, red_png_base64):
    monkeypatch.setattr(routes, "UPLOAD_CHUNK_SIZE", 7)
    session_id = _new_session(api)

    resp = api.post(
        f"/api/sessions/{session_id}/image/file",
        files={"file": ("red.png", red_png, "image/png")},
    )

    assert resp.status_code == 200
    assert resp.json()["source_image"]["preview_uri"] == f"data:image/png;base64,{red_png_base64}"


@pytest.mark.parametrize("handler", [
    routes.create_session,
    routes.get_session,
    routes.delete_session,
    routes.upload_image,
    routes.upload_image_file,
    routes.clear_image,
    routes.update_prompt,
    routes.generate_for_session,
    routes.download_result,
])
def test_session_handlers_run_on_event_loop(handler):
    assert inspect.iscoroutinefunction(handler)
