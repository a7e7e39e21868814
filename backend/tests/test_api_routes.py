"""
HTTP API tests through FastAPI's TestClient.

The app runs on an in-memory database. Nothing here starts a conversion, so
FFmpeg is not needed.
"""

from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from ffconductor import __version__
from ffconductor.config import RuntimeConfig
from ffconductor.main import create_app


@pytest.fixture
def app():
    return create_app(RuntimeConfig(db_path=":memory:"))


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def system_template(client):
    templates = client.get("/api/templates").json()
    return next(t for t in templates if t["name"] == "MP4 (H.264)")


@pytest.fixture
def input_file(tmp_path):
    path = tmp_path / "clip.mov"
    path.write_bytes(b"\x00" * 16)
    return str(path)


def new_template(name="API preset"):
    return {"name": name, "command_args": '-i "{input}" -c copy "{output}"', "category": "Custom"}


# =============================================================================
# Health
# =============================================================================

class TestHealth:

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["version"] == __version__
        assert isinstance(body["ffmpeg_found"], bool)

    def test_root(self, client):
        assert client.get("/").json() == {"service": "ffconductor", "status": "running"}


# =============================================================================
# Templates
# =============================================================================

class TestTemplateRoutes:

    def test_list_and_filter(self, client):
        assert len(client.get("/api/templates").json()) == 20
        assert client.get("/api/templates", params={"include_system": False}).json() == []
        audio = client.get("/api/templates", params={"category": "Audio Extraction"}).json()
        assert len(audio) == 3

    def test_categories(self, client):
        assert "Hardware Acceleration" in client.get("/api/templates/categories").json()

    def test_get_missing(self, client):
        assert client.get("/api/templates/nope").status_code == 404

    def test_create_user_template(self, client):
        response = client.post("/api/templates", json=new_template())

        assert response.status_code == 201
        assert response.json()["type"] == "user"
        assert response.json()["output_extension"] == "mp4"

    def test_create_duplicate_name(self, client):
        client.post("/api/templates", json=new_template("Twice"))

        assert client.post("/api/templates", json=new_template("Twice")).status_code == 409

    def test_create_blank_name(self, client):
        assert client.post("/api/templates", json=new_template("  ")).status_code == 400

    def test_update_user_template(self, client):
        created = client.post("/api/templates", json=new_template()).json()
        body = dict(new_template(), description="edited")

        response = client.put(f"/api/templates/{created['id']}", json=body)

        assert response.status_code == 200
        assert response.json()["description"] == "edited"
        assert response.json()["id"] == created["id"]

    def test_system_template_is_read_only(self, client, system_template):
        template_id = system_template["id"]

        assert client.put(f"/api/templates/{template_id}", json=new_template()).status_code == 403
        assert client.delete(f"/api/templates/{template_id}").status_code == 403
        assert client.get(f"/api/templates/{template_id}").json()["name"] == "MP4 (H.264)"

    def test_update_and_delete_missing(self, client):
        assert client.put("/api/templates/nope", json=new_template()).status_code == 404
        assert client.delete("/api/templates/nope").status_code == 404

    def test_delete_user_template(self, client):
        created = client.post("/api/templates", json=new_template()).json()

        assert client.delete(f"/api/templates/{created['id']}").json()["success"] is True
        assert client.get(f"/api/templates/{created['id']}").status_code == 404

    def test_copy(self, client, system_template):
        response = client.post(f"/api/templates/{system_template['id']}/copy")

        assert response.status_code == 201
        assert response.json()["name"] == "MP4 (H.264) (copy)"
        assert response.json()["type"] == "user"

        named = client.post(f"/api/templates/{system_template['id']}/copy", json={"name": "Mine"})
        assert named.json()["name"] == "Mine"

    def test_reset_system_templates(self, client):
        response = client.post("/api/templates/reset-system")

        assert response.json() == {"success": True, "message": "Reset 20 system templates"}


# =============================================================================
# Tasks and batches
# =============================================================================

class TestTaskRoutes:

    def test_create_and_get(self, client, system_template, input_file, tmp_path):
        response = client.post("/api/tasks", json={
            "input_path": input_file,
            "output_path": str(tmp_path / "clip.mp4"),
            "template_id": system_template["id"],
        })

        assert response.status_code == 201
        task = response.json()
        assert task["status"] == "pending"
        assert client.get(f"/api/tasks/{task['id']}").json()["command"] == task["command"]

    def test_create_with_unknown_template(self, client, input_file, tmp_path):
        response = client.post("/api/tasks", json={
            "input_path": input_file,
            "output_path": str(tmp_path / "clip.mp4"),
            "template_id": "nope",
        })

        assert response.status_code == 404

    def test_existing_output_conflicts(self, client, system_template, input_file, tmp_path):
        output = tmp_path / "exists.mp4"
        output.write_bytes(b"x")

        response = client.post("/api/tasks", json={
            "input_path": input_file,
            "output_path": str(output),
            "template_id": system_template["id"],
        })

        assert response.status_code == 409

    def test_cancel_pending_then_start_conflicts(self, client, system_template, input_file, tmp_path):
        task = client.post("/api/tasks", json={
            "input_path": input_file,
            "output_path": str(tmp_path / "clip.mp4"),
            "template_id": system_template["id"],
        }).json()

        cancelled = client.post(f"/api/tasks/{task['id']}/cancel")
        assert cancelled.json()["status"] == "cancelled"
        assert cancelled.json()["error_message"] == "Cancelled by user"

        assert client.post(f"/api/tasks/{task['id']}/start").status_code == 409

    def test_unknown_task(self, client):
        assert client.get("/api/tasks/nope").status_code == 404
        assert client.post("/api/tasks/nope/start").status_code == 404
        assert client.post("/api/tasks/nope/cancel").status_code == 404

    def test_list_and_running(self, client):
        assert client.get("/api/tasks").json() == []
        assert client.get("/api/tasks", params={"limit": 0}).status_code == 422
        assert client.get("/api/tasks/running").json() is None

    def test_cleanup(self, client):
        response = client.post("/api/tasks/cleanup", params={"older_than_days": 0})

        assert response.json() == {"success": True, "message": "Deleted 0 task(s)"}

    def test_batch_lifecycle(self, client, system_template, input_file, tmp_path):
        created = client.post("/api/batches", json={
            "input_paths": [input_file],
            "output_directory": str(tmp_path / "out"),
            "template_id": system_template["id"],
            "name": "API batch",
        })
        assert created.status_code == 201
        batch_id = created.json()["id"]

        detail = client.get(f"/api/batches/{batch_id}").json()
        assert detail["batch"]["total_files"] == 1
        assert detail["tasks"][0]["output_path"].endswith("clip_converted.mp4")

        cancelled = client.post(f"/api/batches/{batch_id}/cancel").json()
        assert cancelled["status"] == "failed"
        assert cancelled["failed_files"] == 1

    def test_create_task_with_missing_input(self, client, system_template, tmp_path):
        response = client.post("/api/tasks", json={
            "input_path": str(tmp_path / "nope.mov"),
            "output_path": str(tmp_path / "nope.mp4"),
            "template_id": system_template["id"],
        })

        assert response.status_code == 400

    def test_batch_with_name_pattern(self, client, system_template, input_file, tmp_path):
        batch_id = client.post("/api/batches", json={
            "input_paths": [input_file],
            "output_directory": str(tmp_path / "out"),
            "template_id": system_template["id"],
            "name_pattern": "{filename}_{counter:3}",
        }).json()["id"]

        detail = client.get(f"/api/batches/{batch_id}").json()
        assert detail["tasks"][0]["output_path"].endswith("clip_001.mp4")

    def test_batch_into_unwritable_directory(self, client, system_template, input_file, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_bytes(b"x")

        response = client.post("/api/batches", json={
            "input_paths": [input_file],
            "output_directory": str(blocker / "out"),
            "template_id": system_template["id"],
        })

        assert response.status_code == 400

    def test_scan_batch(self, client, system_template, tmp_path):
        shoot = tmp_path / "shoot"
        shoot.mkdir()
        for name in ("a.mov", "b.mkv", "c.mp4", "notes.txt"):
            (shoot / name).write_bytes(b"\x01" * 8)

        response = client.post("/api/batches/scan", json={
            "input_directory": str(shoot),
            "output_directory": str(tmp_path / "out"),
            "template_id": system_template["id"],
        })

        assert response.status_code == 201
        batch = response.json()
        assert batch["name"] == "shoot"
        assert batch["total_files"] == 2

    def test_scan_batch_needs_a_directory(self, client, system_template, input_file, tmp_path):
        response = client.post("/api/batches/scan", json={
            "input_directory": input_file,
            "output_directory": str(tmp_path / "out"),
            "template_id": system_template["id"],
        })

        assert response.status_code == 400

    def test_unknown_batch(self, client):
        assert client.get("/api/batches/nope").status_code == 404
        assert client.post("/api/batches/nope/start").status_code == 404
        assert client.post("/api/batches/nope/cancel").status_code == 404


# =============================================================================
# Encoders and system
# =============================================================================

class TestEncoderAndSystemRoutes:

    def test_recommend(self, app, client):
        detector = MagicMock()
        detector.recommend.return_value = "hevc_nvenc"
        app.state.encoder_detector = detector

        response = client.get("/api/encoders/recommend", params={"codec": "hevc", "prefer_hardware": True})

        assert response.json() == {"codec": "hevc", "encoder": "hevc_nvenc"}
        detector.recommend.assert_called_once_with("hevc", prefer_hardware=True)

    def test_encoder_available(self, app, client):
        detector = MagicMock()
        detector.is_encoder_available.return_value = False
        app.state.encoder_detector = detector

        response = client.get("/api/encoders/h264_qsv/available")

        assert response.json() == {"encoder": "h264_qsv", "available": False}

    def test_media_info_for_missing_file(self, client, tmp_path):
        response = client.get("/api/system/media-info", params={"path": str(tmp_path / "nope.mp4")})

        assert response.status_code == 404

    def test_settings_round_trip(self, client):
        settings = client.get("/api/system/settings").json()
        settings["output_suffix"] = "_api"
        settings["ffmpeg_path"] = "/opt/custom/ffmpeg"

        saved = client.put("/api/system/settings", json=settings)

        assert saved.status_code == 200
        assert client.get("/api/system/settings").json()["output_suffix"] == "_api"

    def test_settings_reset(self, client):
        settings = client.get("/api/system/settings").json()
        client.put("/api/system/settings", json=dict(settings, theme="dark"))

        assert client.post("/api/system/settings/reset").json()["theme"] == "system"

    def test_invalid_settings_rejected(self, client):
        settings = client.get("/api/system/settings").json()

        response = client.put("/api/system/settings", json=dict(settings, task_history_retention_days=-5))

        assert response.status_code == 422

    def test_disk_space(self, client, tmp_path):
        response = client.get("/api/system/disk-space", params={"path": str(tmp_path / "not" / "yet")})

        assert response.status_code == 200
        body = response.json()
        assert body["free_bytes"] > 0
        assert body["free"].split()[-1] in {"B", "KB", "MB", "GB"}
