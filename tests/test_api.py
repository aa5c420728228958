"""
Tests for FastAPI endpoints.
"""

import json

import pytest
import sys
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

from fastapi.testclient import TestClient

from app import main
from app.config import COMPONENT_PATH
from app.llm import ModelClient
from app.rate_limiter import RateLimiter
from conftest import FakeAnthropic, SIMPLE_COMPONENT, SKETCH_IMAGE, code_response, model_response, tool_use


def parse_sse(body):
    events = []
    for frame in body.strip().split("\n\n"):
        event_line, data_line = frame.split("\n")
        events.append((event_line[len("event: "):], json.loads(data_line[len("data: "):])))
    return events


@pytest.fixture
def responses():
    """Scripted model responses for the next request."""
    return [code_response(SIMPLE_COMPONENT)]


@pytest.fixture
def client(monkeypatch, pool, responses):
    """Test client wired to the fake sandbox pool and a scripted model."""
    monkeypatch.setattr(main, "pool", pool)
    monkeypatch.setattr(main, "rate_limiter", RateLimiter(100, 60))
    monkeypatch.setattr(
        main,
        "create_model_client",
        lambda session_id: ModelClient(session_id=session_id, client=FakeAnthropic(*responses)),
    )
    return TestClient(main.app)


class TestHealthEndpoint:
    """Test the /health endpoint."""

    def test_health_returns_ok(self, client):
        response = client.get("/health")
        assert response.status_code == 200

        data = response.json()
        assert data["status"] == "healthy"
        assert "timestamp" in data
        assert data["active_sandboxes"] == 0
        assert data["prewarmed_sandbox"] is None
        assert data["e2b_configured"] is True
        assert data["anthropic_configured"] is True

    def test_health_counts_sandboxes(self, client):
        client.post("/api/sandbox/init")
        data = client.get("/health").json()
        assert data["active_sandboxes"] == 1
        assert data["prewarmed_sandbox"] == "sbx-1"


class TestRootEndpoint:

    def test_root_lists_endpoints(self, client):
        data = client.get("/").json()
        assert data["name"] == "Sketch-to-UI API"
        assert data["endpoints"]["generate"] == "POST /api/generate"


class TestGenerateEndpoint:

    def test_streams_events_until_complete(self, client):
        response = client.post("/api/generate", json={"image": SKETCH_IMAGE})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        assert response.headers["cache-control"] == "no-cache"

        events = parse_sse(response.text)
        names = [name for name, _ in events]
        assert names[0] == "start"
        assert names[-1] == "complete"
        assert "sandbox" in names
        complete = events[-1][1]
        assert complete["success"] is True
        assert complete["code"] == SIMPLE_COMPONENT

    def test_missing_image_rejected(self, client):
        response = client.post("/api/generate", json={"styleGuide": "minimal"})
        assert response.status_code == 400
        assert response.json()["detail"] == "Image is required"

    def test_rate_limited(self, client, monkeypatch):
        monkeypatch.setattr(main, "rate_limiter", RateLimiter(1, 60))

        assert client.post("/api/generate", json={"image": SKETCH_IMAGE}).status_code == 200
        response = client.post("/api/generate", json={"image": SKETCH_IMAGE})

        assert response.status_code == 429
        assert int(response.headers["retry-after"]) > 0


class TestAgentEditEndpoint:

    @pytest.fixture
    def responses(self):
        return [model_response(
            tool_use("write_file", "t1", path=COMPONENT_PATH, content=SIMPLE_COMPONENT),
            tool_use("task_complete", "t2", success=True, message="Done"),
        )]

    def test_edit_streams_events(self, client):
        response = client.post("/api/agent-edit", json={
            "prompt": "Make it blue",
            "currentCode": SIMPLE_COMPONENT,
        })

        events = parse_sse(response.text)
        assert events[-1][0] == "complete"
        assert events[-1][1]["iterations"] == 1

    def test_prompt_required(self, client):
        response = client.post("/api/agent-edit", json={"currentCode": SIMPLE_COMPONENT})
        assert response.status_code == 400


class TestSandboxInit:

    def test_prewarm_then_cached(self, client):
        first = client.post("/api/sandbox/init").json()
        second = client.post("/api/sandbox/init").json()

        assert first["success"] is True
        assert first["cached"] is False
        assert first["url"] == "https://3000-sbx-1.e2b.app"
        assert second["cached"] is True
        assert second["sandboxId"] == first["sandboxId"]

    def test_status(self, client):
        assert client.get("/api/sandbox/init").json() == {"ready": False}
        client.post("/api/sandbox/init")
        status = client.get("/api/sandbox/init").json()
        assert status["ready"] is True
        assert status["sandboxId"] == "sbx-1"

    def test_prewarm_failure(self, client, fake_sandbox_cls):
        fake_sandbox_cls.fail_create = True
        response = client.post("/api/sandbox/init")

        assert response.status_code == 500
        data = response.json()
        assert data["success"] is False
        assert "Failed to create sandbox" in data["error"]


class TestSandboxKill:

    def test_kill_prewarmed(self, client, fake_sandbox_cls):
        client.post("/api/sandbox/init")
        data = client.post("/api/sandbox/kill", json={}).json()

        assert data == {"success": True, "killed": "sbx-1"}
        assert fake_sandbox_cls.registry["sbx-1"].killed

    def test_kill_unknown_is_success(self, client):
        data = client.post("/api/sandbox/kill", json={"sandboxId": "sbx-gone"}).json()
        assert data["success"] is True


class TestSandboxTerminal:

    def test_runs_command(self, client, fake_sandbox_cls):
        client.post("/api/sandbox/init")
        fake_sandbox_cls.script("ls", (0, "app\npackage.json"))

        data = client.post("/api/sandbox/terminal", json={"sandboxId": "sbx-1", "command": "ls"}).json()

        assert data == {"stdout": "app\npackage.json", "stderr": "", "exitCode": 0}

    def test_blocked_command(self, client):
        response = client.post("/api/sandbox/terminal", json={"sandboxId": "sbx-1", "command": "rm -rf /"})
        assert response.status_code == 400

    def test_unknown_sandbox(self, client):
        response = client.post("/api/sandbox/terminal", json={"sandboxId": "sbx-gone", "command": "ls"})
        assert response.status_code == 404

    def test_missing_command(self, client):
        response = client.post("/api/sandbox/terminal", json={"sandboxId": "sbx-1"})
        assert response.status_code == 400


class TestSandboxUpdate:

    def test_writes_component(self, client, fake_sandbox_cls):
        client.post("/api/sandbox/init")
        data = client.post("/api/sandbox/update", json={"sandboxId": "sbx-1", "code": "new code"}).json()

        assert data["success"] is True
        assert fake_sandbox_cls.registry["sbx-1"].files.store[COMPONENT_PATH] == "new code"

    def test_code_required(self, client):
        response = client.post("/api/sandbox/update", json={"sandboxId": "sbx-1"})
        assert response.status_code == 400


class TestSandboxFiles:

    LS_OUTPUT = """total 12
drwxr-xr-x 4 user user 4096 Jan  1 00:00 .
drwxr-xr-x 3 user user 4096 Jan  1 00:00 ..
drwxr-xr-x 2 user user 4096 Jan  1 00:00 app
-rw-r--r-- 1 user user  512 Jan  1 00:00 package.json
"""

    @pytest.fixture(autouse=True)
    def sandbox(self, client):
        client.post("/api/sandbox/init")

    def test_list(self, client, fake_sandbox_cls):
        fake_sandbox_cls.script("ls -la", (0, self.LS_OUTPUT))

        items = client.post("/api/sandbox/files", json={"sandboxId": "sbx-1", "action": "list"}).json()["items"]

        assert [i["name"] for i in items] == ["app", "package.json"]
        assert items[0]["isDirectory"] is True
        assert items[1]["path"] == "/home/user/app/package.json"
        assert items[1]["size"] == "512"

    def test_write_then_read(self, client):
        path = "/home/user/app/lib/data.ts"
        write = client.post("/api/sandbox/files", json={
            "sandboxId": "sbx-1", "action": "write", "path": path, "content": "export const x = 1;",
        })
        read = client.post("/api/sandbox/files", json={"sandboxId": "sbx-1", "action": "read", "path": path})

        assert write.json() == {"success": True}
        assert read.json() == {"content": "export const x = 1;"}

    def test_rename_quotes_paths(self, client, fake_sandbox_cls):
        client.post("/api/sandbox/files", json={
            "sandboxId": "sbx-1", "action": "rename", "path": "/home/user/app/a b.ts", "newPath": "/home/user/app/c.ts",
        })
        sandbox = fake_sandbox_cls.registry["sbx-1"]
        assert sandbox.commands.commands_matching("mv") == ["mv '/home/user/app/a b.ts' /home/user/app/c.ts"]

    def test_invalid_action(self, client):
        response = client.post("/api/sandbox/files", json={"sandboxId": "sbx-1", "action": "chmod"})
        assert response.status_code == 400

    def test_unknown_sandbox(self, client):
        response = client.post("/api/sandbox/files", json={"sandboxId": "sbx-gone", "action": "list"})
        assert response.status_code == 404


class TestListSandboxes:

    def test_lists_tracked_sandboxes(self, client):
        client.post("/api/sandbox/init")
        data = client.get("/api/sandboxes").json()

        assert data["count"] == 1
        assert data["sandboxes"][0]["sandboxId"] == "sbx-1"
        assert data["sandboxes"][0]["state"] == "ready"
