"""Tests for the FastAPI web server endpoints."""

from __future__ import annotations

import json
from unittest.mock import patch

import pytest
from langchain_core.language_models.fake_chat_models import FakeListChatModel

from planview.core.config import Settings

RE_PLAN = """\
# Re-plan

## R1. Frontend
### R1.1 Add task
- T1.1.1 Build UI

```mermaid
graph TD
## R9. Hidden
```

## R2. Backend
- T2.0.1 Bootstrap
"""

TASK_MD = """\
**Project Name**: Shop
**Current Progress**: 1/2

### ✅ Setup
**Description**: init repo
- [x] create repo

### 🔄 API
**Related Files**:
- `server.js` entry point
"""

ANALYSIS = {
    "project_name": "Shop",
    "tech_stack": {"frontend": ["React"], "backend": ["Express"]},
    "structure": {
        "frontend": [{"file": "src/App.tsx", "methods": [{"name": "render", "line": 1}]}],
        "backend": [{"file": "server.js", "routes": [{"method": "GET", "path": "/items"}]}],
    },
    "connections": [{"from": "App.tsx", "to": "server.js", "type": "api_call"}],
}


@pytest.fixture
def workspace(tmp_path):
    (tmp_path / "Plan").mkdir()
    (tmp_path / "Plan" / "re-plan.md").write_text(RE_PLAN, encoding="utf-8")
    (tmp_path / "Plan" / "task.md").write_text(TASK_MD, encoding="utf-8")
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "App.tsx").write_text("export const App = () => null;")
    (tmp_path / "server.js").write_text("const express = require('express');")
    (tmp_path / "node_modules").mkdir()
    return tmp_path


def _settings(workspace_path: str = "", **overrides) -> Settings:
    return Settings(_env_file=None, workspace_path=workspace_path, **overrides)


@pytest.fixture
def client(workspace):
    """Create a test client bound to the temporary workspace."""
    from fastapi.testclient import TestClient

    import planview.web.server as srv

    srv.reset_cache_stores()
    with patch("planview.web.server.get_settings", return_value=_settings(str(workspace))):
        with TestClient(srv.app) as c:
            yield c
    srv.reset_cache_stores()


def _fake_llm(text: str):
    return lambda settings: FakeListChatModel(responses=[text])


class TestHealth:
    def test_health(self, client, workspace):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"
        assert resp.json()["workspace"] == str(workspace.resolve())


# ---------------------------------------------------------------------------
# Plan documents
# ---------------------------------------------------------------------------

class TestRequirements:
    def test_nodes_and_alignments(self, client):
        data = client.get("/api/requirements").json()
        assert data["found"] is True
        assert data["path"] == "Plan/re-plan.md"
        assert [n["id"] for n in data["nodes"]] == ["R1", "R1.1", "T1.1.1", "R2", "T2.0.1"]
        assert data["alignments"][0] == {"task_id": "T1.1.1", "text": "Build UI", "requirement_id": "R1.1"}

    def test_numeric_strategy(self, client):
        data = client.get("/api/requirements?strategy=numeric").json()
        assert "T2.0.1" not in [n["id"] for n in data["nodes"]]

    def test_missing_document_is_not_an_error(self, client, tmp_path):
        empty = tmp_path / "empty"
        empty.mkdir()
        resp = client.get(f"/api/requirements?workspace={empty}")
        assert resp.status_code == 200
        data = resp.json()
        assert data["found"] is False
        assert data["nodes"] == []
        assert "Plan/re-plan-simple.md" in data["tried"]

    def test_graph_left_to_right(self, client):
        data = client.get("/api/requirements/graph?direction=LR").json()
        graph = data["graph"]
        assert [n["id"] for n in graph["nodes"]] == ["R1", "R1.1", "T1.1.1", "R2", "T2.0.1"]
        edge = graph["edges"][0]
        assert edge["sourceId"] == "R1"
        assert edge["sourceFace"] == "right"
        assert edge["targetFace"] == "left"
        positions = {n["id"]: n["position"] for n in graph["nodes"]}
        assert positions["R1.1"]["x"] > positions["R1"]["x"]

    def test_graph_rejects_unknown_direction(self, client):
        assert client.get("/api/requirements/graph?direction=XY").status_code == 422


class TestTasks:
    def test_tasks_and_counts(self, client):
        data = client.get("/api/tasks").json()
        assert data["project"]["name"] == "Shop"
        assert [t["status"] for t in data["tasks"]] == ["completed", "in-progress"]
        assert data["tasks"][0]["checkpoint_progress"] == 1.0
        assert data["tasks"][1]["related_files"][0]["path"] == "server.js"
        assert data["counts"] == {"pending": 0, "in-progress": 1, "completed": 1}

    def test_task_graph(self, client):
        graph = client.get("/api/tasks/graph").json()["graph"]
        ids = [n["id"] for n in graph["nodes"]]
        assert ids[0] == "project"
        assert "task/Setup" in ids
        assert "task/API/file/server.js" in ids


class TestStructure:
    def test_radial_by_default(self, client):
        data = client.get("/api/structure/graph").json()
        assert data["layout"] == "radial"
        ids = [n["id"] for n in data["graph"]["nodes"]]
        assert "node_modules" not in ids
        assert "server.js" in ids
        server = [n for n in data["graph"]["nodes"] if n["id"] == "server.js"][0]
        assert server["category"] == "backend"

    def test_layered(self, client):
        data = client.get("/api/structure/graph?layout=layered&depth=1").json()
        nodes = {n["id"]: n for n in data["graph"]["nodes"]}
        assert nodes["src/App.tsx"]["data"]["rank"] == 1


# ---------------------------------------------------------------------------
# Analysis
# ---------------------------------------------------------------------------

class TestAnalysis:
    def test_empty_cache(self, client):
        data = client.get("/api/analysis").json()
        assert data["available"] is False
        assert client.get("/api/analysis/graph").json()["available"] is False

    def test_run_cache_and_clear(self, client):
        response_text = "```json\n" + json.dumps(ANALYSIS) + "\n```\nProject: Shop"
        with patch("planview.web.server.get_analysis_llm", side_effect=_fake_llm(response_text)):
            resp = client.post("/api/analysis", json={"paths": ["src/App.tsx", "server.js"]})
        assert resp.status_code == 200
        data = resp.json()
        assert data["kind"] == "ok"
        assert data["payload"]["project_name"] == "Shop"
        edge_kinds = {e["kind"] for e in data["graph"]["edges"]}
        assert "connection:api_call" in edge_kinds

        cached = client.get("/api/analysis").json()
        assert cached["available"] is True
        assert cached["valid"] is True
        assert cached["raw_text"] == response_text

        graph = client.get("/api/analysis/graph").json()
        assert graph["available"] is True
        assert "project/backend/server.js/route/GET /items" in [n["id"] for n in graph["graph"]["nodes"]]

        assert client.delete("/api/analysis").json() == {"cleared": True}
        assert client.get("/api/analysis").json()["available"] is False

    def test_cached_result_needs_no_credentials(self, client):
        response_text = json.dumps(ANALYSIS)
        with patch("planview.web.server.get_analysis_llm", side_effect=_fake_llm(response_text)):
            client.post("/api/analysis", json={})
        with patch("planview.web.server.get_analysis_llm", side_effect=ValueError("Missing OPENAI_API_KEY")):
            resp = client.post("/api/analysis", json={})
        assert resp.status_code == 200
        assert resp.json()["kind"] == "ok"

    def test_unparseable_answer_returns_raw_graph(self, client):
        with patch("planview.web.server.get_analysis_llm", side_effect=_fake_llm("Just prose.\nSecond line.")):
            data = client.post("/api/analysis", json={"paths": ["server.js"]}).json()
        assert data["kind"] == "not_found"
        labels = [n["label"] for n in data["graph"]["nodes"]]
        assert labels == ["AI analysis", "Just prose.", "Second line."]
        assert client.get("/api/analysis").json()["available"] is False

    def test_missing_api_key_is_bad_request(self, client):
        with patch("planview.web.server.get_analysis_llm", side_effect=ValueError("Missing OPENAI_API_KEY")):
            resp = client.post("/api/analysis", json={"force": True})
        assert resp.status_code == 400
        assert "OPENAI_API_KEY" in resp.json()["error"]

    def test_path_escape_is_bad_request(self, client):
        resp = client.post("/api/analysis", json={"paths": ["../outside.py"]})
        assert resp.status_code == 400


class TestNoWorkspace:
    def test_requests_without_workspace_are_rejected(self):
        from fastapi.testclient import TestClient

        from planview.web.server import app

        with patch("planview.web.server.get_settings", return_value=_settings("")):
            with TestClient(app) as c:
                resp = c.get("/api/requirements")
                assert resp.status_code == 400
                assert "WORKSPACE_PATH" in resp.json()["error"]
                assert c.get("/api/health").json()["workspace"] is None
