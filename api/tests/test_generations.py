"""Tests for the generation endpoints."""

from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from api.src.db.database import get_db
from api.src.main import app
from api.src.models.generation import GENERATION_STEPS, GenerationRun, GenerationStep, enabled_steps
from api.src.routes import generations

class FakeSession:
    def __init__(self):
        self.added = []
        self.committed = False

    def add(self, obj):
        self.added.append(obj)

    async def flush(self):
        pass

    async def commit(self):
        self.committed = True

@pytest.fixture
def session():
    fake = FakeSession()

    async def override():
        yield fake

    app.dependency_overrides[get_db] = override
    yield fake
    app.dependency_overrides.clear()

@pytest.fixture
def enqueue(monkeypatch):
    mock = AsyncMock()
    monkeypatch.setattr(generations, "enqueue_generation", mock)
    return mock

def test_create_generation_queues_run(session, enqueue):
    response = TestClient(app).post(
        "/api/generations",
        json={"prompt": "Build a recipe sharing app", "project_name": "Recipes"},
    )

    assert response.status_code == 202
    body = response.json()
    assert body["status"] == "queued"
    assert body["steps"] == enabled_steps(generations.settings)

    runs = [o for o in session.added if isinstance(o, GenerationRun)]
    steps = [o for o in session.added if isinstance(o, GenerationStep)]
    assert len(runs) == 1
    assert str(runs[0].id) == body["run_id"]
    assert runs[0].status == "queued"
    assert [s.step_order for s in steps] == list(range(len(steps)))
    assert all(s.status == "pending" for s in steps)
    assert session.committed

    enqueue.assert_awaited_once_with(
        run_id=body["run_id"],
        prompt="Build a recipe sharing app",
        project_name="Recipes",
    )

@pytest.mark.parametrize("payload", [
    {"prompt": "short"},
    {"prompt": "x" * 2001},
    {"prompt": "Build a recipe sharing app", "project_name": "n" * 51},
    {},
])
def test_create_generation_rejects_invalid_input(session, enqueue, payload):
    response = TestClient(app).post("/api/generations", json=payload)

    assert response.status_code == 422
    enqueue.assert_not_awaited()
    assert session.added == []

def test_enabled_steps_follow_settings():
    all_on = SimpleNamespace(enable_validation=True, enable_report=True)
    no_report = SimpleNamespace(enable_validation=True, enable_report=False)
    bare = SimpleNamespace(enable_validation=False, enable_report=False)

    assert enabled_steps(all_on) == GENERATION_STEPS
    assert enabled_steps(no_report) == GENERATION_STEPS[:-1]
    assert enabled_steps(bare) == GENERATION_STEPS[:5]
