"""Tests for the usage endpoint and its stats reader."""

import json
from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from api.src.config import Settings
from api.src.main import app
from api.src.services import usage
from api.src.services.usage import UsageUnavailableError, read_usage

NOW = datetime(2026, 3, 14, 15, 0, tzinfo=timezone.utc)

def write_stats(path, **overrides):
    data = {
        "requestCount": 10,
        "tokenCount": 25000,
        "totalCost": 12.5,
        "lastReset": "2026-03-14T00:00:05Z",
        "dailyLimit": 50,
        "tokensPerMinute": 100000,
        "requestsPerMinute": 60,
    }
    data.update(overrides)
    path.write_text(json.dumps(data))
    return path

def test_read_usage_reports_counters_and_percentages(tmp_path):
    path = write_stats(tmp_path / "stats.json")
    config = Settings(max_generations_per_day=40, max_daily_cost=50.0)

    report = read_usage(str(path), now=lambda: NOW, config=config)

    assert report["request_count"] == 10
    assert report["token_count"] == 25000
    assert report["limits"]["generations_per_day"] == 40
    assert report["usage_percent"]["daily_generations"] == 25.0
    assert report["usage_percent"]["daily_cost"] == 25.0

def test_previous_day_counters_read_as_zero(tmp_path):
    path = write_stats(tmp_path / "stats.json", lastReset="2026-03-13T09:00:00Z")

    report = read_usage(str(path), now=lambda: NOW, config=Settings())

    assert report["request_count"] == 0
    assert report["total_cost"] == 0.0
    assert report["usage_percent"]["daily_generations"] == 0.0

def test_missing_stats_file_reads_as_zero(tmp_path):
    report = read_usage(str(tmp_path / "absent.json"), now=lambda: NOW, config=Settings())

    assert report["request_count"] == 0
    assert report["last_reset"] is None

def test_corrupt_stats_file_is_an_error(tmp_path):
    path = tmp_path / "stats.json"
    path.write_text("{oops")

    with pytest.raises(UsageUnavailableError):
        read_usage(str(path), now=lambda: NOW, config=Settings())

def test_usage_endpoint(tmp_path, monkeypatch):
    path = write_stats(tmp_path / "stats.json", lastReset=datetime.now(timezone.utc).isoformat())
    monkeypatch.setattr(usage.settings, "stats_file", str(path))

    response = TestClient(app).get("/api/usage")

    assert response.status_code == 200
    body = response.json()
    assert body["request_count"] == 10
    assert body["limits"]["daily_cost"] == usage.settings.max_daily_cost

def test_usage_endpoint_unreadable_stats(tmp_path, monkeypatch):
    path = tmp_path / "stats.json"
    path.write_text("not json")
    monkeypatch.setattr(usage.settings, "stats_file", str(path))

    response = TestClient(app).get("/api/usage")

    assert response.status_code == 503
