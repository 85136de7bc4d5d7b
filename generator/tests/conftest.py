"""Shared fixtures for generator tests."""

from datetime import datetime, timezone

import pytest

from generator.src.models.usage import AdmissionLimits
from generator.src.services.admission import AdmissionController
from generator.src.services.stats_store import MemoryStatsStore
from generator.tests.fakes import FakeClock, RecordingSleep

@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 3, 14, 12, 0, 0, tzinfo=timezone.utc))

@pytest.fixture
def sleep(clock):
    return RecordingSleep(clock)

@pytest.fixture
def store():
    return MemoryStatsStore()

@pytest.fixture
def make_controller(store, clock, sleep):
    def factory(**limits):
        return AdmissionController(
            store,
            AdmissionLimits(**limits),
            clock=clock,
            sleep=sleep,
        )
    return factory
