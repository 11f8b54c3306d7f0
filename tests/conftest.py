"""
Shared fixtures for acceptance and integration tests.

Every test gets a fully wired in-memory application driven by a manual clock.
"""

import os
import pytest
from datetime import datetime, timedelta, timezone

from adocao.app import create_engine
from adocao.config import Settings
from adocao.models.entities import Area
from adocao.models.enums import AreaStatus
from adocao.services.areas import InMemoryAreaRegistry
from adocao.services.inspections import InMemoryInspectionGate

os.environ['ENVIRONMENT'] = 'test'
os.environ['OTEL_ENABLED'] = 'false'


class SteppingClock:
    """Clock moved explicitly by the test."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    return SteppingClock(datetime(2025, 4, 1, 8, 0, tzinfo=timezone.utc))


@pytest.fixture
def area_registry():
    return InMemoryAreaRegistry([
        Area(id="praca-estacao", code="BET-001", name="Praça da Estação", status=AreaStatus.AVAILABLE),
        Area(id="canteiro-central", code="BET-002", name="Canteiro Central", status=AreaStatus.AVAILABLE),
        Area(id="parque-linear", code="BET-003", name="Parque Linear", status=AreaStatus.AVAILABLE),
    ])


@pytest.fixture
def inspection_gate():
    return InMemoryInspectionGate()


@pytest.fixture
def settings():
    return Settings(
        environment="test",
        otel_enabled=False,
        lock_timeout_seconds=5.0,
        adapter_timeout_seconds=2.0
    )


@pytest.fixture
def app(settings, area_registry, inspection_gate, clock):
    """In-memory application wired like production."""
    application = create_engine(settings, areas=area_registry, gate=inspection_gate, clock=clock)
    yield application
    application.close()
