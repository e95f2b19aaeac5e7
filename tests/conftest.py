from datetime import date
from typing import Optional

import pytest

from trt_tracker.core.errors import TransportFailure
from trt_tracker.core.models import Protocol, ProtocolSettings, SyringeConfiguration, UserSettings
from trt_tracker.core.session import TrackerSession


class MemoryRepository:
    """In-memory document store; `fail` makes every call raise TransportFailure."""

    def __init__(self, document: Optional[dict] = None):
        self.document = document
        self.saves = 0
        self.fail = False

    def load(self):
        if self.fail:
            raise TransportFailure("store unreachable")
        return self.document

    def save(self, document: dict):
        if self.fail:
            raise TransportFailure("store unreachable")
        self.document = document
        self.saves += 1


@pytest.fixture
def make_entry():
    def _make(protocol="E2D", start=date(2024, 1, 1), concentration=200.0, fill=0.3,
              volume=1.0, units=100.0, color="#f59e0b"):
        return ProtocolSettings(
            protocol=Protocol(protocol),
            concentration_mg_per_ml=concentration,
            syringe=SyringeConfiguration(volume_ml=volume, total_units=units, dead_space_ml=0.05),
            syringe_fill_amount=fill,
            start_date=start,
            display_color=color,
        )
    return _make


@pytest.fixture
def make_settings():
    def _make(*protocols):
        return UserSettings(
            treatment_start_date=min(p.start_date for p in protocols),
            protocols=list(protocols),
        )
    return _make


@pytest.fixture
def repository():
    return MemoryRepository()


@pytest.fixture
def session(repository):
    s = TrackerSession(repository, today=lambda: date(2024, 2, 10))
    s.load()
    return s
