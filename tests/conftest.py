"""
Shared fixtures for the scoring engine tests
"""

from datetime import datetime, timedelta

import pytest

from scoring_engine.services.document_store import InMemoryDocumentStore


class FixedClock:
    """Deterministic clock; advance() moves it forward"""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock():
    return FixedClock(datetime(2026, 1, 31, 12, 0, 0))


@pytest.fixture
def store():
    return InMemoryDocumentStore()
