from __future__ import annotations

import pytest

from scout_service.storage.memory import InMemoryScoutStorage
from tests.unit.fakes import FakeBrowser


@pytest.fixture
def storage() -> InMemoryScoutStorage:
    return InMemoryScoutStorage()


@pytest.fixture
def browser() -> FakeBrowser:
    return FakeBrowser()
