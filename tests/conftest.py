from __future__ import annotations

import pytest

from rook.launcher import Launcher
from tests._fixtures.hooks import RecordingSpawner


@pytest.fixture
def spawner() -> RecordingSpawner:
    """Record launches instead of forking real processes."""
    return RecordingSpawner()


@pytest.fixture
def launcher(spawner: RecordingSpawner) -> Launcher:
    return Launcher(spawner=spawner)
