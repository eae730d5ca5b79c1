"""Shared fixtures for squad engine tests."""

from __future__ import annotations

import pytest

from app.config import Settings
from squadron.world.grid import RoomPosition
from squadron.world.sandbox import SandboxWorld


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None)


@pytest.fixture
def world() -> SandboxWorld:
    """Owned home room W1N1 with a spawn anchor, hostile neighbour W2N1
    to the west and remote room W1N2 to the north."""
    w = SandboxWorld()
    w.add_room("W1N1", owned=True, anchor=RoomPosition("W1N1", 25, 25))
    w.add_room("W2N1")
    w.add_room("W1N2")
    return w
