"""Shared pytest fixtures for the cooldown engine tests.

This module provides:
- src/ on sys.path for flat-module imports
- A ManualClock so expiry is deterministic (tests never sleep)
- Pre-wired store / resolver / engine / handler fixtures
- Mock relationship sources for failure-path tests
"""

from unittest.mock import MagicMock
from typing import Callable, Optional, Set
import sys
from pathlib import Path

import pytest

# Add src/ to Python path for absolute imports
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root / "src"))

from clock import ManualClock  # noqa: E402
from cooldown_store import CooldownStore  # noqa: E402
from cooldown_policy import CooldownPolicyEngine  # noqa: E402
from relationship_resolver import RelationshipResolver  # noqa: E402
from relationship_sources import (  # noqa: E402
    InMemoryGroupSource,
    InMemoryPeerListSource,
    InMemoryTeamSource,
    RelationshipSources,
)


@pytest.fixture
def clock() -> ManualClock:
    """Manual clock starting at t=1000s."""
    return ManualClock(start=1000.0)


@pytest.fixture
def store(clock: ManualClock) -> CooldownStore:
    """Empty cooldown store on the manual clock."""
    return CooldownStore(clock)


@pytest.fixture
def sources() -> RelationshipSources:
    """In-memory sources with a small, overlapping social graph.

    Type Contract:
        - team "alpha": 200, 201
        - clan "X": 300, 301 (no alliances)
        - clan "Y": 700, 701, allied with "Z"
        - clan "Z": 702
        - friends: 200 -> 201 (same as teammate), 800 -> 800, 801
    """
    return RelationshipSources(
        team=InMemoryTeamSource({"alpha": [200, 201]}),
        group=InMemoryGroupSource({
            "X": {"members": [300, 301], "alliances": []},
            "Y": {"members": [700, 701], "alliances": ["Z"]},
            "Z": {"members": [702], "alliances": []},
        }),
        peers=InMemoryPeerListSource({200: [201], 800: [800, 801]}),
    )


@pytest.fixture
def resolver(sources: RelationshipSources) -> RelationshipResolver:
    return RelationshipResolver(sources)


@pytest.fixture
def engine(store: CooldownStore, resolver: RelationshipResolver) -> CooldownPolicyEngine:
    """Policy engine with a one hour cooldown."""
    return CooldownPolicyEngine(store=store, resolver=resolver, cooldown_seconds=3600.0)


@pytest.fixture
def failing_source_factory() -> Callable[[Exception], MagicMock]:
    """Build a mock source whose every lookup raises the given exception."""

    def _make(error: Exception) -> MagicMock:
        source = MagicMock()
        source.members_of.side_effect = error
        source.are_teammates.side_effect = error
        source.direct_group_of.side_effect = error
        source.allies_of.side_effect = error
        source.peers_of.side_effect = error
        return source

    return _make


class StaticPeers:
    """Peer list source returning a fixed answer for every actor."""

    def __init__(self, peers: Optional[Set[int]]) -> None:
        self.peers = peers
        self.calls = 0

    def peers_of(self, actor_id: int) -> Optional[Set[int]]:
        self.calls += 1
        return self.peers


@pytest.fixture
def static_peers() -> Callable[[Optional[Set[int]]], StaticPeers]:
    return StaticPeers
