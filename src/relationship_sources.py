# Copyright (c) 2025 Stephen Clau
#
# This file is part of Kill Cooldown.
#
# Kill Cooldown is dual-licensed:
#
# 1. GNU Affero General Public License v3.0 (AGPL-3.0)
#    See LICENSE file for full terms
#
# 2. Commercial License
#    For proprietary use without AGPL requirements
#    Contact: licensing@laudiversified.com
#
# SPDX-License-Identifier: AGPL-3.0-only OR Commercial

"""
Relationship sources: who is related to a given actor.

Three independent capabilities, each optional:
- TeamSource: in-game team membership
- GroupSource: clan membership plus allied clans
- PeerListSource: friend lists

Sources are owned by external systems. The in-memory implementations here are
populated from relationships.yml and are safe to read from multiple threads.
"""

from __future__ import annotations
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Protocol, Set, runtime_checkable
import threading
import yaml
import structlog

logger = structlog.get_logger()


class SourceUnavailableError(Exception):
    """Raised by a relationship source that cannot answer right now."""
    pass


@runtime_checkable
class TeamSource(Protocol):
    """Team membership lookups."""

    def members_of(self, actor_id: int) -> Optional[Set[int]]:
        """Members of the actor's team (including the actor), or None if no team."""
        ...

    def are_teammates(self, actor_id: int, other_id: int) -> bool:
        ...


@runtime_checkable
class GroupSource(Protocol):
    """Clan membership and alliance lookups."""

    def direct_group_of(self, actor_id: int) -> Optional[str]:
        ...

    def members_of(self, group_tag: str) -> Set[int]:
        ...

    def allies_of(self, group_tag: str) -> Set[str]:
        ...


@runtime_checkable
class PeerListSource(Protocol):
    """Friend list lookups."""

    def peers_of(self, actor_id: int) -> Optional[Set[int]]:
        ...


def parse_actor_id(token: Any) -> Optional[int]:
    """
    Parse an actor id leniently.

    Accepts ints and numeric strings. Anything else (bools, negatives,
    garbage) yields None so callers can skip the entry.
    """
    if isinstance(token, bool):
        return None
    if isinstance(token, int):
        return token if token >= 0 else None
    if isinstance(token, str):
        text = token.strip()
        if text.isdigit():
            return int(text)
    return None


def _parse_actor_ids(tokens: Optional[Iterable[Any]]) -> Set[int]:
    ids: Set[int] = set()
    if not tokens:
        return ids
    for token in tokens:
        actor_id = parse_actor_id(token)
        if actor_id is None:
            logger.debug("relationship_member_skipped", token=str(token)[:50])
            continue
        ids.add(actor_id)
    return ids


class InMemoryTeamSource:
    """Team source backed by a dict of team id -> member ids."""

    def __init__(self, teams: Optional[Dict[Any, Iterable[Any]]] = None) -> None:
        self._lock = threading.Lock()
        self._teams: Dict[str, Set[int]] = {}
        self._team_of: Dict[int, str] = {}
        for team_id, members in (teams or {}).items():
            self.set_team(str(team_id), members)

    def set_team(self, team_id: str, members: Iterable[Any]) -> None:
        """Create or replace a team. An actor belongs to at most one team."""
        member_ids = _parse_actor_ids(members)
        with self._lock:
            for old_member in self._teams.get(team_id, set()):
                self._team_of.pop(old_member, None)
            for member_id in member_ids:
                previous = self._team_of.get(member_id)
                if previous is not None and previous != team_id:
                    self._teams[previous].discard(member_id)
                self._team_of[member_id] = team_id
            self._teams[team_id] = member_ids

    def remove_team(self, team_id: str) -> None:
        with self._lock:
            for member_id in self._teams.pop(team_id, set()):
                self._team_of.pop(member_id, None)

    def members_of(self, actor_id: int) -> Optional[Set[int]]:
        with self._lock:
            team_id = self._team_of.get(actor_id)
            if team_id is None:
                return None
            return set(self._teams[team_id])

    def are_teammates(self, actor_id: int, other_id: int) -> bool:
        with self._lock:
            team_id = self._team_of.get(actor_id)
            return team_id is not None and self._team_of.get(other_id) == team_id


class InMemoryGroupSource:
    """
    Clan source backed by clan records.

    Each record mirrors what clan plugins hand out:
        {"members": [ids...], "alliances": [tags...]}
    Member tokens that do not parse as ids are skipped.
    """

    def __init__(self, clans: Optional[Dict[str, Dict[str, Any]]] = None) -> None:
        self._lock = threading.Lock()
        self._members: Dict[str, Set[int]] = {}
        self._alliances: Dict[str, Set[str]] = {}
        self._clan_of: Dict[int, str] = {}
        for tag, record in (clans or {}).items():
            self.set_clan(
                str(tag),
                (record or {}).get("members", []),
                (record or {}).get("alliances", []),
            )

    def set_clan(
        self,
        tag: str,
        members: Iterable[Any],
        alliances: Optional[Iterable[Any]] = None,
    ) -> None:
        """Create or replace a clan record."""
        member_ids = _parse_actor_ids(members)
        ally_tags = {str(t) for t in (alliances or []) if t is not None and str(t)}
        with self._lock:
            for old_member in self._members.get(tag, set()):
                if self._clan_of.get(old_member) == tag:
                    del self._clan_of[old_member]
            for member_id in member_ids:
                self._clan_of[member_id] = tag
            self._members[tag] = member_ids
            self._alliances[tag] = ally_tags

    def get_clan(self, tag: str) -> Optional[Dict[str, Any]]:
        """Clan record as a plain dict, or None if unknown."""
        with self._lock:
            if tag not in self._members:
                return None
            return {
                "tag": tag,
                "members": sorted(self._members[tag]),
                "alliances": sorted(self._alliances.get(tag, set())),
            }

    def direct_group_of(self, actor_id: int) -> Optional[str]:
        with self._lock:
            return self._clan_of.get(actor_id)

    def members_of(self, group_tag: str) -> Set[int]:
        with self._lock:
            return set(self._members.get(group_tag, set()))

    def allies_of(self, group_tag: str) -> Set[str]:
        with self._lock:
            return set(self._alliances.get(group_tag, set()))


class InMemoryPeerListSource:
    """Friend-list source backed by a dict of actor id -> friend ids."""

    def __init__(self, friends: Optional[Dict[Any, Iterable[Any]]] = None) -> None:
        self._lock = threading.Lock()
        self._friends: Dict[int, Set[int]] = {}
        for actor_token, peers in (friends or {}).items():
            actor_id = parse_actor_id(actor_token)
            if actor_id is None:
                logger.debug("friend_list_owner_skipped", token=str(actor_token)[:50])
                continue
            self._friends[actor_id] = _parse_actor_ids(peers)

    def add_friend(self, actor_id: int, friend_id: int) -> None:
        with self._lock:
            self._friends.setdefault(actor_id, set()).add(friend_id)

    def remove_friend(self, actor_id: int, friend_id: int) -> None:
        with self._lock:
            self._friends.get(actor_id, set()).discard(friend_id)

    def peers_of(self, actor_id: int) -> Optional[Set[int]]:
        with self._lock:
            peers = self._friends.get(actor_id)
            return set(peers) if peers is not None else None


class RelationshipSources:
    """Bundle of the three optional sources."""

    def __init__(
        self,
        team: Optional[TeamSource] = None,
        group: Optional[GroupSource] = None,
        peers: Optional[PeerListSource] = None,
    ) -> None:
        self.team = team
        self.group = group
        self.peers = peers

    def available(self) -> list[str]:
        """Names of the sources that are present."""
        names = []
        if self.team is not None:
            names.append("team")
        if self.group is not None:
            names.append("group")
        if self.peers is not None:
            names.append("peers")
        return names


def load_relationships(path: Path) -> RelationshipSources:
    """
    Load in-memory relationship sources from a YAML file.

    Expected layout:
        teams:   {team_id: [actor ids]}
        clans:   {TAG: {members: [ids], alliances: [TAGS]}}
        friends: {actor_id: [actor ids]}

    A missing file or section leaves that source absent (None).

    Args:
        path: Path to relationships.yml

    Returns:
        RelationshipSources with whichever sources were configured

    Raises:
        ValueError: If the file is not a YAML mapping
        yaml.YAMLError: If the file is invalid YAML
    """
    if not path.exists():
        logger.warning("relationships_file_not_found", path=str(path))
        return RelationshipSources()

    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ValueError(
            f"{path} must contain a mapping, got {type(data).__name__}"
        )

    teams = data.get("teams")
    clans = data.get("clans")
    friends = data.get("friends")

    sources = RelationshipSources(
        team=InMemoryTeamSource(teams) if isinstance(teams, dict) else None,
        group=InMemoryGroupSource(clans) if isinstance(clans, dict) else None,
        peers=InMemoryPeerListSource(friends) if isinstance(friends, dict) else None,
    )

    logger.info(
        "relationships_loaded",
        path=str(path),
        sources=sources.available(),
    )
    return sources
