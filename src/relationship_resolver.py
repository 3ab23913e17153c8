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
Relationship resolver.

Expands an actor into the set of actors related through team, clan/alliance
and friend-list relationships. Every source is best-effort: a source that is
absent, raises, or times out contributes nothing and never aborts the others.
"""

from __future__ import annotations
from concurrent.futures import Future, ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from typing import Callable, Dict, List, Optional, Set
import threading
import structlog

from relationship_sources import (
    GroupSource,
    PeerListSource,
    RelationshipSources,
    SourceUnavailableError,
    TeamSource,
)

logger = structlog.get_logger()


class RelationshipResolver:
    """Merge all available relationship sources into one candidate set."""

    def __init__(
        self,
        sources: Optional[RelationshipSources] = None,
        source_timeout: Optional[float] = None,
        max_workers: int = 3,
    ) -> None:
        """
        Initialize relationship resolver.

        Args:
            sources: Bundle of optional team/group/peer sources
            source_timeout: Max seconds to wait per source lookup.
                None runs lookups inline with no timeout.
            max_workers: Per-source thread pool size used when source_timeout
                is set. Also the number of lookups a source may have in
                flight before further lookups skip it.
        """
        if source_timeout is not None and source_timeout <= 0:
            raise ValueError(f"source_timeout must be > 0, got {source_timeout}")

        self.sources = sources or RelationshipSources()
        self.source_timeout = source_timeout
        self._max_workers = max_workers
        self._executors: Dict[str, ThreadPoolExecutor] = {}
        self._in_flight: Dict[str, Set[Future]] = {}
        self._executor_lock = threading.Lock()

        logger.debug(
            "relationship_resolver_initialized",
            sources=self.sources.available(),
            source_timeout=source_timeout,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def related_actors(self, actor_id: int) -> Set[int]:
        """
        Return every actor related to actor_id, excluding actor_id itself.

        Args:
            actor_id: Actor to expand

        Returns:
            Deduplicated set of related actor ids (order is meaningless)
        """
        related: Set[int] = set()
        related |= self._lookup("team", self.sources.team, self._team_members, actor_id)
        related |= self._lookup("group", self.sources.group, self._group_members, actor_id)
        related |= self._lookup("peers", self.sources.peers, self._peer_members, actor_id)

        # Sources may list the actor themselves
        related.discard(actor_id)
        return related

    def candidates(self, actor_id: int) -> List[int]:
        """Candidate set in check order: the actor first, then related actors."""
        return [actor_id, *self.related_actors(actor_id)]

    def close(self) -> None:
        """Shut down the lookup thread pools, if any were started."""
        with self._executor_lock:
            executors, self._executors = self._executors, {}
            self._in_flight = {}
        for executor in executors.values():
            executor.shutdown(wait=False, cancel_futures=True)
        if executors:
            logger.debug("relationship_resolver_closed", sources=sorted(executors))

    # ------------------------------------------------------------------
    # Per-source expansion
    # ------------------------------------------------------------------

    @staticmethod
    def _team_members(source: TeamSource, actor_id: int) -> Set[int]:
        members = source.members_of(actor_id)
        if not members:
            return set()
        # Team data can be stale between lookups; keep confirmed teammates only
        return {
            member_id
            for member_id in members
            if member_id != actor_id and source.are_teammates(actor_id, member_id)
        }

    @staticmethod
    def _group_members(source: GroupSource, actor_id: int) -> Set[int]:
        tag = source.direct_group_of(actor_id)
        if not tag:
            return set()

        members = set(source.members_of(tag) or set())
        for ally_tag in source.allies_of(tag) or set():
            if not ally_tag or ally_tag == tag:
                continue
            members |= set(source.members_of(ally_tag) or set())

        members.discard(actor_id)
        return members

    @staticmethod
    def _peer_members(source: PeerListSource, actor_id: int) -> Set[int]:
        peers = source.peers_of(actor_id)
        if not peers:
            return set()
        return {peer_id for peer_id in peers if peer_id != actor_id}

    # ------------------------------------------------------------------
    # Fault isolation
    # ------------------------------------------------------------------

    def _lookup(
        self,
        name: str,
        source: object,
        expand: Callable[..., Set[int]],
        actor_id: int,
    ) -> Set[int]:
        """Run one source expansion, degrading every failure to an empty set."""
        if source is None:
            logger.debug("relationship_source_absent", source=name, actor_id=actor_id)
            return set()

        try:
            if self.source_timeout is None:
                result = expand(source, actor_id)
            else:
                future = self._submit(name, expand, source, actor_id)
                if future is None:
                    logger.warning(
                        "relationship_source_saturated",
                        source=name,
                        actor_id=actor_id,
                        in_flight=self._max_workers,
                    )
                    return set()
                try:
                    result = future.result(timeout=self.source_timeout)
                except FutureTimeoutError:
                    future.cancel()
                    logger.warning(
                        "relationship_source_timeout",
                        source=name,
                        actor_id=actor_id,
                        timeout=self.source_timeout,
                    )
                    return set()
        except SourceUnavailableError as e:
            logger.debug(
                "relationship_source_unavailable",
                source=name,
                actor_id=actor_id,
                reason=str(e),
            )
            return set()
        except Exception as e:
            logger.warning(
                "relationship_source_failed",
                source=name,
                actor_id=actor_id,
                error=str(e),
                exc_info=True,
            )
            return set()

        logger.debug(
            "relationship_source_resolved",
            source=name,
            actor_id=actor_id,
            count=len(result),
        )
        return result

    def _submit(
        self,
        name: str,
        expand: Callable[..., Set[int]],
        source: object,
        actor_id: int,
    ) -> Optional[Future]:
        """
        Queue a lookup on the source's own pool.

        Returns None when every worker of that pool is still busy with
        earlier lookups; a hung backend then costs nothing but its own
        contribution.
        """
        with self._executor_lock:
            in_flight = self._in_flight.setdefault(name, set())
            if len(in_flight) >= self._max_workers:
                return None

            executor = self._executors.get(name)
            if executor is None:
                executor = ThreadPoolExecutor(
                    max_workers=self._max_workers,
                    thread_name_prefix=f"relationship-{name}",
                )
                self._executors[name] = executor

            future = executor.submit(expand, source, actor_id)
            in_flight.add(future)

        future.add_done_callback(lambda f: self._release(name, f))
        return future

    def _release(self, name: str, future: Future) -> None:
        with self._executor_lock:
            self._in_flight.get(name, set()).discard(future)
