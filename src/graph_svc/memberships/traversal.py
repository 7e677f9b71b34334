"""Bounded-depth membership traversal.

Membership graphs are not guaranteed acyclic (a group can end up inside
itself through misconfiguration or migrations), so every walk is an
explicit breadth-first worklist with a visited set keyed by storage key.
Nothing here recurses.

Within one call, seeds are walked concurrently. Edge reads are shared
through an ExpansionMemo: the first walker to claim a storage key fetches
its edges, later walkers await the published result. Depth bookkeeping
stays per seed.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass
from typing import Iterable

from ..errors import EntryError, InvalidArgumentError, NotFoundError
from .store import MembershipStore
from .types import TraversalDirection, TraversalResult

logger = logging.getLogger(__name__)

DEPTH_LIMIT_REASON = "depth_limit"


class ExpansionMemo:
    """
    Per-call record of expanded storage keys.

    ``claim`` is the test-and-set primitive: exactly one caller wins a key
    and becomes responsible for reading its edges.
    """

    def __init__(self, edges: MembershipStore, direction: TraversalDirection) -> None:
        self._edges = edges
        self._direction = direction
        self._lock = threading.Lock()
        self._results: dict[str, asyncio.Future] = {}
        self.reads = 0

    def claim(self, storage_key: str) -> bool:
        """Claim a key if nobody has. Returns True for the winner only."""
        with self._lock:
            if storage_key in self._results:
                return False
            self._results[storage_key] = asyncio.get_running_loop().create_future()
            return True

    @property
    def claimed(self) -> int:
        with self._lock:
            return len(self._results)

    async def expand_many(self, storage_keys: list[str]) -> dict[str, list[str]]:
        """Neighbour keys for each key, reading only keys this caller claimed."""
        owned = [k for k in storage_keys if self.claim(k)]

        if owned:
            try:
                fetched = await asyncio.to_thread(self._edges.neighbours_many, owned, self._direction)
            except BaseException as e:
                for key in owned:
                    future = self._results[key]
                    if not future.done():
                        if isinstance(e, Exception):
                            future.set_exception(e)
                        else:
                            future.cancel()
                raise
            self.reads += 1
            for key in owned:
                self._results[key].set_result(fetched.get(key, []))

        # Shield so one cancelled walker does not cancel a shared result
        return {k: await asyncio.shield(self._results[k]) for k in storage_keys}


@dataclass
class TraversalEngine:
    """
    Breadth-first walker over the membership edge relation.

    Usage:
        engine = TraversalEngine(memberships)
        results = await engine.traverse({seed}, TraversalDirection.UP, max_depth=2)
    """
    memberships: MembershipStore
    max_depth: int = 10
    max_concurrency: int = 8

    async def traverse(
        self,
        seeds: Iterable[str],
        direction: TraversalDirection | str,
        max_depth: int,
    ) -> dict[str, TraversalResult | EntryError]:
        """
        Walk from every seed.

        Returns one entry per distinct seed. Seeds that do not resolve get an
        EntryError in their slot; the call itself only fails for an invalid
        direction or depth.

        Raises:
            InvalidArgumentError: If direction is unset/invalid or depth out of range
        """
        direction = TraversalDirection.parse(direction)
        self._check_depth(max_depth)

        unique = list(dict.fromkeys(seeds))
        memo = ExpansionMemo(self.memberships, direction)
        semaphore = asyncio.Semaphore(max(1, self.max_concurrency))

        async def run(seed: str) -> TraversalResult | EntryError:
            async with semaphore:
                try:
                    return await self._walk(seed, direction, max_depth, memo)
                except (InvalidArgumentError, NotFoundError) as e:
                    return EntryError.from_exception(seed, e)

        results = await asyncio.gather(*(run(s) for s in unique))
        logger.debug(f"Traversal {direction.value} depth={max_depth}: {len(unique)} seeds, {memo.reads} reads, {memo.claimed} nodes")
        return dict(zip(unique, results))

    async def traverse_one(
        self,
        seed: str,
        direction: TraversalDirection | str,
        max_depth: int,
    ) -> TraversalResult:
        """
        Walk from a single seed, raising instead of returning an entry error.

        Raises:
            InvalidArgumentError: Invalid direction, depth or descriptor
            NotFoundError: If the seed does not exist
        """
        direction = TraversalDirection.parse(direction)
        self._check_depth(max_depth)
        memo = ExpansionMemo(self.memberships, direction)
        return await self._walk(seed, direction, max_depth, memo)

    async def _walk(
        self,
        seed: str,
        direction: TraversalDirection,
        max_depth: int,
        memo: ExpansionMemo,
    ) -> TraversalResult:
        subject = self.memberships.require_subject(seed)

        visited = {subject.storage_key}
        frontier = [subject.storage_key]
        reached: list[str] = []
        depth = 0

        while frontier and depth < max_depth:
            # Level boundary - cancellation is delivered here
            await asyncio.sleep(0)
            expanded = await memo.expand_many(frontier)

            next_frontier = []
            for key in frontier:
                for neighbour in expanded[key]:
                    if neighbour not in visited:
                        visited.add(neighbour)
                        next_frontier.append(neighbour)

            reached.extend(next_frontier)
            frontier = next_frontier
            depth += 1

        # Frontier left over means the depth bound, not exhaustion, stopped us
        is_incomplete = False
        if frontier:
            await asyncio.sleep(0)
            expanded = await memo.expand_many(frontier)
            is_incomplete = any(expanded[key] for key in frontier)

        reachable = self.memberships.subjects.get_many(reached)
        return TraversalResult(
            subject=subject,
            reachable=frozenset(s.descriptor for s in reachable.values()),
            is_incomplete=is_incomplete,
            incompleteness_reason=DEPTH_LIMIT_REASON if is_incomplete else None,
            depth=depth,
        )

    def _check_depth(self, max_depth: int) -> None:
        if not isinstance(max_depth, int) or isinstance(max_depth, bool):
            raise InvalidArgumentError(f"Depth must be an integer, got {max_depth!r}")
        if max_depth < 1:
            raise InvalidArgumentError(f"Depth must be at least 1, got {max_depth}")
        if max_depth > self.max_depth:
            raise InvalidArgumentError(f"Depth {max_depth} exceeds maximum of {self.max_depth}")
