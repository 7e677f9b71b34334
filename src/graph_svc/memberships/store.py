"""Membership edge store - directed member -> container edges."""

from __future__ import annotations

import logging
import threading
from collections import deque
from datetime import datetime, timezone
from typing import Iterable

from ..descriptor.codec import parse_descriptor
from ..descriptor.types import Descriptor, SubjectKind
from ..errors import InvalidArgumentError, NotFoundError
from ..subjects.store import SubjectStore
from ..subjects.types import Group, Scope, Subject
from .types import EdgeRecord, Membership, MembershipState, TraversalDirection

logger = logging.getLogger(__name__)


class MembershipStore:
    """
    Thread-safe store of membership edges.

    Edges are keyed by (member storage key, container storage key) and
    indexed in both directions so that Up and Down views always agree.
    Removing an edge deactivates its record; only active edges are visible.
    """

    def __init__(self, subjects: SubjectStore, state_max_depth: int = 64) -> None:
        self.subjects = subjects
        self.state_max_depth = state_max_depth
        self._edges: dict[tuple[str, str], EdgeRecord] = {}
        self._up: dict[str, set[str]] = {}    # member -> containers
        self._down: dict[str, set[str]] = {}  # container -> members
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Descriptor handling
    # ------------------------------------------------------------------

    def require_subject(self, descriptor: str | Descriptor) -> Subject:
        """
        Decode a descriptor and fetch its subject.

        Raises:
            InvalidDescriptorError: If the descriptor is malformed
            NotFoundError: If no subject of that kind has the key
        """
        subject = self.find_subject(descriptor)
        if subject is None:
            raise NotFoundError(f"Subject not found: {descriptor}")
        return subject

    def find_subject(self, descriptor: str | Descriptor) -> Subject | None:
        """
        Decode a descriptor and fetch its subject, or None.

        A descriptor whose kind differs from the stored subject's kind
        names nothing.

        Raises:
            InvalidDescriptorError: If the descriptor is malformed
        """
        decoded = parse_descriptor(descriptor)
        subject = self.subjects.find(decoded.storage_key)
        if subject is None or subject.kind != decoded.kind:
            return None
        return subject

    # ------------------------------------------------------------------
    # Edge operations
    # ------------------------------------------------------------------

    def add(self, member_descriptor: str, container_descriptor: str) -> Membership:
        """
        Add an edge. Idempotent.

        Raises:
            InvalidArgumentError: Self-membership, a user container, or a scope member
            NotFoundError: If either side does not exist
        """
        member = parse_descriptor(member_descriptor)
        container = parse_descriptor(container_descriptor)

        if member.storage_key == container.storage_key:
            raise InvalidArgumentError("A subject cannot be a member of itself")
        if not container.kind.can_contain:
            raise InvalidArgumentError(f"A {container.kind.value} cannot be a container")
        if member.kind == SubjectKind.SCOPE:
            raise InvalidArgumentError("A scope cannot be a member")

        member_subject = self.require_subject(member)
        container_subject = self.require_subject(container)
        edge_key = (member.storage_key, container.storage_key)

        with self._lock:
            record = self._edges.get(edge_key)
            if record is None or not record.active:
                self._edges[edge_key] = EdgeRecord(active=True, updated_at=_now())
                self._up.setdefault(member.storage_key, set()).add(container.storage_key)
                self._down.setdefault(container.storage_key, set()).add(member.storage_key)
                logger.info(f"Membership added: {member_subject.descriptor} -> {container_subject.descriptor}")

        return Membership(member_subject.descriptor, container_subject.descriptor)

    def remove(self, member_descriptor: str, container_descriptor: str) -> None:
        """
        Remove an edge. Removing an absent edge is a no-op.

        Raises:
            InvalidDescriptorError: If either descriptor is malformed
        """
        member = self.find_subject(member_descriptor)
        container = self.find_subject(container_descriptor)
        if member is None or container is None:
            return
        self._deactivate(member.storage_key, container.storage_key)

    def exists(self, member_descriptor: str, container_descriptor: str) -> bool:
        """
        Check whether an active edge exists.

        Absence is the False result, never an error. A descriptor naming no
        stored subject of its kind is absent too.

        Raises:
            InvalidDescriptorError: If either descriptor is malformed
        """
        member = self.find_subject(member_descriptor)
        container = self.find_subject(container_descriptor)
        if member is None or container is None:
            return False
        return self._active(member.storage_key, container.storage_key)

    def get(self, member_descriptor: str, container_descriptor: str) -> Membership:
        """
        Get an edge.

        Raises:
            InvalidDescriptorError: If either descriptor is malformed
            NotFoundError: If either subject or the edge does not exist
        """
        member = self.find_subject(member_descriptor)
        container = self.find_subject(container_descriptor)
        if member is None or container is None or not self._active(member.storage_key, container.storage_key):
            raise NotFoundError(f"Membership not found: {member_descriptor} -> {container_descriptor}")
        return Membership(member.descriptor, container.descriptor)

    def list_edges(self, subject_descriptor: str, direction: TraversalDirection) -> list[Membership]:
        """
        Direct (depth 1) edges of a subject.

        Up lists the containers of the subject; Down lists its members.
        """
        direction = TraversalDirection.parse(direction)
        subject = self.require_subject(subject_descriptor)
        neighbours = self.subjects.get_many(self.neighbour_keys(subject.storage_key, direction))

        if direction == TraversalDirection.UP:
            return [Membership(subject.descriptor, n.descriptor) for n in neighbours.values()]
        return [Membership(n.descriptor, subject.descriptor) for n in neighbours.values()]

    def remove_all(self, subject_descriptor: str, direction: TraversalDirection) -> int:
        """Remove every direct edge of a subject in one direction. Returns count removed."""
        direction = TraversalDirection.parse(direction)
        key = self.require_subject(subject_descriptor).storage_key
        removed = 0
        for other in self.neighbour_keys(key, direction):
            if direction == TraversalDirection.UP:
                removed += self._deactivate(key, other)
            else:
                removed += self._deactivate(other, key)
        return removed

    # ------------------------------------------------------------------
    # Storage-key level reads (used by traversal)
    # ------------------------------------------------------------------

    def neighbour_keys(self, storage_key: str, direction: TraversalDirection) -> list[str]:
        """Storage keys one edge away in the given direction."""
        index = self._up if direction == TraversalDirection.UP else self._down
        with self._lock:
            return list(index.get(storage_key, ()))

    def neighbours_many(self, storage_keys: Iterable[str], direction: TraversalDirection) -> dict[str, list[str]]:
        """Neighbour keys for several nodes in one read."""
        index = self._up if direction == TraversalDirection.UP else self._down
        with self._lock:
            return {k: list(index.get(k, ())) for k in storage_keys}

    # ------------------------------------------------------------------
    # Derived state
    # ------------------------------------------------------------------

    def compute_state(self, subject_descriptor: str) -> MembershipState:
        """
        Active unless the subject or anything above it is disabled.

        Walks Up breadth-first with a visited set so cyclic memberships
        terminate. A group's enclosing scope and a scope's parent scope
        count as ancestors.
        """
        subject = self.require_subject(subject_descriptor)
        visited = {subject.storage_key}
        queue: deque[tuple[Subject, int]] = deque([(subject, 0)])

        while queue:
            current, depth = queue.popleft()
            if current.disabled:
                return MembershipState.INACTIVE
            if depth >= self.state_max_depth:
                logger.warning(f"Membership state walk for {subject.descriptor} hit depth bound {self.state_max_depth}")
                continue

            parents = self.neighbour_keys(current.storage_key, TraversalDirection.UP)
            scope_key = self._enclosing_scope_key(current)
            if scope_key is not None:
                parents.append(scope_key)

            for key in parents:
                if key in visited:
                    continue
                visited.add(key)
                parent = self.subjects.find(key)
                if parent is not None:
                    queue.append((parent, depth + 1))

        return MembershipState.ACTIVE

    def edge_count(self) -> int:
        with self._lock:
            return sum(1 for record in self._edges.values() if record.active)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _active(self, member_key: str, container_key: str) -> bool:
        with self._lock:
            record = self._edges.get((member_key, container_key))
            return record is not None and record.active

    def _deactivate(self, member_key: str, container_key: str) -> int:
        with self._lock:
            record = self._edges.get((member_key, container_key))
            if record is None or not record.active:
                return 0
            record.active = False
            record.updated_at = _now()
            self._up.get(member_key, set()).discard(container_key)
            self._down.get(container_key, set()).discard(member_key)
        logger.info(f"Membership removed: {member_key} -> {container_key}")
        return 1

    @staticmethod
    def _enclosing_scope_key(subject: Subject) -> str | None:
        if isinstance(subject, Group):
            scope = subject.scope_descriptor
        elif isinstance(subject, Scope):
            scope = subject.parent_scope_descriptor
        else:
            return None
        return parse_descriptor(scope).storage_key if scope else None


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()
