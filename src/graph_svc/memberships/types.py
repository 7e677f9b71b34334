"""Membership types - edges, directions, states and traversal results."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ..errors import InvalidArgumentError
from ..subjects.types import Subject


class TraversalDirection(str, Enum):
    """Direction of a membership walk."""
    UNKNOWN = "unknown"  # Unset - never walked
    UP = "up"            # Toward containers / ancestors
    DOWN = "down"        # Toward members / descendants

    @classmethod
    def parse(cls, value: str | TraversalDirection | None, default: TraversalDirection | None = None) -> TraversalDirection:
        """
        Parse a direction, applying an explicit default for None.

        UNKNOWN (or an unrecognized value) is rejected, never coerced.

        Raises:
            InvalidArgumentError: If the direction is unset or invalid
        """
        if value is None:
            if default is None:
                raise InvalidArgumentError("Traversal direction is required")
            value = default
        try:
            direction = value if isinstance(value, cls) else cls(str(value).lower())
        except ValueError:
            raise InvalidArgumentError(f"Invalid traversal direction: '{value}'") from None
        if direction is cls.UNKNOWN:
            raise InvalidArgumentError("Traversal direction must be 'up' or 'down'")
        return direction


class MembershipState(str, Enum):
    """Derived activity of a subject."""
    ACTIVE = "active"
    INACTIVE = "inactive"


@dataclass(frozen=True, slots=True)
class Membership:
    """A directed edge: member is contained by container."""
    member_descriptor: str
    container_descriptor: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "member_descriptor": self.member_descriptor,
            "container_descriptor": self.container_descriptor,
        }


@dataclass(slots=True)
class EdgeRecord:
    """Stored edge state. Removal deactivates rather than forgets."""
    active: bool = True
    updated_at: str | None = None


@dataclass(frozen=True, slots=True)
class TraversalResult:
    """
    Outcome of walking from one seed.

    ``reachable`` never includes the seed. ``is_incomplete`` is set when the
    depth bound stopped the walk while edges remained below it.
    """
    subject: Subject
    reachable: frozenset[str] = field(default_factory=frozenset)
    is_incomplete: bool = False
    incompleteness_reason: str | None = None
    depth: int = 0  # Levels actually expanded

    @property
    def is_complete(self) -> bool:
        return not self.is_incomplete

    def to_dict(self) -> dict[str, Any]:
        return {
            "subject_descriptor": self.subject.descriptor,
            "subject": self.subject.to_dict(),
            "reachable": sorted(self.reachable),
            "is_complete": not self.is_incomplete,
            "incompleteness_reason": self.incompleteness_reason,
            "depth": self.depth,
        }
