"""Client-side caching policies published by the service."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from ..config import CachePolicyConfig
from ..descriptor.types import SubjectKind


@dataclass(frozen=True, slots=True)
class CachePolicy:
    """How long callers may cache subjects of the given kinds."""
    subject_kinds: tuple[SubjectKind, ...]  # In configured order
    ttl_seconds: float
    max_entries: int

    def applies_to(self, kind: SubjectKind) -> bool:
        return kind in self.subject_kinds

    def to_dict(self) -> dict[str, Any]:
        return {
            "subject_kinds": [k.value for k in self.subject_kinds],
            "ttl_seconds": self.ttl_seconds,
            "max_entries": self.max_entries,
        }


@dataclass(frozen=True, slots=True)
class CachePolicySet:
    """Everything a caller needs to size its own subject cache."""
    cache_size: int
    policies: tuple[CachePolicy, ...] = ()

    def policy_for(self, kind: SubjectKind) -> CachePolicy | None:
        """First policy covering a subject kind."""
        for policy in self.policies:
            if policy.applies_to(kind):
                return policy
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "cache_size": self.cache_size,
            "policies": [p.to_dict() for p in self.policies],
        }


class CachePolicyPublisher:
    """
    Read-only view of the configured caching policies.

    The set is built once from configuration; get_cache_policies never
    mutates anything.
    """

    def __init__(self, config: CachePolicyConfig) -> None:
        self._policies = CachePolicySet(
            cache_size=config.cache_size,
            policies=tuple(
                CachePolicy(
                    subject_kinds=tuple(dict.fromkeys(SubjectKind(k) for k in entry.subject_kinds)),
                    ttl_seconds=float(entry.ttl_seconds),
                    max_entries=int(entry.max_entries),
                )
                for entry in config.policies
            ),
        )

    def get_cache_policies(self) -> CachePolicySet:
        return self._policies
