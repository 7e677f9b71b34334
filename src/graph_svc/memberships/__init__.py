"""Membership edges and traversal."""

from .types import Membership, MembershipState, TraversalDirection, TraversalResult
from .store import MembershipStore
from .traversal import ExpansionMemo, TraversalEngine

__all__ = [
    "Membership",
    "MembershipState",
    "TraversalDirection",
    "TraversalResult",
    "MembershipStore",
    "ExpansionMemo",
    "TraversalEngine",
]
