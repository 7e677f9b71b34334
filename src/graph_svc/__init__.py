"""
Graph Service - Membership Graph Resolution Engine

Resolves and traverses an organization's identity graph:
- Opaque, stable descriptors for users, groups and scopes
- Membership edges between members and their containers
- Bounded-depth ancestor/descendant traversal that tolerates cycles
- Batched lookups with per-entry failures
"""

__version__ = "0.1.0"
