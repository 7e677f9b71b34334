"""Shared test fixtures for graph service tests.

The ``org`` fixture builds a small organization:

    fabrikam (scope, organization)
      web (scope, project)
        web-admins (group)  <- alice, org-admins
        web-contributors (group)  <- bob, web-admins
      org-admins (group)  <- carol
"""

from __future__ import annotations

import pytest

from graph_svc.config import Config
from graph_svc.loader import GraphLoader, LoadedGraph
from graph_svc.memberships.store import MembershipStore
from graph_svc.memberships.traversal import TraversalEngine
from graph_svc.service import GraphService, build_service
from graph_svc.subjects.store import SubjectStore
from graph_svc.subjects.types import CreationContext
from graph_svc.telemetry.emitter import TelemetryEmitter
from graph_svc.telemetry.events import CallerIdentity


ORG_GRAPH = {
    "scopes": [
        {"id": "fabrikam", "display_name": "Fabrikam", "scope_type": "organization"},
        {"id": "web", "display_name": "Web", "scope_type": "project", "parent": "fabrikam"},
    ],
    "groups": [
        {"id": "org-admins", "display_name": "Project Collection Administrators", "scope": "fabrikam"},
        {"id": "web-admins", "display_name": "Project Administrators", "scope": "web"},
        {"id": "web-contributors", "display_name": "Contributors", "scope": "web"},
    ],
    "users": [
        {"id": "alice", "display_name": "Alice", "principal_name": "alice@fabrikam.com", "origin": "aad"},
        {"id": "bob", "display_name": "Bob", "principal_name": "bob@fabrikam.com", "origin": "aad"},
        {"id": "carol", "display_name": "Carol", "origin": "aad", "origin_id": "0d6f7a54-2f34-4b1e-9c59-1d1f2f3a4b5c"},
    ],
    "memberships": [
        {"member": "alice", "container": "web-admins"},
        {"member": "org-admins", "container": "web-admins"},
        {"member": "carol", "container": "org-admins"},
        {"member": "bob", "container": "web-contributors"},
        {"member": "web-admins", "container": "web-contributors"},
    ],
}


# =============================================================================
# Store Fixtures
# =============================================================================

@pytest.fixture
def subjects() -> SubjectStore:
    return SubjectStore()


@pytest.fixture
def memberships(subjects) -> MembershipStore:
    return MembershipStore(subjects)


@pytest.fixture
def make_user(subjects):
    """Create users by name in the bare ``subjects`` store."""
    def _make(name: str):
        return subjects.create("user", CreationContext(display_name=name, principal_name=f"{name}@fabrikam.com"))
    return _make


@pytest.fixture
def make_group(subjects):
    """Create groups by name in the bare ``subjects`` store."""
    def _make(name: str, scope_descriptor: str | None = None):
        return subjects.create("group", CreationContext(display_name=name), scope_descriptor=scope_descriptor)
    return _make


# =============================================================================
# Graph Fixtures
# =============================================================================

@pytest.fixture
def org() -> LoadedGraph:
    """The small organization described in the module docstring."""
    return GraphLoader().load_dict(ORG_GRAPH)


@pytest.fixture
def engine(org) -> TraversalEngine:
    return TraversalEngine(org.memberships, max_depth=10)


# =============================================================================
# Service Fixtures
# =============================================================================

@pytest.fixture
def telemetry() -> TelemetryEmitter:
    return TelemetryEmitter()


@pytest.fixture
def service(org, telemetry) -> GraphService:
    return build_service(Config(), graph=org, telemetry=telemetry)


@pytest.fixture
def caller() -> CallerIdentity:
    return CallerIdentity(
        service_id="test-service",
        user_id="test-user",
        team="test-team",
    )
