"""Tests for loading graph definitions."""

import json

import pytest

from graph_svc.descriptor import SubjectKind, encode_descriptor
from graph_svc.errors import InvalidArgumentError, InvalidDescriptorError
from graph_svc.loader import GraphLoader, LoadedGraph, load_graph
from graph_svc.memberships import MembershipState, MembershipStore, TraversalDirection
from graph_svc.subjects import SubjectStore


GRAPH_YAML = """
scopes:
  - id: fabrikam
    display_name: Fabrikam
    scope_type: organization
  - id: web
    display_name: Web
    scope_type: project
    parent: fabrikam

groups:
  - id: web-admins
    display_name: Project Administrators
    scope: web

users:
  - id: alice
    principal_name: alice@fabrikam.com
    origin: aad
  - id: mallory
    principal_name: mallory@fabrikam.com

memberships:
  - member: alice
    container: web-admins
  - member: mallory
    container: web-admins

disabled: [mallory]
"""


class TestLoadDict:
    def test_org_fixture(self, org):
        assert org.subjects.count() == {"scope": 2, "group": 3, "user": 3, "total": 8}
        assert org.memberships.edge_count() == 5

    def test_aliases_map_to_descriptors(self, org):
        web_admins = org.memberships.require_subject(org.descriptor("web-admins"))
        assert web_admins.kind == SubjectKind.GROUP
        assert web_admins.scope_descriptor == org.descriptor("web")

    def test_scope_parent(self, org):
        web = org.memberships.require_subject(org.descriptor("web"))
        assert web.parent_scope_descriptor == org.descriptor("fabrikam")
        assert web.scope_type == "project"

    def test_explicit_storage_key(self):
        key = "0f8fad5b-d9cb-469f-a165-70867728950e"
        graph = GraphLoader().load_dict({"users": [{"id": "u", "display_name": "U", "storage_key": key}]})
        assert graph.memberships.require_subject(graph.descriptor("u")).storage_key == key

    def test_duplicate_alias(self):
        with pytest.raises(ValueError, match="Duplicate"):
            GraphLoader().load_dict({
                "groups": [
                    {"id": "g", "display_name": "One"},
                    {"id": "g", "display_name": "Two"},
                ],
            })

    def test_duplicate_alias_creates_nothing(self):
        subjects = SubjectStore()
        graph = LoadedGraph(subjects=subjects, memberships=MembershipStore(subjects))
        loader = GraphLoader()
        loader._create(graph, SubjectKind.GROUP, {"id": "g", "display_name": "One"}, None)

        with pytest.raises(ValueError, match="Duplicate"):
            loader._create(graph, SubjectKind.GROUP, {"id": "g", "display_name": "Two"}, None)

        assert len(subjects) == 1

    def test_invalid_membership(self):
        with pytest.raises(InvalidArgumentError):
            GraphLoader().load_dict({
                "users": [{"id": "a", "display_name": "A"}, {"id": "b", "display_name": "B"}],
                "memberships": [{"member": "a", "container": "b"}],
            })

    def test_literal_descriptor_reference(self):
        key = "0f8fad5b-d9cb-469f-a165-70867728950e"
        literal = str(encode_descriptor(SubjectKind.GROUP, key))
        graph = GraphLoader().load_dict({
            "groups": [{"display_name": "Anonymous", "storage_key": key}],
            "users": [{"id": "u", "display_name": "U"}],
            "memberships": [{"member": "u", "container": literal}],
        })
        assert graph.memberships.exists(graph.descriptor("u"), literal)

    def test_unknown_alias(self):
        with pytest.raises(InvalidDescriptorError):
            GraphLoader().load_dict({
                "users": [{"id": "a", "display_name": "A"}],
                "memberships": [{"member": "a", "container": "nobody"}],
            })

    def test_empty(self):
        graph = GraphLoader().load_dict({})
        assert len(graph.subjects) == 0


class TestLoadFile:
    def test_yaml(self, tmp_path):
        path = tmp_path / "graph.yaml"
        path.write_text(GRAPH_YAML)

        graph = load_graph(path)

        alice = graph.descriptor("alice")
        mallory = graph.descriptor("mallory")
        assert graph.memberships.require_subject(mallory).disabled
        assert graph.memberships.compute_state(mallory) == MembershipState.INACTIVE
        assert graph.memberships.compute_state(alice) == MembershipState.ACTIVE
        assert [e.container_descriptor for e in graph.memberships.list_edges(alice, TraversalDirection.UP)] == [
            graph.descriptor("web-admins")
        ]

    def test_json(self, tmp_path):
        path = tmp_path / "graph.json"
        path.write_text(json.dumps({"users": [{"id": "a", "display_name": "A"}]}))

        assert len(load_graph(path).subjects) == 1

    def test_empty_yaml(self, tmp_path):
        path = tmp_path / "graph.yaml"
        path.write_text("")
        assert len(load_graph(path).subjects) == 0

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_graph(tmp_path / "nope.yaml")

    def test_state_bound_passed_through(self, tmp_path):
        path = tmp_path / "graph.yaml"
        path.write_text(GRAPH_YAML)
        assert load_graph(path, state_max_depth=3).memberships.state_max_depth == 3


