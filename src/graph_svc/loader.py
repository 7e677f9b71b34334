"""Graph loader - seeds subject and membership stores from YAML/JSON files."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .descriptor.types import SubjectKind
from .memberships.store import MembershipStore
from .subjects.store import SubjectStore
from .subjects.types import CreationContext

logger = logging.getLogger(__name__)


@dataclass
class LoadedGraph:
    """Stores populated by a loader, plus the alias -> descriptor map."""
    subjects: SubjectStore
    memberships: MembershipStore
    aliases: dict[str, str] = field(default_factory=dict)

    def descriptor(self, alias: str) -> str:
        return self.aliases[alias]


class GraphLoader:
    """
    Loads a graph definition from YAML or JSON.

    File format:
    ```yaml
    scopes:
      - id: fabrikam                 # local alias used for references below
        display_name: Fabrikam
        scope_type: organization
      - id: web
        display_name: Web Project
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
        origin_id: 6f1c2d7e-0000-0000-0000-000000000001

    memberships:
      - member: alice
        container: web-admins

    disabled: [alice]
    ```

    Scopes are created first, then groups, then users, so references only
    need to point at subjects of an earlier section (or earlier in the
    same section).
    """

    def __init__(self, state_max_depth: int = 64) -> None:
        self.state_max_depth = state_max_depth

    def load_file(self, path: str | Path) -> LoadedGraph:
        """Load a graph from a YAML or JSON file."""
        path = Path(path)

        if not path.exists():
            raise FileNotFoundError(f"Graph definition file not found: {path}")

        with open(path, "r", encoding="utf-8") as f:
            if path.suffix in (".yaml", ".yml"):
                data = yaml.safe_load(f)
            else:
                import json
                data = json.load(f)

        return self.load_dict(data or {})

    def load_dict(self, data: dict[str, Any]) -> LoadedGraph:
        """Load a graph from a dictionary."""
        subjects = SubjectStore()
        memberships = MembershipStore(subjects, state_max_depth=self.state_max_depth)
        graph = LoadedGraph(subjects=subjects, memberships=memberships)

        for entry in data.get("scopes", []) or []:
            self._create(graph, SubjectKind.SCOPE, entry, entry.get("parent"))
        for entry in data.get("groups", []) or []:
            self._create(graph, SubjectKind.GROUP, entry, entry.get("scope"))
        for entry in data.get("users", []) or []:
            self._create(graph, SubjectKind.USER, entry, None)

        for edge in data.get("memberships", []) or []:
            memberships.add(self._ref(graph, edge["member"]), self._ref(graph, edge["container"]))

        for alias in data.get("disabled", []) or []:
            descriptor = self._ref(graph, alias)
            subjects.disable(memberships.require_subject(descriptor).storage_key)

        logger.info(f"Loaded {len(subjects)} subjects and {memberships.edge_count()} memberships")
        return graph

    def _create(self, graph: LoadedGraph, kind: SubjectKind, entry: dict[str, Any], scope_ref: str | None) -> None:
        alias = entry.get("id")
        if alias and alias in graph.aliases:
            raise ValueError(f"Duplicate subject id '{alias}' in graph definition")

        scope_descriptor = self._ref(graph, scope_ref) if scope_ref else None
        subject = graph.subjects.create(
            kind,
            CreationContext.from_dict(entry),
            scope_descriptor=scope_descriptor,
            storage_key=entry.get("storage_key"),
        )
        if alias:
            graph.aliases[alias] = subject.descriptor
        logger.debug(f"Loaded {kind.value}: {alias or subject.descriptor}")

    @staticmethod
    def _ref(graph: LoadedGraph, ref: str) -> str:
        """Resolve an alias (or pass a literal descriptor through)."""
        return graph.aliases.get(ref, ref)


def load_graph(path: str | Path, state_max_depth: int = 64) -> LoadedGraph:
    """Convenience function to load a graph definition file."""
    return GraphLoader(state_max_depth=state_max_depth).load_file(path)
