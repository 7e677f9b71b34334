"""Subject types - users, groups, scopes and their creation contexts."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from typing import Any, ClassVar

from ..descriptor.types import SubjectKind


class ScopeType:
    """Well-known scope types."""
    ORGANIZATION = "organization"
    PROJECT = "project"
    TEAM_PROJECT = "teamProject"
    GENERIC = "generic"


# Fields no patch may touch
IMMUTABLE_FIELDS = frozenset({"storage_key", "descriptor", "kind", "origin", "origin_id", "created_at"})


@dataclass(frozen=True, slots=True)
class Subject:
    """
    A node of the identity graph.

    Subjects are immutable values; the store swaps in a new instance on
    patch or disable so readers never observe a half-applied change.
    """
    kind: ClassVar[SubjectKind]

    storage_key: str
    descriptor: str
    display_name: str = ""
    origin: str = "vsts"            # Provider that owns the identity (aad, msa, vsts, ...)
    origin_id: str | None = None    # Identifier in the origin provider
    principal_name: str | None = None
    mail_address: str | None = None
    description: str = ""
    domain: str | None = None
    disabled: bool = False
    created_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    # Fields a patch may change (subclasses extend)
    patchable: ClassVar[frozenset[str]] = frozenset({"display_name", "description", "mail_address", "principal_name"})

    @property
    def is_container(self) -> bool:
        return self.kind.can_contain

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation (``disabled`` only when set)."""
        data: dict[str, Any] = {"subject_kind": self.kind.value}
        for f in fields(self):
            value = getattr(self, f.name)
            if f.name == "storage_key":
                continue
            if f.name == "disabled" and not value:
                continue
            data[f.name] = value
        return data


@dataclass(frozen=True, slots=True)
class User(Subject):
    """A user principal."""
    kind: ClassVar[SubjectKind] = SubjectKind.USER


@dataclass(frozen=True, slots=True)
class Group(Subject):
    """A group; may contain users, groups and be contained by groups or scopes."""
    kind: ClassVar[SubjectKind] = SubjectKind.GROUP

    # Scope the group was created in (None = enclosing organization)
    scope_descriptor: str | None = None


@dataclass(frozen=True, slots=True)
class Scope(Subject):
    """A scope (organization, project, ...)."""
    kind: ClassVar[SubjectKind] = SubjectKind.SCOPE
    patchable: ClassVar[frozenset[str]] = frozenset({
        "display_name", "description", "administrator_descriptor",
    })

    scope_type: str = ScopeType.GENERIC
    parent_scope_descriptor: str | None = None

    # Administrative grouping identity for the scope
    administrator_descriptor: str | None = None


SUBJECT_CLASSES: dict[SubjectKind, type[Subject]] = {
    SubjectKind.USER: User,
    SubjectKind.GROUP: Group,
    SubjectKind.SCOPE: Scope,
}


@dataclass(frozen=True, slots=True)
class CreationContext:
    """
    The subset of a subject used to find or materialize it.

    Either references an identity in an external provider (origin + origin_id,
    principal name, or mail address) or describes a provider-local subject by
    display name.
    """
    display_name: str = ""
    origin: str = "vsts"
    origin_id: str | None = None
    principal_name: str | None = None
    mail_address: str | None = None
    description: str = ""
    domain: str | None = None
    scope_type: str = ScopeType.GENERIC
    administrator_descriptor: str | None = None

    @property
    def has_identity(self) -> bool:
        return bool(self.origin_id or self.principal_name or self.mail_address or self.display_name)

    def identity_key(self, kind: SubjectKind, scope_descriptor: str | None = None) -> tuple:
        """
        The external identity this context materializes.

        Two contexts with the same key would create the same subject.
        """
        origin = self.origin.lower()
        if self.origin_id:
            return (kind.value, origin, "id", self.origin_id.lower())
        if self.principal_name or self.mail_address:
            return (kind.value, origin, "name", (self.principal_name or self.mail_address).lower())
        return (kind.value, origin, "display", scope_descriptor or "", self.display_name.casefold())

    @classmethod
    def from_dict(cls, data: dict) -> CreationContext:
        """Create a context from a dictionary (unknown keys ignored)."""
        return cls(
            display_name=data.get("display_name", ""),
            origin=data.get("origin", "vsts"),
            origin_id=data.get("origin_id"),
            principal_name=data.get("principal_name"),
            mail_address=data.get("mail_address"),
            description=data.get("description", ""),
            domain=data.get("domain"),
            scope_type=data.get("scope_type", ScopeType.GENERIC),
            administrator_descriptor=data.get("administrator_descriptor"),
        )


@dataclass(frozen=True, slots=True)
class ProviderInfo:
    """Origin provider details for a user."""
    descriptor: str
    origin: str
    origin_id: str | None = None
    domain: str | None = None
    principal_name: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "descriptor": self.descriptor,
            "origin": self.origin,
            "origin_id": self.origin_id,
            "domain": self.domain,
            "principal_name": self.principal_name,
        }
