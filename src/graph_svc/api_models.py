"""
Pydantic models for the Graph API.

Request bodies for subject creation, patching, lookups and traversal,
plus the small fixed-shape responses. Subjects and memberships are
returned as plain dictionaries built by their ``to_dict`` methods.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .subjects.types import CreationContext, ScopeType


class SubjectCreationRequest(BaseModel):
    """Identity and display attributes shared by all creation requests."""

    display_name: str = Field("", description="Display name")
    origin: str = Field("vsts", description="Provider that owns the identity (aad, msa, vsts, ...)")
    origin_id: str | None = Field(None, description="Identifier in the origin provider")
    principal_name: str | None = None
    mail_address: str | None = None
    description: str = ""
    domain: str | None = None

    def to_context(self) -> CreationContext:
        return CreationContext.from_dict(self.model_dump())


class UserCreationRequest(SubjectCreationRequest):
    """Materialize a user from an external identity."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "principal_name": "alice@fabrikam.com",
                "origin": "aad",
                "origin_id": "6f1c2d7e-9b1a-4d0e-8a42-3f6f5d9a1c01",
                "group_descriptors": [],
            }
        }
    )

    group_descriptors: list[str] = Field(default_factory=list, description="Groups to join on creation")


class GroupCreationRequest(SubjectCreationRequest):
    """Create a group, optionally inside a scope."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "display_name": "Web Contributors",
                "description": "Can push to the web repositories",
                "scope_descriptor": None,
                "group_descriptors": [],
            }
        }
    )

    scope_descriptor: str | None = Field(None, description="Scope to create the group in")
    group_descriptors: list[str] = Field(default_factory=list, description="Parent groups to join on creation")


class ScopeCreationRequest(SubjectCreationRequest):
    """Create a scope, optionally under a parent scope."""

    scope_type: str = ScopeType.GENERIC
    parent_scope_descriptor: str | None = None
    administrator_descriptor: str | None = None


class SubjectPatchRequest(BaseModel):
    """
    Field changes for a group or scope.

    Extra keys are kept so that attempts to change immutable fields reach
    the store and are rejected there.
    """

    model_config = ConfigDict(extra="allow")

    display_name: str | None = None
    description: str | None = None
    mail_address: str | None = None
    principal_name: str | None = None
    administrator_descriptor: str | None = None

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class SubjectLookupRequest(BaseModel):
    descriptors: list[str] = Field(..., description="Descriptors to resolve")


class TraversalLookupRequest(BaseModel):
    """Walk from several seeds in one call."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "descriptors": ["usr.<payload>.<checksum>"],
                "direction": "up",
                "depth": 2,
            }
        }
    )

    descriptors: list[str]
    direction: str | None = Field(None, description="up | down")
    depth: int | None = Field(None, description="Levels to walk (server default when omitted)")


class ProviderDataPublishRequest(BaseModel):
    provider_name: str
    access_token: str | None = None


class ValueResponse(BaseModel):
    """Single scalar answer (descriptor or storage key)."""
    value: str


class MembershipStateResponse(BaseModel):
    descriptor: str
    state: str
    active: bool


class HealthResponse(BaseModel):
    status: str
    subjects: dict[str, int]
    memberships: int
    telemetry: dict[str, Any]
    cache: dict[str, Any]


class ErrorResponse(BaseModel):
    error: str
    detail: str | None = None
    existing_descriptor: str | None = None
