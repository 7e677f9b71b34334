"""Telemetry event types."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class EventOutcome(str, Enum):
    """Outcome of a graph operation."""
    SUCCESS = "success"
    PARTIAL = "partial"          # Batch call with per-entry failures
    NOT_FOUND = "not_found"
    INVALID = "invalid"
    CONFLICT = "conflict"
    ERROR = "error"


class Operation(str, Enum):
    """Graph operation performed."""
    RESOLVE_DESCRIPTOR = "resolve_descriptor"
    RESOLVE_STORAGE_KEY = "resolve_storage_key"
    CREATE_SUBJECT = "create_subject"
    DELETE_SUBJECT = "delete_subject"
    GET_SUBJECT = "get_subject"
    UPDATE_SUBJECT = "update_subject"
    LOOKUP_SUBJECTS = "lookup_subjects"
    ADD_MEMBERSHIP = "add_membership"
    REMOVE_MEMBERSHIP = "remove_membership"
    CHECK_MEMBERSHIP = "check_membership"
    GET_MEMBERSHIP = "get_membership"
    LIST_MEMBERSHIPS = "list_memberships"
    MEMBERSHIP_STATE = "membership_state"
    TRAVERSE = "traverse"
    PROVIDER_DATA = "provider_data"
    PROVIDER_INFO = "provider_info"
    CACHE_POLICIES = "cache_policies"


@dataclass(frozen=True, slots=True)
class CallerIdentity:
    """
    Identity of the caller making the request.

    At minimum, one of these should be present.
    """
    # Service identity (from a service token)
    service_id: str | None = None

    # User identity (from OAuth/JWT)
    user_id: str | None = None

    # Application/client identifier
    app_id: str | None = None

    # Team/department
    team: str | None = None

    # Additional claims from auth token
    claims: dict[str, Any] = field(default_factory=dict)

    @property
    def principal(self) -> str:
        """Primary identifier for this caller."""
        return self.service_id or self.user_id or self.app_id or "anonymous"

    def __str__(self) -> str:
        return self.principal


ANONYMOUS = CallerIdentity()


@dataclass(frozen=True, slots=True)
class GraphEvent:
    """
    A single graph operation for telemetry.

    Captures who asked, what was asked about and how it went.
    """
    request_id: str
    timestamp: datetime
    caller: CallerIdentity

    operation: Operation
    target: str  # Descriptor, storage key or "*" for set-valued calls

    outcome: EventOutcome
    error_message: str | None = None

    latency_ms: float = 0.0

    # Entries in / failed for batch calls
    result_count: int | None = None
    failed_count: int | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def create(
        cls,
        operation: Operation,
        target: str,
        caller: CallerIdentity,
        outcome: EventOutcome,
        latency_ms: float = 0.0,
        **kwargs,
    ) -> GraphEvent:
        """Factory method with sensible defaults."""
        return cls(
            request_id=str(uuid.uuid4()),
            timestamp=datetime.now(timezone.utc),
            caller=caller,
            operation=operation,
            target=target,
            outcome=outcome,
            latency_ms=latency_ms,
            **kwargs,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "request_id": self.request_id,
            "timestamp": self.timestamp.isoformat(),
            "caller": {
                "principal": self.caller.principal,
                "service_id": self.caller.service_id,
                "user_id": self.caller.user_id,
                "app_id": self.caller.app_id,
                "team": self.caller.team,
            },
            "operation": self.operation.value,
            "target": self.target,
            "outcome": self.outcome.value,
            "error_message": self.error_message,
            "latency_ms": self.latency_ms,
            "result_count": self.result_count,
            "failed_count": self.failed_count,
            "metadata": self.metadata,
        }
