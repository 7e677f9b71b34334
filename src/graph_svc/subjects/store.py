"""Subject store - thread-safe registry of users, groups and scopes."""

from __future__ import annotations

import dataclasses
import logging
import threading
from typing import Any, Iterable

from ..descriptor.codec import encode_descriptor, new_storage_key, validate_storage_key
from ..descriptor.types import SubjectKind
from ..errors import ConflictError, InvalidArgumentError, NotFoundError
from .types import IMMUTABLE_FIELDS, SUBJECT_CLASSES, CreationContext, Group, Scope, Subject

logger = logging.getLogger(__name__)


class SubjectStore:
    """
    Thread-safe registry of subject records keyed by storage key.

    Supports:
    - Creation from an external identity (conflict on re-materialization)
    - Point lookup by storage key
    - Disable (tombstone - records are never hard-deleted)
    - Patch of mutable fields

    Every mutation is atomic for a single subject.
    """

    def __init__(self) -> None:
        self._subjects: dict[str, Subject] = {}
        self._identity_index: dict[tuple, str] = {}  # external identity -> storage key
        self._lock = threading.RLock()

    def create(
        self,
        kind: SubjectKind,
        context: CreationContext,
        scope_descriptor: str | None = None,
        storage_key: str | None = None,
    ) -> Subject:
        """
        Materialize a subject from a creation context.

        Args:
            kind: Subject kind to create
            context: External identity / display attributes
            scope_descriptor: Enclosing scope (groups) or parent scope (scopes)
            storage_key: Explicit storage key (loaders only); allocated if omitted

        Raises:
            InvalidArgumentError: If the context identifies nothing
            ConflictError: If the external identity is already materialized
        """
        kind = SubjectKind(kind)
        if not context.has_identity:
            raise InvalidArgumentError("Creation context must carry an origin id, principal name, mail address or display name")

        identity = context.identity_key(kind, scope_descriptor)
        key = validate_storage_key(storage_key) if storage_key else new_storage_key()

        with self._lock:
            existing_key = self._identity_index.get(identity)
            if existing_key is not None:
                existing = self._subjects[existing_key]
                raise ConflictError(
                    f"{kind.value.capitalize()} '{context.display_name or identity[-1]}' already exists",
                    existing_descriptor=existing.descriptor,
                )
            if key in self._subjects:
                raise ConflictError(f"Storage key '{key}' already in use")

            subject = self._build(kind, key, context, scope_descriptor)
            self._subjects[key] = subject
            self._identity_index[identity] = key

        logger.info(f"Created {kind.value} {subject.descriptor} ({subject.display_name})")
        return subject

    def get(self, storage_key: str) -> Subject:
        """
        Get a subject by storage key.

        Raises:
            NotFoundError: If no subject has this key
        """
        with self._lock:
            subject = self._subjects.get(storage_key)
        if subject is None:
            raise NotFoundError(f"Subject not found: {storage_key}")
        return subject

    def find(self, storage_key: str) -> Subject | None:
        """Get a subject by storage key, or None."""
        with self._lock:
            return self._subjects.get(storage_key)

    def get_many(self, storage_keys: Iterable[str]) -> dict[str, Subject]:
        """Get the subjects that exist for a set of keys (missing keys are omitted)."""
        with self._lock:
            return {k: self._subjects[k] for k in storage_keys if k in self._subjects}

    def exists(self, storage_key: str) -> bool:
        with self._lock:
            return storage_key in self._subjects

    def disable(self, storage_key: str) -> Subject:
        """
        Disable a subject. Idempotent.

        Does not touch members or edges; membership state is derived
        on read.
        """
        with self._lock:
            subject = self.get(storage_key)
            if subject.disabled:
                return subject
            updated = dataclasses.replace(subject, disabled=True)
            self._subjects[storage_key] = updated

        logger.info(f"Disabled {updated.kind.value} {updated.descriptor}")
        return updated

    def patch(self, storage_key: str, changes: dict[str, Any]) -> Subject:
        """
        Apply field changes to a subject.

        Raises:
            NotFoundError: If no subject has this key
            InvalidArgumentError: If a change targets an immutable or unknown field
            ConflictError: If the change makes the subject collide with another identity
        """
        if not changes:
            return self.get(storage_key)

        with self._lock:
            subject = self.get(storage_key)
            for name in changes:
                if name in IMMUTABLE_FIELDS:
                    raise InvalidArgumentError(f"Field '{name}' cannot be changed")
                if name not in subject.patchable:
                    raise InvalidArgumentError(f"Field '{name}' is not patchable on a {subject.kind.value}")
            updated = dataclasses.replace(subject, **changes)

            old_identity, new_identity = self._identity_of(subject), self._identity_of(updated)
            if new_identity != old_identity:
                existing_key = self._identity_index.get(new_identity)
                if existing_key is not None and existing_key != storage_key:
                    raise ConflictError(
                        f"{subject.kind.value.capitalize()} '{updated.display_name}' already exists",
                        existing_descriptor=self._subjects[existing_key].descriptor,
                    )
                if self._identity_index.get(old_identity) == storage_key:
                    del self._identity_index[old_identity]
                self._identity_index[new_identity] = storage_key

            self._subjects[storage_key] = updated

        logger.info(f"Patched {updated.descriptor}: {sorted(changes)}")
        return updated

    def all_subjects(self, kind: SubjectKind | None = None, include_disabled: bool = False) -> list[Subject]:
        """Enumerate subjects, optionally filtered by kind."""
        with self._lock:
            return [
                s for s in self._subjects.values()
                if (kind is None or s.kind == kind) and (include_disabled or not s.disabled)
            ]

    def count(self) -> dict[str, int]:
        """Get counts by kind."""
        with self._lock:
            counts: dict[str, int] = {}
            for subject in self._subjects.values():
                counts[subject.kind.value] = counts.get(subject.kind.value, 0) + 1
            counts["total"] = len(self._subjects)
            return counts

    def __len__(self) -> int:
        with self._lock:
            return len(self._subjects)

    @staticmethod
    def _identity_of(subject: Subject) -> tuple:
        """The identity key a subject was (or would now be) materialized under."""
        if isinstance(subject, Group):
            scope_descriptor = subject.scope_descriptor
        elif isinstance(subject, Scope):
            scope_descriptor = subject.parent_scope_descriptor
        else:
            scope_descriptor = None
        context = CreationContext(
            display_name=subject.display_name,
            origin=subject.origin,
            origin_id=subject.origin_id,
            principal_name=subject.principal_name,
            mail_address=subject.mail_address,
        )
        return context.identity_key(subject.kind, scope_descriptor)

    @staticmethod
    def _build(
        kind: SubjectKind,
        storage_key: str,
        context: CreationContext,
        scope_descriptor: str | None,
    ) -> Subject:
        cls = SUBJECT_CLASSES[kind]
        common: dict[str, Any] = dict(
            storage_key=storage_key,
            descriptor=str(encode_descriptor(kind, storage_key)),
            display_name=context.display_name or context.principal_name or context.mail_address or "",
            origin=context.origin.lower(),
            origin_id=context.origin_id,
            principal_name=context.principal_name,
            mail_address=context.mail_address,
            description=context.description,
            domain=context.domain,
        )
        if kind == SubjectKind.GROUP:
            common["scope_descriptor"] = scope_descriptor
        elif kind == SubjectKind.SCOPE:
            common["scope_type"] = context.scope_type
            common["parent_scope_descriptor"] = scope_descriptor
            common["administrator_descriptor"] = context.administrator_descriptor
        return cls(**common)
