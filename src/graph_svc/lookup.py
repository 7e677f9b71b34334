"""Batch resolution of descriptors to subjects.

One bad descriptor never fails a lookup: every distinct input gets exactly
one slot in the result, holding either the Subject or an EntryError.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Iterable, Mapping, Union

from .descriptor.codec import parse_descriptor
from .descriptor.types import SubjectKind
from .errors import EntryError, InvalidArgumentError, NotFoundError
from .subjects.store import SubjectStore
from .subjects.types import Subject

logger = logging.getLogger(__name__)

BatchEntry = Union[Subject, EntryError]


def successes(result: Mapping[str, BatchEntry]) -> dict[str, Subject]:
    """Entries that resolved."""
    return {d: v for d, v in result.items() if not isinstance(v, EntryError)}


def failures(result: Mapping[str, object]) -> dict[str, EntryError]:
    """Entries that failed."""
    return {d: v for d, v in result.items() if isinstance(v, EntryError)}


@dataclass
class BatchResolver:
    """Resolves sets of descriptors against the subject store."""
    subjects: SubjectStore

    async def resolve(
        self,
        descriptors: Iterable[str],
        kinds: frozenset[SubjectKind] | None = None,
    ) -> dict[str, BatchEntry]:
        """
        Resolve each descriptor independently.

        Args:
            descriptors: Descriptors to resolve (duplicates are collapsed)
            kinds: If given, subjects of other kinds are reported as
                INVALID_ARGUMENT entries

        Returns:
            Mapping with exactly one entry per distinct input descriptor
        """
        unique = list(dict.fromkeys(descriptors))
        result: dict[str, BatchEntry] = {}

        for descriptor in unique:
            # Cancellation checkpoint per entry
            await asyncio.sleep(0)
            try:
                result[descriptor] = self._resolve_one(descriptor, kinds)
            except (InvalidArgumentError, NotFoundError) as e:
                result[descriptor] = EntryError.from_exception(descriptor, e)

        failed = len(failures(result))
        if failed:
            logger.info(f"Batch lookup: {len(unique) - failed}/{len(unique)} resolved")
        return result

    async def resolve_members(self, descriptors: Iterable[str]) -> dict[str, BatchEntry]:
        """Resolve descriptors that must name users or groups."""
        return await self.resolve(descriptors, kinds=frozenset({SubjectKind.USER, SubjectKind.GROUP}))

    def _resolve_one(self, descriptor: str, kinds: frozenset[SubjectKind] | None) -> Subject:
        decoded = parse_descriptor(descriptor)
        subject = self.subjects.find(decoded.storage_key)
        if subject is None or subject.kind != decoded.kind:
            raise NotFoundError(f"Subject not found: {descriptor}")
        if kinds is not None and subject.kind not in kinds:
            raise InvalidArgumentError(f"{subject.kind.value.capitalize()} is not a member subject")
        return subject
