"""Core descriptor types."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class SubjectKind(str, Enum):
    """Kind of graph subject."""
    USER = "user"
    GROUP = "group"
    SCOPE = "scope"

    @property
    def can_contain(self) -> bool:
        """Whether subjects of this kind may be the container side of an edge."""
        return self is not SubjectKind.USER


# Descriptor prefix per subject kind
KIND_PREFIXES: dict[SubjectKind, str] = {
    SubjectKind.USER: "usr",
    SubjectKind.GROUP: "grp",
    SubjectKind.SCOPE: "scp",
}

PREFIX_KINDS: dict[str, SubjectKind] = {v: k for k, v in KIND_PREFIXES.items()}


@dataclass(frozen=True, slots=True)
class Descriptor:
    """
    A decoded subject descriptor.

    The wire form is opaque to callers:

        <prefix>.<payload>.<checksum>

        prefix:   subject kind (usr, grp, scp)
        payload:  unpadded url-safe base64 of the storage key
        checksum: 8 hex digits of CRC-32 over "<prefix>.<payload>"

    Examples:
        grp.MGY4ZmFkNWItZDlj....3c1e09aa
        usr.YjJhNDEwYTMtODg1....0b77f2d1
    """
    kind: SubjectKind
    storage_key: str

    def __str__(self) -> str:
        from .codec import format_descriptor
        return format_descriptor(self)

    @property
    def prefix(self) -> str:
        return KIND_PREFIXES[self.kind]

    @property
    def is_container_kind(self) -> bool:
        return self.kind.can_contain
