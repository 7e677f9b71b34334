"""Error taxonomy for the graph service."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class GraphError(Exception):
    """Base class for graph resolution failures."""
    pass


class NotFoundError(GraphError):
    """Raised when a subject, edge or provider record does not exist."""
    pass


class InvalidArgumentError(GraphError, ValueError):
    """Raised for malformed input: self-membership, bad container, bad direction."""
    pass


class InvalidDescriptorError(InvalidArgumentError):
    """Raised when a descriptor string does not decode."""
    pass


class ConflictError(GraphError):
    """Raised when an external identity has already been materialized."""

    def __init__(self, message: str, existing_descriptor: str | None = None):
        super().__init__(message)
        self.existing_descriptor = existing_descriptor


class ErrorCode(str, Enum):
    """Per-entry failure codes embedded in batch results."""
    NOT_FOUND = "not_found"
    INVALID_DESCRIPTOR = "invalid_descriptor"
    INVALID_ARGUMENT = "invalid_argument"


@dataclass(frozen=True, slots=True)
class EntryError:
    """
    A failed entry inside an otherwise successful batch result.

    Never raised. Batch operations place one of these in the slot of the
    descriptor that could not be resolved.
    """
    descriptor: str
    code: ErrorCode
    message: str = ""

    @classmethod
    def from_exception(cls, descriptor: str, exc: GraphError) -> EntryError:
        if isinstance(exc, InvalidDescriptorError):
            code = ErrorCode.INVALID_DESCRIPTOR
        elif isinstance(exc, NotFoundError):
            code = ErrorCode.NOT_FOUND
        else:
            code = ErrorCode.INVALID_ARGUMENT
        return cls(descriptor=descriptor, code=code, message=str(exc))

    def to_dict(self) -> dict:
        return {
            "descriptor": self.descriptor,
            "error": self.code.value,
            "message": self.message,
        }
