"""Descriptor codec and types."""

from .types import Descriptor, SubjectKind
from .codec import (
    encode_descriptor,
    format_descriptor,
    is_valid_descriptor,
    new_storage_key,
    parse_descriptor,
    validate_storage_key,
)
from ..errors import InvalidDescriptorError

__all__ = [
    "Descriptor",
    "SubjectKind",
    "encode_descriptor",
    "format_descriptor",
    "is_valid_descriptor",
    "new_storage_key",
    "parse_descriptor",
    "validate_storage_key",
    "InvalidDescriptorError",
]
