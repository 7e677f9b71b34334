"""Descriptor encoding and decoding.

Pure functions: no store access and no I/O. Everything that reaches the
subject or membership stores passes through ``parse_descriptor`` first.
"""

from __future__ import annotations

import base64
import binascii
import re
import uuid
import zlib

from ..errors import InvalidArgumentError, InvalidDescriptorError
from .types import Descriptor, KIND_PREFIXES, PREFIX_KINDS, SubjectKind


# Payload is unpadded url-safe base64
PAYLOAD_PATTERN = re.compile(r"^[A-Za-z0-9_\-]+$")

# Checksum is 8 lowercase hex digits
CHECKSUM_PATTERN = re.compile(r"^[0-9a-f]{8}$")

# Longest descriptor we will attempt to decode
MAX_DESCRIPTOR_LENGTH = 256


def validate_storage_key(storage_key: str) -> str:
    """
    Validate a storage key and return its canonical (lowercase UUID) form.

    Raises:
        InvalidArgumentError: If the key is not a UUID
    """
    if not isinstance(storage_key, str) or not storage_key:
        raise InvalidArgumentError("Storage key must be a non-empty string")
    try:
        return str(uuid.UUID(storage_key))
    except ValueError:
        raise InvalidArgumentError(f"Invalid storage key: '{storage_key}'") from None


def new_storage_key() -> str:
    """Allocate a fresh storage key."""
    return str(uuid.uuid4())


def _checksum(body: str) -> str:
    return f"{zlib.crc32(body.encode('ascii')) & 0xFFFFFFFF:08x}"


def format_descriptor(descriptor: Descriptor) -> str:
    """Render a Descriptor to its wire form."""
    payload = base64.urlsafe_b64encode(descriptor.storage_key.encode("ascii")).decode("ascii").rstrip("=")
    body = f"{KIND_PREFIXES[descriptor.kind]}.{payload}"
    return f"{body}.{_checksum(body)}"


def encode_descriptor(kind: SubjectKind, storage_key: str) -> Descriptor:
    """
    Build the descriptor for a subject.

    Args:
        kind: Subject kind
        storage_key: Internal storage key (UUID)

    Returns:
        Descriptor whose str() is the external identifier

    Raises:
        InvalidArgumentError: If the storage key is malformed
    """
    return Descriptor(kind=SubjectKind(kind), storage_key=validate_storage_key(storage_key))


def parse_descriptor(text: str | Descriptor) -> Descriptor:
    """
    Decode an external descriptor string.

    Fails closed: anything that is not exactly prefix + payload + matching
    checksum is rejected.

    Raises:
        InvalidDescriptorError: If the descriptor is malformed
    """
    if isinstance(text, Descriptor):
        return text
    if not isinstance(text, str) or not text:
        raise InvalidDescriptorError("Descriptor must be a non-empty string")
    if len(text) > MAX_DESCRIPTOR_LENGTH:
        raise InvalidDescriptorError("Descriptor too long")

    parts = text.split(".")
    if len(parts) != 3:
        raise InvalidDescriptorError(f"Invalid descriptor: '{text}'")

    prefix, payload, checksum = parts
    kind = PREFIX_KINDS.get(prefix)
    if kind is None:
        raise InvalidDescriptorError(f"Unknown subject type prefix '{prefix}' in descriptor '{text}'")
    if not PAYLOAD_PATTERN.match(payload) or not CHECKSUM_PATTERN.match(checksum):
        raise InvalidDescriptorError(f"Invalid descriptor: '{text}'")
    if _checksum(f"{prefix}.{payload}") != checksum:
        raise InvalidDescriptorError(f"Descriptor checksum mismatch: '{text}'")

    try:
        padded = payload + "=" * (-len(payload) % 4)
        raw = base64.urlsafe_b64decode(padded).decode("ascii")
    except (binascii.Error, UnicodeDecodeError, ValueError):
        raise InvalidDescriptorError(f"Invalid descriptor payload: '{text}'") from None

    try:
        storage_key = validate_storage_key(raw)
    except InvalidArgumentError:
        raise InvalidDescriptorError(f"Descriptor does not reference a storage key: '{text}'") from None

    # Non-canonical payloads would give one key two descriptors
    if storage_key != raw:
        raise InvalidDescriptorError(f"Non-canonical descriptor: '{text}'")

    return Descriptor(kind=kind, storage_key=storage_key)


def is_valid_descriptor(text: str) -> bool:
    """Check if a string decodes as a descriptor."""
    try:
        parse_descriptor(text)
    except InvalidDescriptorError:
        return False
    return True
