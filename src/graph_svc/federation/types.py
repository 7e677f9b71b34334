"""Federated provider data types."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


@dataclass(frozen=True, slots=True)
class FederatedProviderData:
    """
    Authentication metadata for one subject at one external provider.

    Immutable once issued. A refresh issues a new version rather than
    changing this one.
    """
    subject_descriptor: str
    provider_name: str   # e.g. "github.com"
    version: int
    access_token: str | None = None
    issued_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> dict[str, Any]:
        return {
            "subject_descriptor": self.subject_descriptor,
            "provider_name": self.provider_name,
            "version": self.version,
            "access_token": self.access_token,
            "issued_at": self.issued_at,
        }
