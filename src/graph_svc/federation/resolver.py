"""Federated provider data resolver with version-hinted caching."""

from __future__ import annotations

import logging
import threading

from ..cache.memory import InMemoryCache
from ..descriptor.codec import parse_descriptor
from ..errors import InvalidArgumentError, NotFoundError
from ..subjects.store import SubjectStore
from ..subjects.types import Subject
from .types import FederatedProviderData

logger = logging.getLogger(__name__)


class FederatedProviderDataResolver:
    """
    Resolves per-subject, per-provider authentication data.

    Records are versioned per (subject, provider). The version hint passed
    to ``get`` is advisory:

    - hint given and the cached copy is at least that version: the cached
      copy is returned without touching the record store
    - otherwise the latest issued version is read, cached and returned

    Callers must not assume the returned version equals the hint.
    """

    def __init__(
        self,
        subjects: SubjectStore,
        cache: InMemoryCache | None = None,
        cache_ttl_seconds: float = 600.0,
    ) -> None:
        self.subjects = subjects
        self.cache = cache or InMemoryCache()
        self.cache_ttl_seconds = cache_ttl_seconds
        self._records: dict[tuple[str, str], dict[int, FederatedProviderData]] = {}
        self._lock = threading.RLock()

    async def get(
        self,
        subject_descriptor: str,
        provider_name: str,
        version_hint: int | None = None,
    ) -> FederatedProviderData:
        """
        Get provider data for a subject.

        Raises:
            InvalidDescriptorError: If the descriptor is malformed
            InvalidArgumentError: If the provider name is empty
            NotFoundError: If the subject or its data for this provider is absent
        """
        subject = self._require_subject(subject_descriptor)
        cache_key = (subject.storage_key, self._normalize_provider(provider_name))

        if version_hint is not None:
            cached = self.cache.get(cache_key)
            if cached is not None and cached.version >= version_hint:
                return cached

        latest = self._latest(cache_key)
        if latest is None:
            raise NotFoundError(f"No '{provider_name}' provider data for {subject_descriptor}")

        if version_hint is not None and latest.version != version_hint:
            logger.debug(f"Provider data hint v{version_hint} for {cache_key[1]} answered with v{latest.version}")

        await self.cache.set(cache_key, latest, self.cache_ttl_seconds)
        return latest

    async def publish(
        self,
        subject_descriptor: str,
        provider_name: str,
        access_token: str | None = None,
    ) -> FederatedProviderData:
        """Issue a new version of a subject's provider data, superseding the previous one."""
        subject = self._require_subject(subject_descriptor)
        provider = self._normalize_provider(provider_name)
        record_key = (subject.storage_key, provider)

        with self._lock:
            versions = self._records.setdefault(record_key, {})
            version = max(versions, default=0) + 1
            data = FederatedProviderData(
                subject_descriptor=subject.descriptor,
                provider_name=provider,
                version=version,
                access_token=access_token,
            )
            versions[version] = data

        await self.cache.set(record_key, data, self.cache_ttl_seconds)
        logger.info(f"Issued {provider} provider data v{version} for {subject.descriptor}")
        return data

    def versions(self, subject_descriptor: str, provider_name: str) -> list[int]:
        """All issued versions for a (subject, provider) pair, oldest first."""
        subject = self._require_subject(subject_descriptor)
        with self._lock:
            return sorted(self._records.get((subject.storage_key, self._normalize_provider(provider_name)), {}))

    def _latest(self, record_key: tuple[str, str]) -> FederatedProviderData | None:
        with self._lock:
            versions = self._records.get(record_key)
            if not versions:
                return None
            return versions[max(versions)]

    def _require_subject(self, subject_descriptor: str) -> Subject:
        decoded = parse_descriptor(subject_descriptor)
        subject = self.subjects.find(decoded.storage_key)
        if subject is None or subject.kind != decoded.kind:
            raise NotFoundError(f"Subject not found: {subject_descriptor}")
        return subject

    @staticmethod
    def _normalize_provider(provider_name: str) -> str:
        provider = (provider_name or "").strip().lower()
        if not provider:
            raise InvalidArgumentError("Provider name is required")
        return provider
