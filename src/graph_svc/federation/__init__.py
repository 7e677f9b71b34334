"""Federated provider authentication data."""

from .types import FederatedProviderData
from .resolver import FederatedProviderDataResolver

__all__ = [
    "FederatedProviderData",
    "FederatedProviderDataResolver",
]
