"""Subject system - users, groups and scopes."""

from .types import CreationContext, Group, ProviderInfo, Scope, ScopeType, Subject, User
from .store import SubjectStore

__all__ = [
    "CreationContext",
    "Group",
    "ProviderInfo",
    "Scope",
    "ScopeType",
    "Subject",
    "User",
    "SubjectStore",
]
