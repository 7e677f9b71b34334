"""Configuration for graph service."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class ServerConfig:
    """HTTP server configuration."""
    host: str = "0.0.0.0"
    port: int = 8060
    reload: bool = False


@dataclass
class TelemetryConfig:
    """Telemetry configuration."""
    enabled: bool = True
    sink_type: str = "console"  # console only for now
    sink_config: dict[str, Any] = field(default_factory=dict)

    # Batching
    batch_size: int = 1000
    flush_interval_seconds: float = 1.0

    # Queue
    max_queue_size: int = 10000


@dataclass
class CacheConfig:
    """Server-side cache configuration."""
    enabled: bool = True
    max_size: int = 10000
    default_ttl_seconds: float = 300.0


@dataclass
class TraversalConfig:
    """Bounds for membership traversal."""
    default_depth: int = 1
    max_depth: int = 10          # Largest depth a caller may request
    max_concurrency: int = 8     # Seeds walked in parallel per call
    state_max_depth: int = 64    # Up-walk bound for membership state


@dataclass
class FederationConfig:
    """Federated provider data configuration."""
    cache_ttl_seconds: float = 600.0


@dataclass
class CachePolicyEntryConfig:
    """One published client-side caching policy."""
    subject_kinds: list[str] = field(default_factory=lambda: ["user", "group", "scope"])
    ttl_seconds: float = 3600.0
    max_entries: int = 10000


@dataclass
class CachePolicyConfig:
    """Caching parameters published to callers."""
    cache_size: int = 10000
    policies: list[CachePolicyEntryConfig] = field(default_factory=lambda: [CachePolicyEntryConfig()])

    @classmethod
    def from_dict(cls, data: dict) -> CachePolicyConfig:
        policies = [CachePolicyEntryConfig(**p) for p in data.get("policies", [])]
        return cls(
            cache_size=data.get("cache_size", 10000),
            policies=policies or [CachePolicyEntryConfig()],
        )


@dataclass
class GraphConfig:
    """Graph seed configuration."""
    # Path to a graph definition file (YAML or JSON)
    definition_file: str | None = None


@dataclass
class Config:
    """Main configuration container."""
    server: ServerConfig = field(default_factory=ServerConfig)
    telemetry: TelemetryConfig = field(default_factory=TelemetryConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    traversal: TraversalConfig = field(default_factory=TraversalConfig)
    federation: FederationConfig = field(default_factory=FederationConfig)
    cache_policies: CachePolicyConfig = field(default_factory=CachePolicyConfig)
    graph: GraphConfig = field(default_factory=GraphConfig)

    @classmethod
    def from_dict(cls, data: dict) -> Config:
        """Create config from dictionary."""
        policy_data = data.get("cache_policies", {})
        return cls(
            server=ServerConfig(**data.get("server", {})),
            telemetry=TelemetryConfig(**data.get("telemetry", {})),
            cache=CacheConfig(**data.get("cache", {})),
            traversal=TraversalConfig(**data.get("traversal", {})),
            federation=FederationConfig(**data.get("federation", {})),
            cache_policies=CachePolicyConfig.from_dict(policy_data) if policy_data else CachePolicyConfig(),
            graph=GraphConfig(**data.get("graph", {})),
        )

    @classmethod
    def from_yaml(cls, path: str) -> Config:
        """Load config from YAML file."""
        import yaml
        with open(path, "r") as f:
            data = yaml.safe_load(f)
        return cls.from_dict(data or {})

    @classmethod
    def from_json(cls, path: str) -> Config:
        """Load config from JSON file."""
        import json
        with open(path, "r") as f:
            data = json.load(f)
        return cls.from_dict(data)
