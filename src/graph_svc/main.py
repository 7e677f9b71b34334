"""FastAPI application - Membership Graph Service.

Routes follow the Graph REST resource layout under /_apis/graph.
Descriptors are the only subject identifiers accepted or returned, except
for the StorageKeys/Descriptors translation resources.
"""

from __future__ import annotations

import asyncio
import logging
import os
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, HTTPException, Query, Request, Response
from fastapi.responses import JSONResponse

from .api_models import (
    ErrorResponse,
    GroupCreationRequest,
    HealthResponse,
    MembershipStateResponse,
    ProviderDataPublishRequest,
    ScopeCreationRequest,
    SubjectLookupRequest,
    SubjectPatchRequest,
    TraversalLookupRequest,
    UserCreationRequest,
    ValueResponse,
)
from .config import Config
from .errors import ConflictError, EntryError, GraphError, InvalidArgumentError, InvalidDescriptorError, NotFoundError
from .identity.extractor import extract_identity
from .loader import GraphLoader, LoadedGraph, load_graph
from .memberships.types import MembershipState
from .service import GraphService, build_service
from .telemetry.batcher import TelemetryBatcher, create_batched_consumer
from .telemetry.emitter import TelemetryEmitter
from .telemetry.sinks.console import ConsoleSink


logger = logging.getLogger(__name__)

API_PREFIX = "/_apis/graph"
CONFIG_ENV_VAR = "GRAPH_SVC_CONFIG"


# Global service instance (initialized in lifespan)
_service: GraphService | None = None
_telemetry_task: asyncio.Task | None = None
_batcher_task: asyncio.Task | None = None


DEMO_GRAPH: dict[str, Any] = {
    "scopes": [
        {"id": "fabrikam", "display_name": "Fabrikam", "scope_type": "organization"},
        {"id": "web", "display_name": "Web", "scope_type": "project", "parent": "fabrikam"},
    ],
    "groups": [
        {"id": "org-admins", "display_name": "Project Collection Administrators", "scope": "fabrikam"},
        {"id": "web-admins", "display_name": "Project Administrators", "scope": "web"},
        {"id": "web-contributors", "display_name": "Contributors", "scope": "web"},
    ],
    "users": [
        {"id": "alice", "display_name": "Alice", "principal_name": "alice@fabrikam.com", "origin": "aad"},
        {"id": "bob", "display_name": "Bob", "principal_name": "bob@fabrikam.com", "origin": "aad"},
    ],
    "memberships": [
        {"member": "alice", "container": "web-admins"},
        {"member": "bob", "container": "web-contributors"},
        {"member": "web-admins", "container": "web-contributors"},
        {"member": "org-admins", "container": "web-admins"},
    ],
}


def create_demo_graph(state_max_depth: int = 64) -> LoadedGraph:
    """Create a demo graph with an organization, a project and a few groups."""
    return GraphLoader(state_max_depth=state_max_depth).load_dict(DEMO_GRAPH)


def load_config() -> Config:
    """Load config from GRAPH_SVC_CONFIG (YAML or JSON), or use defaults."""
    path = os.environ.get(CONFIG_ENV_VAR)
    if not path:
        return Config()
    logger.info(f"Loading config from {path}")
    if path.endswith(".json"):
        return Config.from_json(path)
    return Config.from_yaml(path)


async def create_telemetry(config: Config) -> tuple[TelemetryEmitter, TelemetryBatcher]:
    """Create telemetry emitter and batcher from config."""
    emitter = TelemetryEmitter(max_queue_size=config.telemetry.max_queue_size)

    if config.telemetry.sink_type != "console":
        logger.warning(f"Unknown telemetry sink '{config.telemetry.sink_type}', using console")
    sink = ConsoleSink(**config.telemetry.sink_config)

    batcher = TelemetryBatcher(
        batch_size=config.telemetry.batch_size,
        flush_interval_seconds=config.telemetry.flush_interval_seconds,
        sink=sink.send,
    )
    emitter.add_consumer(create_batched_consumer(batcher))

    return emitter, batcher


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - startup and shutdown."""
    global _service, _telemetry_task, _batcher_task

    logger.info("Starting membership graph service...")

    config = load_config()

    if config.graph.definition_file:
        graph = load_graph(config.graph.definition_file, state_max_depth=config.traversal.state_max_depth)
    else:
        graph = create_demo_graph(state_max_depth=config.traversal.state_max_depth)

    emitter, batcher = await create_telemetry(config)
    if config.telemetry.enabled:
        await emitter.start()
        _telemetry_task = asyncio.create_task(emitter.process_loop())
        _batcher_task = asyncio.create_task(batcher.timer_loop())

    _service = build_service(config, graph=graph, telemetry=emitter)

    logger.info(f"Membership graph service started ({len(graph.subjects)} subjects)")

    yield

    logger.info("Shutting down membership graph service...")

    for task in (_telemetry_task, _batcher_task):
        if task:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
    _telemetry_task = _batcher_task = None

    await emitter.stop()
    await batcher.stop()
    _service = None

    logger.info("Membership graph service stopped")


app = FastAPI(
    title="Membership Graph Service",
    description="Resolves users, groups and scopes and walks the memberships between them.",
    version="0.1.0",
    lifespan=lifespan,
)


@app.exception_handler(InvalidDescriptorError)
async def invalid_descriptor_handler(request: Request, exc: InvalidDescriptorError):
    return JSONResponse(
        status_code=400,
        content=ErrorResponse(error="Invalid descriptor", detail=str(exc)).model_dump(exclude_none=True),
    )


@app.exception_handler(InvalidArgumentError)
async def invalid_argument_handler(request: Request, exc: InvalidArgumentError):
    return JSONResponse(
        status_code=400,
        content=ErrorResponse(error="Invalid argument", detail=str(exc)).model_dump(exclude_none=True),
    )


@app.exception_handler(NotFoundError)
async def not_found_error_handler(request: Request, exc: NotFoundError):
    return JSONResponse(
        status_code=404,
        content=ErrorResponse(error="Not found", detail=str(exc)).model_dump(exclude_none=True),
    )


@app.exception_handler(ConflictError)
async def conflict_error_handler(request: Request, exc: ConflictError):
    return JSONResponse(
        status_code=409,
        content=ErrorResponse(
            error="Conflict",
            detail=str(exc),
            existing_descriptor=exc.existing_descriptor,
        ).model_dump(exclude_none=True),
    )


@app.exception_handler(GraphError)
async def graph_error_handler(request: Request, exc: GraphError):
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(error="Graph error", detail=str(exc)).model_dump(exclude_none=True),
    )


def _require_service() -> GraphService:
    if not _service:
        raise HTTPException(status_code=503, detail="Service not initialized")
    return _service


def _batch_dict(result: dict[str, Any]) -> dict[str, Any]:
    return {
        "count": len(result),
        "failed": sum(1 for v in result.values() if isinstance(v, EntryError)),
        "value": {d: v.to_dict() for d, v in result.items()},
    }


@app.get("/health", response_model=HealthResponse)
async def health():
    """Health check endpoint."""
    service = _require_service()
    stats = service.stats()
    return HealthResponse(
        status="healthy",
        subjects=stats["subjects"],
        memberships=stats["memberships"],
        telemetry=stats["telemetry"],
        cache=stats["cache"],
    )


# ----------------------------------------------------------------------
# Descriptors / storage keys
# ----------------------------------------------------------------------

@app.get(f"{API_PREFIX}/descriptors/{{storage_key}}", response_model=ValueResponse)
async def get_descriptor(request: Request, storage_key: str):
    """Translate a storage key to its descriptor."""
    service = _require_service()
    return ValueResponse(value=await service.resolve_descriptor(storage_key, extract_identity(request)))


@app.get(f"{API_PREFIX}/storagekeys/{{descriptor}}", response_model=ValueResponse)
async def get_storage_key(request: Request, descriptor: str):
    """Translate a descriptor to its storage key."""
    service = _require_service()
    return ValueResponse(value=await service.resolve_storage_key(descriptor, extract_identity(request)))


# ----------------------------------------------------------------------
# Subjects
# ----------------------------------------------------------------------

@app.get(f"{API_PREFIX}/subjects/{{descriptor}}")
async def get_subject(request: Request, descriptor: str):
    service = _require_service()
    subject = await service.get_subject(descriptor, extract_identity(request))
    return subject.to_dict()


@app.post(f"{API_PREFIX}/subjectlookup")
async def lookup_subjects(request: Request, body: SubjectLookupRequest):
    """Resolve many descriptors; unresolved entries carry an error, never fail the call."""
    service = _require_service()
    result = await service.lookup_subjects(body.descriptors, extract_identity(request))
    return _batch_dict(result)


@app.post(f"{API_PREFIX}/memberlookup")
async def lookup_members(request: Request, body: SubjectLookupRequest):
    service = _require_service()
    result = await service.lookup_members(body.descriptors, extract_identity(request))
    return _batch_dict(result)


@app.get(f"{API_PREFIX}/members/{{descriptor}}")
async def get_member(request: Request, descriptor: str):
    service = _require_service()
    member = await service.get_member(descriptor, extract_identity(request))
    return member.to_dict()


# ----------------------------------------------------------------------
# Users
# ----------------------------------------------------------------------

@app.post(f"{API_PREFIX}/users", status_code=201)
async def create_user(request: Request, body: UserCreationRequest):
    service = _require_service()
    user = await service.create_user(
        body.to_context(),
        group_descriptors=body.group_descriptors,
        caller=extract_identity(request),
    )
    return user.to_dict()


@app.get(f"{API_PREFIX}/users/{{descriptor}}")
async def get_user(request: Request, descriptor: str):
    service = _require_service()
    user = await service.get_user(descriptor, extract_identity(request))
    return user.to_dict()


@app.delete(f"{API_PREFIX}/users/{{descriptor}}", status_code=204)
async def delete_user(request: Request, descriptor: str):
    service = _require_service()
    await service.delete_user(descriptor, extract_identity(request))
    return Response(status_code=204)


@app.get(f"{API_PREFIX}/users/{{descriptor}}/providerinfo")
async def get_provider_info(request: Request, descriptor: str):
    service = _require_service()
    info = await service.get_provider_info(descriptor, extract_identity(request))
    return info.to_dict()


# ----------------------------------------------------------------------
# Groups
# ----------------------------------------------------------------------

@app.post(f"{API_PREFIX}/groups", status_code=201)
async def create_group(request: Request, body: GroupCreationRequest):
    service = _require_service()
    group = await service.create_group(
        body.to_context(),
        scope_descriptor=body.scope_descriptor,
        group_descriptors=body.group_descriptors,
        caller=extract_identity(request),
    )
    return group.to_dict()


@app.get(f"{API_PREFIX}/groups/{{descriptor}}")
async def get_group(request: Request, descriptor: str):
    service = _require_service()
    group = await service.get_group(descriptor, extract_identity(request))
    return group.to_dict()


@app.patch(f"{API_PREFIX}/groups/{{descriptor}}")
async def update_group(request: Request, descriptor: str, body: SubjectPatchRequest):
    service = _require_service()
    group = await service.update_group(descriptor, body.changes(), extract_identity(request))
    return group.to_dict()


@app.delete(f"{API_PREFIX}/groups/{{descriptor}}", status_code=204)
async def delete_group(request: Request, descriptor: str):
    service = _require_service()
    await service.delete_group(descriptor, extract_identity(request))
    return Response(status_code=204)


# ----------------------------------------------------------------------
# Scopes
# ----------------------------------------------------------------------

@app.post(f"{API_PREFIX}/scopes", status_code=201)
async def create_scope(request: Request, body: ScopeCreationRequest):
    service = _require_service()
    scope = await service.create_scope(
        body.to_context(),
        scope_descriptor=body.parent_scope_descriptor,
        caller=extract_identity(request),
    )
    return scope.to_dict()


@app.get(f"{API_PREFIX}/scopes/{{descriptor}}")
async def get_scope(request: Request, descriptor: str):
    service = _require_service()
    scope = await service.get_scope(descriptor, extract_identity(request))
    return scope.to_dict()


@app.patch(f"{API_PREFIX}/scopes/{{descriptor}}")
async def update_scope(request: Request, descriptor: str, body: SubjectPatchRequest):
    service = _require_service()
    scope = await service.update_scope(descriptor, body.changes(), extract_identity(request))
    return scope.to_dict()


@app.delete(f"{API_PREFIX}/scopes/{{descriptor}}", status_code=204)
async def delete_scope(request: Request, descriptor: str):
    service = _require_service()
    await service.delete_scope(descriptor, extract_identity(request))
    return Response(status_code=204)


# ----------------------------------------------------------------------
# Memberships
# ----------------------------------------------------------------------

@app.put(f"{API_PREFIX}/memberships/{{member}}/{{container}}")
async def add_membership(request: Request, member: str, container: str):
    service = _require_service()
    membership = await service.add_membership(member, container, extract_identity(request))
    return membership.to_dict()


@app.head(f"{API_PREFIX}/memberships/{{member}}/{{container}}")
async def check_membership(request: Request, member: str, container: str):
    """200 if the membership exists, 404 if it does not."""
    service = _require_service()
    exists = await service.check_membership_existence(member, container, extract_identity(request))
    return Response(status_code=200 if exists else 404)


@app.get(f"{API_PREFIX}/memberships/{{member}}/{{container}}")
async def get_membership(request: Request, member: str, container: str):
    service = _require_service()
    membership = await service.get_membership(member, container, extract_identity(request))
    return membership.to_dict()


@app.delete(f"{API_PREFIX}/memberships/{{member}}/{{container}}", status_code=204)
async def remove_membership(request: Request, member: str, container: str):
    service = _require_service()
    await service.remove_membership(member, container, extract_identity(request))
    return Response(status_code=204)


@app.get(f"{API_PREFIX}/memberships/{{descriptor}}")
async def list_memberships(
    request: Request,
    descriptor: str,
    direction: str | None = Query(None, description="up (containers, default) | down (members)"),
    depth: int = Query(1, description="Only 1 is supported"),
):
    service = _require_service()
    edges = await service.list_memberships(descriptor, direction, depth, extract_identity(request))
    return {"count": len(edges), "value": [e.to_dict() for e in edges]}


@app.get(f"{API_PREFIX}/membershipstates/{{descriptor}}", response_model=MembershipStateResponse)
async def get_membership_state(request: Request, descriptor: str):
    service = _require_service()
    state = await service.get_membership_state(descriptor, extract_identity(request))
    return MembershipStateResponse(
        descriptor=descriptor,
        state=state.value,
        active=state == MembershipState.ACTIVE,
    )


# ----------------------------------------------------------------------
# Traversal
# ----------------------------------------------------------------------

@app.get(f"{API_PREFIX}/membershiptraversals/{{descriptor}}")
async def traverse_memberships(
    request: Request,
    descriptor: str,
    direction: str | None = Query(None, description="up | down (required)"),
    depth: int | None = Query(None, description="Levels to walk"),
):
    service = _require_service()
    result = await service.traverse_memberships(descriptor, direction, depth, extract_identity(request))
    return result.to_dict()


@app.post(f"{API_PREFIX}/membershiptraversals")
async def lookup_membership_traversals(request: Request, body: TraversalLookupRequest):
    """Walk from several seeds; seeds that do not resolve carry an error entry."""
    service = _require_service()
    result = await service.lookup_membership_traversals(
        body.descriptors,
        body.direction,
        body.depth,
        extract_identity(request),
    )
    return _batch_dict(result)


# ----------------------------------------------------------------------
# Federated provider data / cache policies
# ----------------------------------------------------------------------

@app.get(f"{API_PREFIX}/federatedproviderdata/{{descriptor}}")
async def get_federated_provider_data(
    request: Request,
    descriptor: str,
    provider_name: str = Query(..., alias="providerName"),
    version_hint: int | None = Query(None, alias="versionHint"),
):
    service = _require_service()
    data = await service.get_federated_provider_data(
        descriptor, provider_name, version_hint, extract_identity(request)
    )
    return data.to_dict()


@app.post(f"{API_PREFIX}/federatedproviderdata/{{descriptor}}", status_code=201)
async def publish_federated_provider_data(request: Request, descriptor: str, body: ProviderDataPublishRequest):
    service = _require_service()
    data = await service.publish_federated_provider_data(
        descriptor, body.provider_name, body.access_token, extract_identity(request)
    )
    return data.to_dict()


@app.get(f"{API_PREFIX}/cachepolicies")
async def get_cache_policies(request: Request):
    service = _require_service()
    policies = await service.get_cache_policies(extract_identity(request))
    return policies.to_dict()


@app.get("/")
async def root():
    """Root endpoint with service info."""
    return {
        "service": "Membership Graph Service",
        "version": "0.1.0",
        "description": "Resolves users, groups and scopes and walks the memberships between them.",
        "endpoints": {
            f"{API_PREFIX}/descriptors/{{storage_key}}": "Storage key to descriptor",
            f"{API_PREFIX}/storagekeys/{{descriptor}}": "Descriptor to storage key",
            f"{API_PREFIX}/subjects/{{descriptor}}": "Get any subject",
            f"{API_PREFIX}/subjectlookup": "POST - Batch subject lookup",
            f"{API_PREFIX}/memberlookup": "POST - Batch user/group lookup",
            f"{API_PREFIX}/users": "POST - Materialize a user",
            f"{API_PREFIX}/groups": "POST - Create a group",
            f"{API_PREFIX}/scopes": "POST - Create a scope",
            f"{API_PREFIX}/memberships/{{member}}/{{container}}": "PUT/HEAD/GET/DELETE a membership",
            f"{API_PREFIX}/memberships/{{descriptor}}": "List direct memberships",
            f"{API_PREFIX}/membershipstates/{{descriptor}}": "Derived membership state",
            f"{API_PREFIX}/membershiptraversals/{{descriptor}}": "Walk memberships from a subject",
            f"{API_PREFIX}/membershiptraversals": "POST - Walk from several subjects",
            f"{API_PREFIX}/federatedproviderdata/{{descriptor}}": "Provider auth data",
            f"{API_PREFIX}/cachepolicies": "Client caching policies",
            "/health": "Health check",
        },
    }


def run():
    """Run the service with uvicorn."""
    import uvicorn

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config = load_config()
    uvicorn.run(
        "graph_svc.main:app",
        host=config.server.host,
        port=config.server.port,
        reload=config.server.reload,
    )


if __name__ == "__main__":
    run()
