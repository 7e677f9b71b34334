"""Core service layer - the graph facade every transport calls into.

GraphService owns the stores and engines and is the single place that:
1. Decodes descriptors before touching the stores
2. Enforces kind checks (get_group on a user descriptor is NotFound)
3. Emits one telemetry event per operation
"""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Iterable

from .cache.memory import InMemoryCache
from .cache.policies import CachePolicyPublisher, CachePolicySet
from .config import Config
from .descriptor.codec import parse_descriptor, validate_storage_key
from .descriptor.types import SubjectKind
from .errors import ConflictError, EntryError, InvalidArgumentError, NotFoundError
from .federation.resolver import FederatedProviderDataResolver
from .federation.types import FederatedProviderData
from .loader import LoadedGraph
from .lookup import BatchEntry, BatchResolver, failures
from .memberships.store import MembershipStore
from .memberships.traversal import TraversalEngine
from .memberships.types import Membership, MembershipState, TraversalDirection, TraversalResult
from .subjects.store import SubjectStore
from .subjects.types import CreationContext, Group, ProviderInfo, Scope, Subject, User
from .telemetry.emitter import TelemetryEmitter
from .telemetry.events import ANONYMOUS, CallerIdentity, EventOutcome, GraphEvent, Operation


logger = logging.getLogger(__name__)


@dataclass
class _Call:
    """Mutable telemetry record for one in-flight operation."""
    operation: Operation
    target: str
    outcome: EventOutcome = EventOutcome.SUCCESS
    error_message: str | None = None
    result_count: int | None = None
    failed_count: int | None = None

    def record_batch(self, result: dict[str, Any]) -> None:
        failed = len(failures(result))
        self.result_count = len(result)
        self.failed_count = failed
        if failed:
            self.outcome = EventOutcome.PARTIAL


@dataclass
class GraphService:
    """
    Membership graph resolution service.

    Responsibilities:
    - Subject lifecycle (create, get, patch, disable)
    - Membership edges and derived membership state
    - Bounded traversal and batch lookups with per-entry errors
    - Federated provider data and published cache policies
    """
    subjects: SubjectStore
    memberships: MembershipStore
    traversal: TraversalEngine
    resolver: BatchResolver
    federation: FederatedProviderDataResolver
    cache_policies: CachePolicyPublisher
    config: Config = field(default_factory=Config)
    telemetry: TelemetryEmitter = field(default_factory=TelemetryEmitter)

    # ------------------------------------------------------------------
    # Descriptors
    # ------------------------------------------------------------------

    async def resolve_descriptor(self, storage_key: str, caller: CallerIdentity | None = None) -> str:
        """
        Storage key -> descriptor.

        Raises:
            InvalidArgumentError: If the key is not a valid storage key
            NotFoundError: If no subject has this key
        """
        async with self._observe(Operation.RESOLVE_DESCRIPTOR, storage_key, caller):
            return self.subjects.get(validate_storage_key(storage_key)).descriptor

    async def resolve_storage_key(self, descriptor: str, caller: CallerIdentity | None = None) -> str:
        """
        Descriptor -> storage key.

        Raises:
            InvalidDescriptorError: If the descriptor is malformed
            NotFoundError: If the descriptor names no stored subject
        """
        async with self._observe(Operation.RESOLVE_STORAGE_KEY, descriptor, caller):
            return self.memberships.require_subject(descriptor).storage_key

    # ------------------------------------------------------------------
    # Subject lifecycle
    # ------------------------------------------------------------------

    async def create_group(
        self,
        context: CreationContext,
        scope_descriptor: str | None = None,
        group_descriptors: Iterable[str] | None = None,
        caller: CallerIdentity | None = None,
    ) -> Group:
        """
        Create a group, optionally inside a scope and joined to parent groups.

        A failure while joining parent groups leaves the group in place.
        """
        async with self._observe(Operation.CREATE_SUBJECT, context.display_name or "group", caller):
            if scope_descriptor:
                scope_descriptor = self._require(scope_descriptor, SubjectKind.SCOPE).descriptor
            group = self.subjects.create(SubjectKind.GROUP, context, scope_descriptor=scope_descriptor)

        await self._join(group, group_descriptors, caller)
        return group

    async def create_user(
        self,
        context: CreationContext,
        group_descriptors: Iterable[str] | None = None,
        caller: CallerIdentity | None = None,
    ) -> User:
        """Materialize a user from an external identity."""
        async with self._observe(
            Operation.CREATE_SUBJECT,
            context.principal_name or context.origin_id or context.display_name or "user",
            caller,
        ):
            user = self.subjects.create(SubjectKind.USER, context)

        await self._join(user, group_descriptors, caller)
        return user

    async def create_scope(
        self,
        context: CreationContext,
        scope_descriptor: str | None = None,
        caller: CallerIdentity | None = None,
    ) -> Scope:
        """Create a scope, optionally under a parent scope."""
        async with self._observe(Operation.CREATE_SUBJECT, context.display_name or "scope", caller):
            if scope_descriptor:
                scope_descriptor = self._require(scope_descriptor, SubjectKind.SCOPE).descriptor
            if context.administrator_descriptor:
                parse_descriptor(context.administrator_descriptor)
            return self.subjects.create(SubjectKind.SCOPE, context, scope_descriptor=scope_descriptor)

    async def delete_group(self, descriptor: str, caller: CallerIdentity | None = None) -> None:
        """Disable a group and detach it from every parent group."""
        async with self._observe(Operation.DELETE_SUBJECT, descriptor, caller):
            group = self._require(descriptor, SubjectKind.GROUP)
            self.subjects.disable(group.storage_key)
            detached = self.memberships.remove_all(group.descriptor, TraversalDirection.UP)
            if detached:
                logger.info(f"Detached {group.descriptor} from {detached} parent(s)")

    async def delete_user(self, descriptor: str, caller: CallerIdentity | None = None) -> None:
        async with self._observe(Operation.DELETE_SUBJECT, descriptor, caller):
            self.subjects.disable(self._require(descriptor, SubjectKind.USER).storage_key)

    async def delete_scope(self, descriptor: str, caller: CallerIdentity | None = None) -> None:
        async with self._observe(Operation.DELETE_SUBJECT, descriptor, caller):
            self.subjects.disable(self._require(descriptor, SubjectKind.SCOPE).storage_key)

    async def get_subject(self, descriptor: str, caller: CallerIdentity | None = None) -> Subject:
        """Get any subject. Disabled subjects are returned with ``disabled`` set."""
        async with self._observe(Operation.GET_SUBJECT, descriptor, caller):
            return self._require(descriptor)

    async def get_group(self, descriptor: str, caller: CallerIdentity | None = None) -> Group:
        async with self._observe(Operation.GET_SUBJECT, descriptor, caller):
            return self._require(descriptor, SubjectKind.GROUP)

    async def get_user(self, descriptor: str, caller: CallerIdentity | None = None) -> User:
        async with self._observe(Operation.GET_SUBJECT, descriptor, caller):
            return self._require(descriptor, SubjectKind.USER)

    async def get_scope(self, descriptor: str, caller: CallerIdentity | None = None) -> Scope:
        async with self._observe(Operation.GET_SUBJECT, descriptor, caller):
            return self._require(descriptor, SubjectKind.SCOPE)

    async def get_member(self, descriptor: str, caller: CallerIdentity | None = None) -> Subject:
        """
        Get a user or group.

        Raises:
            InvalidArgumentError: If the descriptor names a scope
            NotFoundError: If no such subject exists
        """
        async with self._observe(Operation.GET_SUBJECT, descriptor, caller):
            subject = self._require(descriptor)
            if subject.kind == SubjectKind.SCOPE:
                raise InvalidArgumentError("Scope is not a member subject")
            return subject

    async def get_provider_info(self, descriptor: str, caller: CallerIdentity | None = None) -> ProviderInfo:
        """Origin provider details for a user."""
        async with self._observe(Operation.PROVIDER_INFO, descriptor, caller):
            user = self._require(descriptor, SubjectKind.USER)
            return ProviderInfo(
                descriptor=user.descriptor,
                origin=user.origin,
                origin_id=user.origin_id,
                domain=user.domain,
                principal_name=user.principal_name,
            )

    async def update_group(
        self,
        descriptor: str,
        changes: dict[str, Any],
        caller: CallerIdentity | None = None,
    ) -> Group:
        """
        Patch mutable fields of a group.

        Raises:
            NotFoundError: If the group does not exist
            InvalidArgumentError: If a change targets an immutable or unknown field
        """
        async with self._observe(Operation.UPDATE_SUBJECT, descriptor, caller):
            group = self._require(descriptor, SubjectKind.GROUP)
            return self.subjects.patch(group.storage_key, changes)

    async def update_scope(
        self,
        descriptor: str,
        changes: dict[str, Any],
        caller: CallerIdentity | None = None,
    ) -> Scope:
        async with self._observe(Operation.UPDATE_SUBJECT, descriptor, caller):
            scope = self._require(descriptor, SubjectKind.SCOPE)
            if changes.get("administrator_descriptor"):
                parse_descriptor(changes["administrator_descriptor"])
            return self.subjects.patch(scope.storage_key, changes)

    # ------------------------------------------------------------------
    # Batch lookups
    # ------------------------------------------------------------------

    async def lookup_subjects(
        self,
        descriptors: Iterable[str],
        caller: CallerIdentity | None = None,
    ) -> dict[str, BatchEntry]:
        """Resolve many descriptors; failures are per entry, never raised."""
        async with self._observe(Operation.LOOKUP_SUBJECTS, "*", caller) as call:
            result = await self.resolver.resolve(descriptors)
            call.record_batch(result)
            return result

    async def lookup_members(
        self,
        descriptors: Iterable[str],
        caller: CallerIdentity | None = None,
    ) -> dict[str, BatchEntry]:
        """Like lookup_subjects, with scope descriptors reported as invalid entries."""
        async with self._observe(Operation.LOOKUP_SUBJECTS, "*", caller) as call:
            result = await self.resolver.resolve_members(descriptors)
            call.record_batch(result)
            return result

    # ------------------------------------------------------------------
    # Memberships
    # ------------------------------------------------------------------

    async def add_membership(
        self,
        member_descriptor: str,
        container_descriptor: str,
        caller: CallerIdentity | None = None,
    ) -> Membership:
        async with self._observe(Operation.ADD_MEMBERSHIP, f"{member_descriptor}->{container_descriptor}", caller):
            return self.memberships.add(member_descriptor, container_descriptor)

    async def remove_membership(
        self,
        member_descriptor: str,
        container_descriptor: str,
        caller: CallerIdentity | None = None,
    ) -> None:
        async with self._observe(Operation.REMOVE_MEMBERSHIP, f"{member_descriptor}->{container_descriptor}", caller):
            self.memberships.remove(member_descriptor, container_descriptor)

    async def check_membership_existence(
        self,
        member_descriptor: str,
        container_descriptor: str,
        caller: CallerIdentity | None = None,
    ) -> bool:
        """
        True if the edge exists, False if it does not.

        Raises:
            InvalidDescriptorError: If either descriptor is malformed
        """
        async with self._observe(Operation.CHECK_MEMBERSHIP, f"{member_descriptor}->{container_descriptor}", caller):
            return self.memberships.exists(member_descriptor, container_descriptor)

    async def get_membership(
        self,
        member_descriptor: str,
        container_descriptor: str,
        caller: CallerIdentity | None = None,
    ) -> Membership:
        async with self._observe(Operation.GET_MEMBERSHIP, f"{member_descriptor}->{container_descriptor}", caller):
            return self.memberships.get(member_descriptor, container_descriptor)

    async def list_memberships(
        self,
        descriptor: str,
        direction: TraversalDirection | str | None = None,
        depth: int = 1,
        caller: CallerIdentity | None = None,
    ) -> list[Membership]:
        """
        Direct memberships of a subject.

        Direction defaults to Up (the subject's containers). Only depth 1
        is listed; use traverse_memberships for deeper walks.
        """
        async with self._observe(Operation.LIST_MEMBERSHIPS, descriptor, caller) as call:
            direction = TraversalDirection.parse(direction, default=TraversalDirection.UP)
            if depth != 1:
                raise InvalidArgumentError(f"Membership listing supports depth 1 only, got {depth}")
            edges = self.memberships.list_edges(descriptor, direction)
            call.result_count = len(edges)
            return edges

    async def get_membership_state(
        self,
        descriptor: str,
        caller: CallerIdentity | None = None,
    ) -> MembershipState:
        async with self._observe(Operation.MEMBERSHIP_STATE, descriptor, caller):
            return self.memberships.compute_state(descriptor)

    # ------------------------------------------------------------------
    # Traversal
    # ------------------------------------------------------------------

    async def traverse_memberships(
        self,
        descriptor: str,
        direction: TraversalDirection | str,
        depth: int | None = None,
        caller: CallerIdentity | None = None,
    ) -> TraversalResult:
        """
        Walk from one subject.

        Raises:
            InvalidArgumentError: Bad direction, depth or descriptor
            NotFoundError: If the subject does not exist
        """
        async with self._observe(Operation.TRAVERSE, descriptor, caller) as call:
            result = await self.traversal.traverse_one(descriptor, direction, self._depth(depth))
            call.result_count = len(result.reachable)
            return result

    async def lookup_membership_traversals(
        self,
        descriptors: Iterable[str],
        direction: TraversalDirection | str,
        depth: int | None = None,
        caller: CallerIdentity | None = None,
    ) -> dict[str, TraversalResult | EntryError]:
        """Walk from many subjects; unresolvable seeds get an EntryError slot."""
        async with self._observe(Operation.TRAVERSE, "*", caller) as call:
            result = await self.traversal.traverse(descriptors, direction, self._depth(depth))
            call.record_batch(result)
            return result

    # ------------------------------------------------------------------
    # Federation and cache policies
    # ------------------------------------------------------------------

    async def get_federated_provider_data(
        self,
        descriptor: str,
        provider_name: str,
        version_hint: int | None = None,
        caller: CallerIdentity | None = None,
    ) -> FederatedProviderData:
        """
        Provider data for a subject. The returned version may differ from the hint.
        """
        async with self._observe(Operation.PROVIDER_DATA, descriptor, caller):
            return await self.federation.get(descriptor, provider_name, version_hint)

    async def publish_federated_provider_data(
        self,
        descriptor: str,
        provider_name: str,
        access_token: str | None = None,
        caller: CallerIdentity | None = None,
    ) -> FederatedProviderData:
        async with self._observe(Operation.PROVIDER_DATA, descriptor, caller):
            return await self.federation.publish(descriptor, provider_name, access_token)

    async def get_cache_policies(self, caller: CallerIdentity | None = None) -> CachePolicySet:
        async with self._observe(Operation.CACHE_POLICIES, "*", caller):
            return self.cache_policies.get_cache_policies()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def stats(self) -> dict[str, Any]:
        return {
            "subjects": self.subjects.count(),
            "memberships": self.memberships.edge_count(),
            "telemetry": self.telemetry.stats,
            "cache": self.federation.cache.stats,
        }

    def _require(self, descriptor: str, kind: SubjectKind | None = None) -> Any:
        subject = self.memberships.require_subject(descriptor)
        if kind is not None and subject.kind != kind:
            raise NotFoundError(f"{kind.value.capitalize()} not found: {descriptor}")
        return subject

    def _depth(self, depth: int | None) -> int:
        return self.config.traversal.default_depth if depth is None else depth

    async def _join(self, subject: Subject, group_descriptors: Iterable[str] | None, caller: CallerIdentity | None) -> None:
        for container in group_descriptors or ():
            await self.add_membership(subject.descriptor, container, caller)

    @asynccontextmanager
    async def _observe(
        self,
        operation: Operation,
        target: str,
        caller: CallerIdentity | None,
    ) -> AsyncIterator[_Call]:
        """Time an operation and emit its telemetry event, whatever the outcome."""
        start = time.perf_counter()
        call = _Call(operation=operation, target=target)

        try:
            yield call
        except NotFoundError as e:
            call.outcome = EventOutcome.NOT_FOUND
            call.error_message = str(e)
            raise
        except InvalidArgumentError as e:
            call.outcome = EventOutcome.INVALID
            call.error_message = str(e)
            raise
        except ConflictError as e:
            call.outcome = EventOutcome.CONFLICT
            call.error_message = str(e)
            raise
        except asyncio.CancelledError:
            call.outcome = EventOutcome.ERROR
            call.error_message = "cancelled"
            raise
        except Exception as e:
            call.outcome = EventOutcome.ERROR
            call.error_message = str(e)
            logger.exception(f"Unexpected error in {operation.value}: {e}")
            raise

        finally:
            latency = (time.perf_counter() - start) * 1000
            self._emit_telemetry(call, caller or ANONYMOUS, latency)

    def _emit_telemetry(self, call: _Call, caller: CallerIdentity, latency_ms: float) -> None:
        """Emit an operation telemetry event (non-blocking)."""
        event = GraphEvent.create(
            operation=call.operation,
            target=call.target,
            caller=caller,
            outcome=call.outcome,
            latency_ms=latency_ms,
            error_message=call.error_message,
            result_count=call.result_count,
            failed_count=call.failed_count,
        )
        self.telemetry.emit(event)


def build_service(
    config: Config | None = None,
    graph: LoadedGraph | None = None,
    telemetry: TelemetryEmitter | None = None,
) -> GraphService:
    """
    Wire a GraphService from configuration.

    Uses the stores of ``graph`` when given, otherwise starts empty.
    """
    config = config or Config()

    if graph is not None:
        subjects, memberships = graph.subjects, graph.memberships
    else:
        subjects = SubjectStore()
        memberships = MembershipStore(subjects, state_max_depth=config.traversal.state_max_depth)

    cache = InMemoryCache(
        max_size=config.cache.max_size,
        default_ttl_seconds=config.cache.default_ttl_seconds,
    )

    return GraphService(
        subjects=subjects,
        memberships=memberships,
        traversal=TraversalEngine(
            memberships,
            max_depth=config.traversal.max_depth,
            max_concurrency=config.traversal.max_concurrency,
        ),
        resolver=BatchResolver(subjects),
        federation=FederatedProviderDataResolver(
            subjects,
            cache=cache if config.cache.enabled else None,
            cache_ttl_seconds=config.federation.cache_ttl_seconds,
        ),
        cache_policies=CachePolicyPublisher(config.cache_policies),
        config=config,
        telemetry=telemetry or TelemetryEmitter(max_queue_size=config.telemetry.max_queue_size),
    )
