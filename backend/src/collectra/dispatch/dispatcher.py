"""Operation dispatcher.

Sequences one request against a collection:

    beforeOperation -> (read: findMany)
                     | (write: validateInput -> modifyInput -> persist)
                    -> afterOperation

Responding and webhook fan-out belong to the HTTP layer, which only
performs them for a dispatch that completed without denial.
"""

import copy
import inspect
import logging
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from starlette.concurrency import run_in_threadpool

from collectra.context import RequestContext
from collectra.core.types import Operation
from collectra.errors import ClientDisconnected, MalformedInput, UnhandledError
from collectra.hooks.service import HookService
from collectra.hooks.types import HookPhase, OperationArgs
from collectra.metadata.loader import Collection
from collectra.persistence.adapter import CollectionHandle
from collectra.plugins.types import Plugin
from collectra.query.normalizer import normalize_query

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Single:
    """A write carrying one record."""

    record: dict[str, Any]


@dataclass(frozen=True)
class Batch:
    """A write carrying a list of records."""

    records: list[dict[str, Any]]


Payload = Single | Batch


def classify_payload(data: Any) -> Payload:
    """Decide single vs batch from the body's ``data`` entry.

    Raises:
        MalformedInput: If ``data`` is neither an object nor a list of objects
    """
    if isinstance(data, list):
        if not all(isinstance(item, Mapping) for item in data):
            raise MalformedInput("Every item of `data` must be an object.")
        return Batch([dict(item) for item in data])
    if data is None:
        return Single({})
    if not isinstance(data, Mapping):
        raise MalformedInput("Field `data` must be an object or a list of objects.")
    return Single(dict(data))


def deep_merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """Merge ``override`` into a copy of ``base``; nested mappings merge, other values replace."""
    merged = copy.deepcopy(dict(base))
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, Mapping) and isinstance(value, Mapping):
            merged[key] = deep_merge(current, value)
        else:
            merged[key] = value
    return merged


def merge_defaults(template: Mapping[str, Any], payload: Payload) -> Payload:
    """Apply the collection's default template under every record."""
    if isinstance(payload, Batch):
        return Batch([deep_merge(template, record) for record in payload.records])
    return Single(deep_merge(template, payload.record))


@dataclass
class DispatchOutcome:
    """Result of one dispatch.

    Attributes:
        operation: The operation that ran
        result: Persistence result (None when denied)
        denied: True when a beforeOperation hook vetoed the request
        ctx: The context as last seen by hooks (plugins may replace it)
    """

    operation: Operation
    result: Any = None
    denied: bool = False
    ctx: RequestContext | None = None


async def call_handle(fn: Callable[..., Any], **kwargs: Any) -> Any:
    """Call a persistence primitive; plain ones run in a worker thread."""
    if inspect.iscoroutinefunction(fn):
        return await fn(**kwargs)
    return await run_in_threadpool(fn, **kwargs)


class OperationDispatcher:
    """Runs the hook pipeline and the persistence call for one request.

    Args:
        hook_service: Executes plugins and hooks phase by phase
    """

    def __init__(self, hook_service: HookService):
        self.hook_service = hook_service

    async def dispatch(
        self,
        collection: Collection,
        operation: Operation,
        ctx: RequestContext,
        input_data: Any = None,
        query: Mapping[str, Any] | None = None,
        plugins: Sequence[Plugin] = (),
        is_cancelled: Callable[[], Awaitable[bool]] | None = None,
    ) -> DispatchOutcome:
        """Dispatch one operation.

        Args:
            collection: Target collection
            operation: Operation resolved from the HTTP method
            ctx: Fresh per-request context
            input_data: Parsed request body (writes)
            query: Raw query-string mapping (reads)
            plugins: Active plugins, snapshotted at request start
            is_cancelled: Returns True once the client has disconnected

        Raises:
            MalformedInput: Bad ``where`` JSON or a malformed body; raised
                before any hook runs for reads
            ClientDisconnected: The client left before persistence
        """
        # Normalize first so a malformed filter never reaches a hook.
        normalized = normalize_query(query or {}) if operation is Operation.READ else None
        if operation is not Operation.READ and input_data is not None and not isinstance(
            input_data, Mapping
        ):
            raise MalformedInput("Request body must be a JSON object.")

        handle: CollectionHandle = ctx.db.collection(collection.name)
        hooks = collection.hooks
        args = OperationArgs(
            ctx=ctx,
            operation=operation,
            input_data=dict(input_data) if input_data is not None else {},
        )

        allowed = await self.hook_service.run_gate(args, hooks, plugins)
        if not allowed:
            return DispatchOutcome(operation=operation, denied=True, ctx=args.ctx)

        if operation is Operation.READ:
            await self._check_connected(is_cancelled)
            result = await call_handle(handle.find_many, **normalized)
        else:
            args.existing_data = await self._load_existing(handle, operation, args.input_data)
            await self.hook_service.run_phase(HookPhase.VALIDATE_INPUT, args, hooks, plugins)
            await self.hook_service.run_phase(HookPhase.MODIFY_INPUT, args, hooks, plugins)
            await self._check_connected(is_cancelled)
            result = await self._persist(handle, collection, operation, args.input_data)

        await self.hook_service.run_phase(HookPhase.AFTER_OPERATION, args, hooks, plugins)
        return DispatchOutcome(operation=operation, result=result, ctx=args.ctx)

    async def _load_existing(
        self, handle: CollectionHandle, operation: Operation, input_data: Mapping[str, Any]
    ) -> list[dict[str, Any]] | None:
        if operation is Operation.CREATE:
            return None
        where = input_data.get("where")
        if not where:
            return None
        return await call_handle(handle.find_many, where=where)

    async def _persist(
        self,
        handle: CollectionHandle,
        collection: Collection,
        operation: Operation,
        input_data: Any,
    ) -> Any:
        if not isinstance(input_data, Mapping):
            # The body was checked on entry, so only a modifyInput hook gets here.
            raise UnhandledError(
                f"modifyInput produced {type(input_data).__name__}, expected an object."
            )

        payload = classify_payload(input_data.get("data"))
        where = input_data.get("where")

        if operation is Operation.DELETE:
            if isinstance(payload, Batch):
                return await call_handle(handle.delete_many, where=where)
            return await call_handle(handle.delete, where=where)

        payload = merge_defaults(collection.default_template(), payload)

        if operation is Operation.CREATE:
            if isinstance(payload, Batch):
                return await call_handle(
                    handle.create_many,
                    data=payload.records,
                    skip_duplicates=bool(input_data.get("skipDuplicates", False)),
                )
            return await call_handle(
                handle.create, data=payload.record, select=input_data.get("select")
            )

        if isinstance(payload, Batch):
            return await call_handle(handle.update_many, where=where, data=payload.records)
        return await call_handle(handle.update, where=where, data=payload.record)

    @staticmethod
    async def _check_connected(is_cancelled: Callable[[], Awaitable[bool]] | None) -> None:
        if is_cancelled is not None and await is_cancelled():
            raise ClientDisconnected("Client disconnected before the operation ran.")
