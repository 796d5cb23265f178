"""Hook execution service for Collectra.

Runs one phase of the request pipeline: active plugin transforms first,
in registration order, then the collection's hooks for that phase in
declared order. Every call is awaited before the next one starts.
"""

import asyncio
import inspect
import logging
from collections.abc import Sequence
from typing import Any

from collectra.context import RequestContext
from collectra.errors import HookTimeout
from collectra.hooks.types import CollectionHooks, HookPhase, OperationArgs
from collectra.plugins.types import Plugin

logger = logging.getLogger(__name__)


def _name_of(fn: Any) -> str:
    return getattr(fn, "__qualname__", None) or getattr(fn, "__name__", None) or repr(fn)


class HookService:
    """Orchestrates plugin and hook execution for each pipeline phase.

    Args:
        timeout: Seconds allowed per awaited hook or plugin call; None
            disables the limit. Plain functions run to completion.
    """

    def __init__(self, timeout: float | None = 30.0):
        self.timeout = timeout

    async def call(self, fn: Any, arg: Any, label: str) -> Any:
        """Invoke a hook or plugin, awaiting its result if needed.

        Raises:
            HookTimeout: If an awaitable result outlives the timeout
        """
        result = fn(arg)
        if not inspect.isawaitable(result):
            return result
        if self.timeout is None:
            return await result
        try:
            return await asyncio.wait_for(result, timeout=self.timeout)
        except TimeoutError:
            raise HookTimeout(
                f"{label} '{_name_of(fn)}' timed out after {self.timeout:g}s"
            ) from None

    async def run_plugins(
        self, phase: HookPhase, args: OperationArgs, plugins: Sequence[Plugin]
    ) -> None:
        """Run plugin transforms; a returned context replaces ``args.ctx``."""
        for plugin in plugins:
            replacement = await self.call(plugin.transform, args.ctx, "Plugin")
            if isinstance(replacement, RequestContext):
                args.ctx = replacement
            # A replacement context must still report the running phase.
            args.ctx.current_hook = phase

    async def run_phase(
        self,
        phase: HookPhase,
        args: OperationArgs,
        hooks: CollectionHooks,
        plugins: Sequence[Plugin] = (),
    ) -> bool:
        """Run one phase.

        Args:
            phase: Phase to run; also written to ``args.ctx.current_hook``
            args: Shared OperationArgs for the request
            hooks: The collection's hooks
            plugins: Snapshot of active plugins

        Returns:
            False if a beforeOperation hook denied the request, else True.
        """
        args.ctx.current_hook = phase
        await self.run_plugins(phase, args, plugins)

        for hook_fn in hooks.for_phase(phase):
            result = await self.call(hook_fn, args, "Hook")

            if phase is HookPhase.BEFORE_OPERATION:
                if result is not None and not result:
                    logger.info(
                        "Hook '%s' denied %s", _name_of(hook_fn), args.operation.value
                    )
                    return False
            elif phase is HookPhase.MODIFY_INPUT and result is not None:
                args.input_data = result

        return True

    async def run_gate(
        self,
        args: OperationArgs,
        hooks: CollectionHooks,
        plugins: Sequence[Plugin] = (),
    ) -> bool:
        """Run beforeOperation; True when every hook allowed the request."""
        return await self.run_phase(HookPhase.BEFORE_OPERATION, args, hooks, plugins)
