"""Collectra request hook system.

Provides extension points around every collection operation:
- beforeOperation: Runs first; any hook returning False denies the request
- validateInput: Write requests only; raise to reject the input
- modifyInput: Write requests only; return a replacement for the input
- afterOperation: After persistence; return value ignored

Usage:
    from collectra.hooks import hook, OperationArgs

    @hook("stampAuthor")
    def stamp_author(args: OperationArgs):
        data = dict(args.input_data["data"])
        data["author"] = args.ctx.session_data["sub"]
        return {**args.input_data, "data": data}
"""

from collectra.hooks.builtins import register_builtin_hooks
from collectra.hooks.registry import HookRegistry, hook
from collectra.hooks.types import CollectionHooks, HookPhase, OperationArgs

__all__ = [
    "CollectionHooks",
    "HookPhase",
    "HookRegistry",
    "OperationArgs",
    "hook",
    "register_builtin_hooks",
]
