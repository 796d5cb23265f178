"""Framework-provided access hooks.

Each is a beforeOperation hook usable by name from collection YAML:

    hooks:
      beforeOperation: [adminOnly]
"""

from collectra.hooks.registry import HookRegistry
from collectra.hooks.types import OperationArgs


def authenticated(args: OperationArgs) -> bool:
    """Allow any request carrying session data."""
    return args.ctx.session_data is not None


def admin_only(args: OperationArgs) -> bool:
    """Allow sessions whose ``user_type`` (or ``role``) is admin."""
    session = args.ctx.session_data or {}
    return (session.get("user_type") or session.get("role")) == "admin"


def local_only(args: OperationArgs) -> bool:
    """Allow requests from a loopback client."""
    return args.ctx.flags.is_local


BUILTIN_HOOKS = {
    "authenticated": authenticated,
    "adminOnly": admin_only,
    "localOnly": local_only,
}


def register_builtin_hooks() -> None:
    """Register framework-provided hooks.

    Called at application startup, before collections are loaded.
    """
    for name, fn in BUILTIN_HOOKS.items():
        HookRegistry.register(name, fn)
