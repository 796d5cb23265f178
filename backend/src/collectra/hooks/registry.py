"""Named hooks.

Collection YAML refers to hooks by name (``beforeOperation: [adminOnly]``).
The names resolve through this process-wide registry when the metadata
is loaded, so every hook a file mentions must be registered first:
built-ins by ``register_builtin_hooks()``, application hooks with
``@hook("name")`` at import time.
"""

from collections.abc import Callable

from collectra.hooks.types import HookFn


class HookRegistry:
    """Process-wide name -> hook function table."""

    _hooks: dict[str, HookFn] = {}

    @classmethod
    def register(cls, name: str, hook_fn: HookFn) -> HookFn:
        """Register ``hook_fn`` under ``name`` and return it.

        The first registration of a name wins; later ones are ignored,
        so re-importing a hook module is harmless.
        """
        return cls._hooks.setdefault(name, hook_fn)

    @classmethod
    def get(cls, name: str) -> HookFn:
        """Resolve a hook name.

        Raises:
            ValueError: If nothing is registered under ``name``; the
                metadata loader reports it as a configuration error
        """
        try:
            return cls._hooks[name]
        except KeyError:
            raise ValueError(
                f"Hook '{name}' is not registered. "
                "Hooks must be registered before collections are loaded."
            ) from None

    @classmethod
    def is_registered(cls, name: str) -> bool:
        return name in cls._hooks

    @classmethod
    def list_registered(cls) -> list[str]:
        return sorted(cls._hooks)

    @classmethod
    def clear(cls) -> None:
        """Forget every registration (test isolation)."""
        cls._hooks.clear()


def hook(name: str) -> Callable[[HookFn], HookFn]:
    """Register the decorated function as the hook ``name``.

        @hook("stampAuthor")
        async def stamp_author(args: OperationArgs):
            args.input_data["data"]["author"] = args.ctx.session_data["sub"]
    """

    def decorator(fn: HookFn) -> HookFn:
        HookRegistry.register(name, fn)
        return fn

    return decorator
