"""Plugin model."""

from __future__ import annotations

import importlib
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from collectra.errors import PluginError

if TYPE_CHECKING:
    from collectra.context import RequestContext

# Plugin transform: receives the context, may return a replacement.
PluginFn = Callable[["RequestContext"], "RequestContext | None | Awaitable[RequestContext | None]"]


def resolve_target(target: str) -> PluginFn:
    """Import a ``module:attribute`` path.

    Raises:
        PluginError: If the module or attribute cannot be imported
    """
    module_name, _, attr = target.partition(":")
    if not module_name or not attr:
        raise PluginError(f"Plugin target '{target}' must look like 'module:function'")
    try:
        module = importlib.import_module(module_name)
        fn = getattr(module, attr)
    except (ImportError, AttributeError) as e:
        raise PluginError(f"Cannot load plugin target '{target}': {e}") from e
    if not callable(fn):
        raise PluginError(f"Plugin target '{target}' is not callable")
    return fn


@dataclass
class Plugin:
    """An installable context-transforming unit.

    Attributes:
        title: Unique key used by enable/disable/install/uninstall
        author, version: Descriptive metadata
        active: Only active plugins run in the dispatch pipeline
        target: ``module:function`` import path of the transform
        fn: The transform itself, when registered in-process
    """

    title: str
    author: str = ""
    version: str = ""
    active: bool = True
    target: str | None = None
    fn: PluginFn | None = None

    @property
    def transform(self) -> PluginFn:
        """The transform function, importing ``target`` on first use."""
        if self.fn is None:
            if not self.target:
                raise PluginError(f"Plugin '{self.title}' has no transform")
            self.fn = resolve_target(self.target)
        return self.fn

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "author": self.author,
            "version": self.version,
            "active": self.active,
        }
