"""Process-wide plugin registry.

Plugins are loaded once at startup into two immutable snapshots,
``active`` and ``inactive``. Every install/uninstall/enable/disable
goes through a single writer lock, updates the store, and swaps in a
fresh snapshot. Requests read ``active`` once at their start, so a
toggle never changes the plugins an in-flight request runs.
"""

import asyncio
import dataclasses
import logging
from importlib.metadata import entry_points
from typing import Any

from starlette.concurrency import run_in_threadpool

from collectra.errors import PluginError
from collectra.plugins.store import PluginStore
from collectra.plugins.types import Plugin, resolve_target

logger = logging.getLogger(__name__)

ENTRY_POINT_GROUP = "collectra.plugins"


class PluginRegistry:
    """Active/inactive plugin lists with single-writer updates.

    Args:
        store: Persistent plugin rows; None keeps plugins in memory only
        plugins: Plugins registered in-process (e.g. passed to create_app)
    """

    def __init__(self, store: PluginStore | None = None, plugins: tuple[Plugin, ...] = ()):
        self._store = store
        self._builtin = {p.title: p for p in plugins}
        self._plugins: dict[str, Plugin] = {}
        self._lock = asyncio.Lock()
        self.active: tuple[Plugin, ...] = ()
        self.inactive: tuple[Plugin, ...] = ()

    def load(self) -> None:
        """Read installed plugins and build the snapshots."""
        # Built-ins are copied; the caller's Plugin objects are never mutated.
        plugins = {title: dataclasses.replace(p) for title, p in self._builtin.items()}
        if self._store is not None:
            for stored in self._store.list_all():
                existing = plugins.get(stored.title)
                if existing is not None:
                    existing.active = stored.active
                elif stored.target:
                    plugins[stored.title] = stored
                else:
                    logger.warning(
                        "Skipping stored plugin '%s': not registered in-process and no target",
                        stored.title,
                    )
        self._plugins = plugins
        self._snapshot()
        logger.info(
            "Loaded %d plugin(s), %d active", len(self._plugins), len(self.active)
        )

    def _snapshot(self) -> None:
        self.active = tuple(p for p in self._plugins.values() if p.active)
        self.inactive = tuple(p for p in self._plugins.values() if not p.active)

    def get(self, title: str) -> Plugin:
        """Look up an installed plugin.

        Raises:
            PluginError: If no plugin has this title
        """
        try:
            return self._plugins[title]
        except KeyError:
            raise PluginError(f"Plugin '{title}' is not installed.") from None

    def list_plugins(self) -> list[dict[str, Any]]:
        return [p.to_dict() for p in self._plugins.values()]

    # ------------------------------------------------------------------
    # Writers
    # ------------------------------------------------------------------

    async def enable(self, title: str) -> Plugin:
        return await self._set_active(title, True)

    async def disable(self, title: str) -> Plugin:
        return await self._set_active(title, False)

    async def _set_active(self, title: str, active: bool) -> Plugin:
        async with self._lock:
            plugin = self.get(title)
            if self._store is not None:
                updated = await run_in_threadpool(self._store.set_active, title, active)
                if not updated:
                    # In-process plugins get a row on their first toggle.
                    row = dataclasses.replace(plugin, active=active)
                    await run_in_threadpool(self._store.add, row)
            plugin.active = active
            self._snapshot()
        logger.info("%s plugin '%s'", "Enabled" if active else "Disabled", title)
        return plugin

    async def install(self, title: str, target: str | None = None) -> Plugin:
        """Install a plugin by entry-point name or explicit import target.

        Args:
            title: Plugin title; looked up in the ``collectra.plugins``
                entry-point group when ``target`` is not given
            target: ``module:function`` path of the transform

        Raises:
            PluginError: If already installed or the target cannot be found
        """
        async with self._lock:
            if title in self._plugins:
                raise PluginError(f"Plugin '{title}' is already installed.", status=409)
            plugin = self._discover(title) if target is None else Plugin(title=title, target=target)
            plugin.fn = resolve_target(plugin.target)
            if self._store is not None:
                await run_in_threadpool(self._store.add, plugin)
            self._plugins[title] = plugin
            self._snapshot()
        logger.info("Installed plugin '%s' (%s)", title, plugin.target)
        return plugin

    async def uninstall(self, title: str) -> Plugin:
        async with self._lock:
            plugin = self.get(title)
            if self._store is not None:
                await run_in_threadpool(self._store.delete, title)
            del self._plugins[title]
            self._snapshot()
        logger.info("Uninstalled plugin '%s'", title)
        return plugin

    @staticmethod
    def _discover(title: str) -> Plugin:
        for ep in entry_points(group=ENTRY_POINT_GROUP):
            if ep.name != title:
                continue
            dist = ep.dist
            return Plugin(
                title=title,
                author=(dist.metadata.get("Author") or "") if dist else "",
                version=dist.version if dist else "",
                target=ep.value,
            )
        raise PluginError(
            f"No plugin named '{title}' in entry-point group '{ENTRY_POINT_GROUP}'."
        )
