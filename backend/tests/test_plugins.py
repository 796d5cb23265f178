"""Tests for the plugin model, store and registry."""

import asyncio

import pytest

from collectra.errors import PluginError
from collectra.plugins import Plugin, PluginRegistry, PluginStore
from collectra.plugins.types import resolve_target


def stamp_plugin(ctx):
    """Plugin target used by import-path tests."""
    ctx.custom_vars["stamped"] = True


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def store(tmp_path):
    store = PluginStore(f"sqlite:///{tmp_path / 'plugins.db'}")
    yield store
    store.close()


TARGET = f"{__name__}:stamp_plugin"


# =============================================================================
# Plugin model
# =============================================================================


class TestPlugin:
    def test_resolve_target(self):
        assert resolve_target(TARGET) is stamp_plugin

    def test_bad_target_format(self):
        with pytest.raises(PluginError, match="module:function"):
            resolve_target("no_colon_here")

    def test_missing_module(self):
        with pytest.raises(PluginError, match="Cannot load"):
            resolve_target("collectra.does_not_exist:fn")

    def test_lazy_transform(self):
        plugin = Plugin(title="stamp", target=TARGET)
        assert plugin.fn is None
        assert plugin.transform is stamp_plugin

    def test_no_transform(self):
        with pytest.raises(PluginError, match="no transform"):
            Plugin(title="empty").transform

    def test_to_dict(self):
        plugin = Plugin(title="seo", author="Ann", version="1.0", active=False)
        assert plugin.to_dict() == {
            "title": "seo",
            "author": "Ann",
            "version": "1.0",
            "active": False,
        }


# =============================================================================
# PluginStore
# =============================================================================


class TestPluginStore:
    def test_add_and_list(self, store):
        store.add(Plugin(title="a", target=TARGET))
        store.add(Plugin(title="b", target=TARGET, active=False))
        plugins = store.list_all()
        assert [p.title for p in plugins] == ["a", "b"]
        assert [p.active for p in plugins] == [True, False]

    def test_get(self, store):
        store.add(Plugin(title="a", version="2.0", target=TARGET))
        assert store.get("a").version == "2.0"
        assert store.get("missing") is None

    def test_set_active(self, store):
        store.add(Plugin(title="a", target=TARGET))
        assert store.set_active("a", False) is True
        assert store.get("a").active is False
        assert store.set_active("missing", True) is False

    def test_delete(self, store):
        store.add(Plugin(title="a", target=TARGET))
        assert store.delete("a") is True
        assert store.delete("a") is False


# =============================================================================
# PluginRegistry
# =============================================================================


class TestPluginRegistry:
    def test_load_splits_active_and_inactive(self, store):
        store.add(Plugin(title="on", target=TARGET))
        store.add(Plugin(title="off", target=TARGET, active=False))
        registry = PluginRegistry(store)
        registry.load()
        assert [p.title for p in registry.active] == ["on"]
        assert [p.title for p in registry.inactive] == ["off"]

    def test_builtin_plugins_keep_order_and_stored_state(self, store):
        store.add(Plugin(title="second", target=TARGET, active=False))
        registry = PluginRegistry(
            store,
            (Plugin(title="first", fn=stamp_plugin), Plugin(title="second", fn=stamp_plugin)),
        )
        registry.load()
        assert [p.title for p in registry.active] == ["first"]
        assert [p.title for p in registry.inactive] == ["second"]

    @pytest.mark.asyncio
    async def test_enable_disable_persist(self, store):
        store.add(Plugin(title="p", target=TARGET, active=False))
        registry = PluginRegistry(store)
        registry.load()

        await registry.enable("p")
        assert [p.title for p in registry.active] == ["p"]
        assert store.get("p").active is True

        await registry.disable("p")
        assert registry.active == ()
        assert store.get("p").active is False

    @pytest.mark.asyncio
    async def test_toggle_does_not_change_taken_snapshot(self, store):
        store.add(Plugin(title="p", target=TARGET))
        registry = PluginRegistry(store)
        registry.load()

        in_flight = registry.active
        await registry.disable("p")
        assert [p.title for p in in_flight] == ["p"]
        assert registry.active == ()

    @pytest.mark.asyncio
    async def test_unknown_title(self, store):
        registry = PluginRegistry(store)
        registry.load()
        with pytest.raises(PluginError, match="not installed"):
            await registry.enable("ghost")

    @pytest.mark.asyncio
    async def test_install_with_target(self, store):
        registry = PluginRegistry(store)
        registry.load()

        plugin = await registry.install("stamp", target=TARGET)
        assert plugin.fn is stamp_plugin
        assert [p.title for p in registry.active] == ["stamp"]
        assert store.get("stamp").target == TARGET

    @pytest.mark.asyncio
    async def test_install_twice(self, store):
        registry = PluginRegistry(store)
        registry.load()
        await registry.install("stamp", target=TARGET)
        with pytest.raises(PluginError, match="already installed") as exc_info:
            await registry.install("stamp", target=TARGET)
        assert exc_info.value.status == 409

    @pytest.mark.asyncio
    async def test_install_unknown_entry_point(self, store):
        registry = PluginRegistry(store)
        registry.load()
        with pytest.raises(PluginError, match="entry-point group"):
            await registry.install("not-a-real-plugin")

    @pytest.mark.asyncio
    async def test_install_bad_target_not_stored(self, store):
        registry = PluginRegistry(store)
        registry.load()
        with pytest.raises(PluginError):
            await registry.install("broken", target="collectra.nope:fn")
        assert store.get("broken") is None

    @pytest.mark.asyncio
    async def test_uninstall(self, store):
        store.add(Plugin(title="p", target=TARGET))
        registry = PluginRegistry(store)
        registry.load()
        await registry.uninstall("p")
        assert registry.list_plugins() == []
        assert store.get("p") is None

    @pytest.mark.asyncio
    async def test_concurrent_toggles_serialize(self, store):
        store.add(Plugin(title="p", target=TARGET))
        registry = PluginRegistry(store)
        registry.load()

        await asyncio.gather(*(registry.disable("p") if i % 2 else registry.enable("p") for i in range(10)))
        final = store.get("p").active
        assert (len(registry.active) == 1) is final

    @pytest.mark.asyncio
    async def test_builtin_toggle_survives_reload(self, store):
        builtin = Plugin(title="inproc", fn=stamp_plugin)
        registry = PluginRegistry(store, (builtin,))
        registry.load()

        await registry.disable("inproc")
        assert store.get("inproc").active is False

        reloaded = PluginRegistry(store, (Plugin(title="inproc", fn=stamp_plugin),))
        reloaded.load()
        assert [p.title for p in reloaded.inactive] == ["inproc"]

        await reloaded.enable("inproc")
        assert store.get("inproc").active is True

    @pytest.mark.asyncio
    async def test_caller_plugins_not_mutated(self, store):
        store.add(Plugin(title="p", target=TARGET, active=False))
        builtin = Plugin(title="p", fn=stamp_plugin)
        registry = PluginRegistry(store, (builtin,))
        registry.load()
        assert builtin.active is True

        await registry.enable("p")
        await registry.disable("p")
        assert builtin.active is True
        assert registry.inactive[0] is not builtin

    def test_stored_row_without_target_or_builtin_skipped(self, store):
        store.add(Plugin(title="orphan"))
        registry = PluginRegistry(store)
        registry.load()
        assert registry.list_plugins() == []

    def test_in_memory_registry(self):
        registry = PluginRegistry(None, (Plugin(title="x", fn=stamp_plugin),))
        registry.load()
        assert registry.list_plugins()[0]["title"] == "x"
