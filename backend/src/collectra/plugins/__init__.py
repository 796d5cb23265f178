"""Plugins - installable context transforms."""

from collectra.plugins.registry import ENTRY_POINT_GROUP, PluginRegistry
from collectra.plugins.store import PluginStore
from collectra.plugins.types import Plugin

__all__ = ["ENTRY_POINT_GROUP", "Plugin", "PluginRegistry", "PluginStore"]
