"""Loader for third-party registry plugins.

Plugins are named in configuration either as an import path
("my_package.plugins:ArtifactoryPlugin") or as an entry point in the
``package_publisher.plugins`` group. A plugin that fails to load is logged
and skipped; the remaining plugins still load.
"""

import importlib
import logging
from collections.abc import Iterable
from importlib.metadata import entry_points
from pathlib import Path
from typing import Any

from package_publisher.config.models import PluginConfig
from package_publisher.exceptions import PluginLoadError
from package_publisher.plugins.base import RegistryPlugin

logger = logging.getLogger(__name__)

ENTRY_POINT_GROUP = "package_publisher.plugins"

_cache: dict[str, type[RegistryPlugin]] = {}


def resolve_plugin_class(spec: str) -> type[RegistryPlugin]:
    """Resolve a plugin class from an import path or entry point name.

    Raises:
        PluginLoadError: If the class cannot be found or does not implement
            the RegistryPlugin contract
    """
    if spec in _cache:
        return _cache[spec]

    if ":" in spec:
        module_name, _, attr = spec.partition(":")
        try:
            module = importlib.import_module(module_name)
        except ImportError as e:
            raise PluginLoadError(f"Cannot import plugin module '{module_name}'", details=str(e)) from e
        obj = getattr(module, attr, None)
        if obj is None:
            raise PluginLoadError(f"Module '{module_name}' has no attribute '{attr}'")
    else:
        matches = [ep for ep in entry_points(group=ENTRY_POINT_GROUP) if ep.name == spec]
        if not matches:
            raise PluginLoadError(
                f"Plugin '{spec}' not found",
                fix_hint=f"Use 'module:Class' or install a package exposing a '{ENTRY_POINT_GROUP}' entry point",
            )
        try:
            obj = matches[0].load()
        except Exception as e:
            raise PluginLoadError(f"Cannot load entry point '{spec}'", details=str(e)) from e

    if not (isinstance(obj, type) and issubclass(obj, RegistryPlugin)):
        raise PluginLoadError(f"'{spec}' is not a RegistryPlugin subclass")
    if getattr(obj, "__abstractmethods__", None):
        missing = ", ".join(sorted(obj.__abstractmethods__))
        raise PluginLoadError(f"Plugin '{spec}' does not implement: {missing}")
    if not isinstance(getattr(obj, "name", None), str) or not obj.name:
        raise PluginLoadError(f"Plugin '{spec}' must define a non-empty 'name'")

    _cache[spec] = obj
    return obj


def load_plugins(
    specs: Iterable[PluginConfig],
    project_root: Path,
    **kwargs: Any,
) -> list[RegistryPlugin]:
    """Instantiate configured third-party plugins, skipping any that fail."""
    plugins = []
    for spec in specs:
        try:
            plugin_class = resolve_plugin_class(spec.name)
            plugins.append(plugin_class(project_root, plugin_config=spec.config, **kwargs))
        except PluginLoadError as e:
            logger.warning("Skipping plugin %s: %s", spec.name, e.message)
        except Exception as e:
            logger.warning("Skipping plugin %s: failed to initialize (%s)", spec.name, e)
        else:
            logger.info("Loaded plugin %s", plugin_class.name)
    return plugins


def clear_cache() -> None:
    _cache.clear()
