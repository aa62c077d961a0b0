"""Plugin system for SourceHub.

Imports are lazy so lightweight pieces (descriptor parsing, the validator, the
config service) can be used without pulling in aiohttp or the activator.
"""

__all__ = [
    "PluginDescriptor",
    "CapabilityFlags",
    "PluginCatalog",
    "ArtifactFetcher",
    "FetchResult",
    "CapabilityValidator",
    "ValidationVerdict",
    "PluginActivator",
    "PluginRegistry",
    "PluginInstance",
    "PluginState",
    "PluginCache",
    "PluginManager",
    "UpdateInfo",
    "PluginConfigService",
    "BaseSource",
]


def __getattr__(name):
    if name in ("PluginDescriptor", "CapabilityFlags"):
        from sourcehub.plugins import descriptor
        return getattr(descriptor, name)
    if name == "PluginCatalog":
        from sourcehub.plugins.catalog import PluginCatalog
        return PluginCatalog
    if name in ("ArtifactFetcher", "FetchResult"):
        from sourcehub.plugins import fetcher
        return getattr(fetcher, name)
    if name in ("CapabilityValidator", "ValidationVerdict"):
        from sourcehub.plugins import validator
        return getattr(validator, name)
    if name == "PluginActivator":
        from sourcehub.plugins.activator import PluginActivator
        return PluginActivator
    if name in ("PluginRegistry", "PluginInstance", "PluginState"):
        from sourcehub.plugins import registry
        return getattr(registry, name)
    if name == "PluginCache":
        from sourcehub.plugins.cache import PluginCache
        return PluginCache
    if name in ("PluginManager", "UpdateInfo"):
        from sourcehub.plugins import manager
        return getattr(manager, name)
    if name == "PluginConfigService":
        from sourcehub.plugins.config import PluginConfigService
        return PluginConfigService
    if name == "BaseSource":
        from sourcehub.plugins.sdk import BaseSource
        return BaseSource
    raise AttributeError(f"module 'sourcehub.plugins' has no attribute {name!r}")
