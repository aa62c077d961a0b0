"""Dependency injection container for services."""

import logging

from sourcehub.constants import CATALOG_URLS, INSTALLED_PLUGINS_FILE
from sourcehub.plugins.cache import PluginCache
from sourcehub.plugins.catalog import PluginCatalog
from sourcehub.plugins.config import PluginConfigService
from sourcehub.plugins.fetcher import ArtifactFetcher
from sourcehub.plugins.manager import PluginManager
from sourcehub.plugins.registry import PluginRegistry

logger = logging.getLogger(__name__)

# ============================================================================
# Global service instances (Singleton pattern, but exposed via functions for easier testing/mocking)
# ============================================================================

_fetcher_instance = None
_plugin_registry_instance = None
_plugin_cache_instance = None
_plugin_catalog_instance = None
_plugin_config_instance = None
_plugin_manager_instance = None


def get_fetcher() -> ArtifactFetcher:
    """Get shared artifact fetcher (singleton)."""
    global _fetcher_instance
    if _fetcher_instance is None:
        _fetcher_instance = ArtifactFetcher()
        logger.info("Created ArtifactFetcher instance")
    return _fetcher_instance


def get_plugin_registry() -> PluginRegistry:
    """Get plugin registry (singleton)."""
    global _plugin_registry_instance
    if _plugin_registry_instance is None:
        _plugin_registry_instance = PluginRegistry()
        logger.info("Created PluginRegistry instance")
    return _plugin_registry_instance


def get_plugin_cache() -> PluginCache:
    """Get plugin cache (singleton)."""
    global _plugin_cache_instance
    if _plugin_cache_instance is None:
        _plugin_cache_instance = PluginCache()
        logger.info("Created PluginCache instance")
    return _plugin_cache_instance


def get_plugin_catalog() -> PluginCatalog:
    """Get plugin catalog (singleton)."""
    global _plugin_catalog_instance
    if _plugin_catalog_instance is None:
        _plugin_catalog_instance = PluginCatalog(urls=CATALOG_URLS, fetcher=get_fetcher())
        logger.info(f"Created PluginCatalog instance ({len(CATALOG_URLS)} mirror(s))")
    return _plugin_catalog_instance


def get_plugin_config_service() -> PluginConfigService:
    """Get installed-plugins config service (singleton)."""
    global _plugin_config_instance
    if _plugin_config_instance is None:
        _plugin_config_instance = PluginConfigService(INSTALLED_PLUGINS_FILE)
        logger.info(f"Created PluginConfigService instance ({INSTALLED_PLUGINS_FILE})")
    return _plugin_config_instance


def get_plugin_manager() -> PluginManager:
    """Get plugin manager (singleton)."""
    global _plugin_manager_instance
    if _plugin_manager_instance is None:
        _plugin_manager_instance = PluginManager(
            catalog=get_plugin_catalog(),
            registry=get_plugin_registry(),
            cache=get_plugin_cache(),
            fetcher=get_fetcher(),
            config_service=get_plugin_config_service(),
        )
        logger.info("Created PluginManager instance")
    return _plugin_manager_instance


# Test utility function (for unit testing - resets all singletons)
def reset_services():
    """Reset all service instances (only for testing)."""
    global _fetcher_instance, _plugin_registry_instance, _plugin_cache_instance
    global _plugin_catalog_instance, _plugin_config_instance, _plugin_manager_instance

    _fetcher_instance = None
    _plugin_registry_instance = None
    _plugin_cache_instance = None
    _plugin_catalog_instance = None
    _plugin_config_instance = None
    _plugin_manager_instance = None
    logger.info("Reset all service instances")
