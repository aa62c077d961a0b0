"""Plugin registry - the process-wide table of live plugin instances."""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, FrozenSet, List, Optional, TYPE_CHECKING

from sourcehub.plugins.descriptor import PluginDescriptor
from sourcehub.plugins.sdk import CAPABILITY_OPERATIONS

if TYPE_CHECKING:
    from sourcehub.plugins.sdk import BaseSource

logger = logging.getLogger(__name__)


class PluginState(str, Enum):
    """Install pipeline stages. Transitions only move forward."""

    FETCHED = "fetched"
    VERIFIED = "verified"
    VALIDATED = "validated"
    ACTIVATED = "activated"
    REGISTERED = "registered"


@dataclass
class PluginInstance:
    """A live, activated plugin."""

    descriptor: PluginDescriptor
    source: BaseSource = field(repr=False)
    capabilities: FrozenSet[str] = frozenset()
    digest: str = ""
    state: PluginState = PluginState.ACTIVATED
    activated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def id(self) -> str:
        return self.descriptor.id

    @property
    def display_name(self) -> str:
        return self.descriptor.display_name

    @property
    def version(self) -> str:
        return self.descriptor.version

    @property
    def base_endpoint(self) -> str:
        return self.descriptor.base_endpoint or getattr(self.source, "base_url", "")

    def supports(self, capability: str) -> bool:
        """Check the capability tag and that the operation is actually callable."""
        operation = CAPABILITY_OPERATIONS.get(capability)
        if operation is None or capability not in self.capabilities:
            return False
        return callable(getattr(self.source, operation, None))

    def to_dict(self) -> dict:
        """Serialize plugin instance to dict for API responses."""
        return {
            "id": self.id,
            "name": self.display_name,
            "version": self.version,
            "base_endpoint": self.base_endpoint,
            "capabilities": sorted(self.capabilities),
            "digest": self.digest,
            "state": self.state.value,
            "activated_at": self.activated_at.isoformat(),
        }


class PluginRegistry:
    """Central registry for live plugins.

    One entry per plugin id; registering an existing id replaces it. All access is
    guarded by a lock so the registry can be shared between threads.
    """

    def __init__(self):
        self._plugins: Dict[str, PluginInstance] = {}
        self._lock = threading.RLock()

    def register(self, instance: PluginInstance) -> None:
        """Register a plugin instance, replacing any entry with the same id."""
        with self._lock:
            previous = self._plugins.get(instance.id)
            if previous is not None:
                logger.warning(
                    f"Plugin '{instance.id}' already registered "
                    f"(v{previous.version}), overwriting with v{instance.version}"
                )
            instance.state = PluginState.REGISTERED
            self._plugins[instance.id] = instance
        logger.info(f"Registered plugin: {instance.id} v{instance.version}")

    def unregister(self, plugin_id: str) -> bool:
        """Remove a plugin. Returns True if it was registered."""
        with self._lock:
            removed = self._plugins.pop(plugin_id, None)
        if removed is not None:
            logger.info(f"Unregistered plugin: {plugin_id}")
        return removed is not None

    def get(self, plugin_id: str) -> Optional[PluginInstance]:
        """Get a plugin by ID."""
        with self._lock:
            return self._plugins.get(plugin_id)

    def list(self) -> List[PluginInstance]:
        """Snapshot of all registered plugins."""
        with self._lock:
            return list(self._plugins.values())

    def has(self, plugin_id: str) -> bool:
        """Check if a plugin is registered."""
        with self._lock:
            return plugin_id in self._plugins

    def filter_by_capability(self, capability: str) -> List[PluginInstance]:
        """Plugins that declare a capability and implement its operation."""
        return [p for p in self.list() if p.supports(capability)]

    def count(self) -> int:
        """Get total number of registered plugins."""
        with self._lock:
            return len(self._plugins)

    def clear(self) -> None:
        """Remove every plugin."""
        with self._lock:
            self._plugins.clear()

    def shutdown(self) -> None:
        """End of the registry's application lifecycle."""
        count = self.count()
        self.clear()
        logger.info(f"Plugin registry shut down ({count} plugin(s) released)")
