"""Plugin cache - activated instances keyed by plugin id and version."""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Dict, List, Optional

from sourcehub.constants import PLUGIN_CACHE_TTL
from sourcehub.plugins.registry import PluginInstance

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    """One cached activation."""

    id: str
    version: str
    instance: PluginInstance
    fetched_at: float


class PluginCache:
    """In-memory cache of activated plugins.

    A hit requires the same id and, when given, the same version. Storing a different
    version for an id supersedes the previous entry.
    """

    def __init__(self, ttl: Optional[float] = PLUGIN_CACHE_TTL):
        """Initialize the cache.

        Args:
            ttl: Entry lifetime in seconds; None or 0 disables expiry
        """
        self.ttl = ttl or None
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, plugin_id: str, version: Optional[str] = None) -> Optional[PluginInstance]:
        """Get a cached instance, or None on a miss.

        Args:
            plugin_id: Plugin ID
            version: Required version; an entry for another version is a miss
        """
        with self._lock:
            entry = self._entries.get(plugin_id)
            if entry is None:
                return None
            if self._expired(entry):
                del self._entries[plugin_id]
                logger.debug(f"Cache entry expired: {plugin_id} v{entry.version}")
                return None
            if version is not None and entry.version != version:
                return None
            return entry.instance

    def put(self, plugin_id: str, version: str, instance: PluginInstance) -> None:
        """Store an instance, superseding any entry for the same id."""
        with self._lock:
            previous = self._entries.get(plugin_id)
            self._entries[plugin_id] = CacheEntry(
                id=plugin_id,
                version=version,
                instance=instance,
                fetched_at=time.time(),
            )
        if previous is not None and previous.version != version:
            logger.info(f"Cache entry for '{plugin_id}' superseded: v{previous.version} -> v{version}")

    def invalidate(self, plugin_id: str) -> bool:
        """Drop the entry for a plugin. Returns True if one existed."""
        with self._lock:
            return self._entries.pop(plugin_id, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def entries(self) -> List[CacheEntry]:
        """Snapshot of live (non-expired) entries."""
        with self._lock:
            return [e for e in self._entries.values() if not self._expired(e)]

    def _expired(self, entry: CacheEntry) -> bool:
        return self.ttl is not None and (time.time() - entry.fetched_at) > self.ttl
