"""Plugin configuration service - persists which plugins are installed."""

import json
import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


class PluginConfigService:
    """Manages the installed-plugins state file.

    Config format:
    {
        "installed": {
            "mangadex": {
                "version": "1.2.0",
                "digest": "9f86d0...",
                "installed_at": "2026-01-01T00:00:00+00:00"
            }
        }
    }
    """

    def __init__(self, config_file: Path):
        self.config_file = config_file
        self._lock = threading.Lock()
        self._config: Dict[str, Any] = self._load()

    def _load(self) -> Dict[str, Any]:
        """Load config from file, creating defaults if not found."""
        if self.config_file.exists():
            try:
                with open(self.config_file, "r", encoding="utf-8") as f:
                    data = json.load(f)
                if isinstance(data, dict):
                    data.setdefault("installed", {})
                    return data
                logger.error(f"Plugin config {self.config_file} is not a JSON object, ignoring")
            except (json.JSONDecodeError, IOError) as e:
                logger.error(f"Error loading plugin config: {e}")

        return {"installed": {}}

    def _save(self) -> None:
        """Save config to file."""
        self.config_file.parent.mkdir(parents=True, exist_ok=True)
        with open(self.config_file, "w", encoding="utf-8") as f:
            json.dump(self._config, f, indent=2, ensure_ascii=False)
        logger.debug(f"Saved plugin config to {self.config_file}")

    def is_installed(self, plugin_id: str) -> bool:
        """Check if a plugin is recorded as installed."""
        with self._lock:
            return plugin_id in self._config.get("installed", {})

    def get_installed(self) -> Dict[str, Dict[str, Any]]:
        """Get a copy of all installed plugin records."""
        with self._lock:
            return {k: dict(v) for k, v in self._config.get("installed", {}).items()}

    def get_installed_version(self, plugin_id: str) -> Optional[str]:
        """Get the recorded version of an installed plugin."""
        with self._lock:
            record = self._config.get("installed", {}).get(plugin_id)
            return record.get("version") if record else None

    def record_install(self, plugin_id: str, version: str, digest: str = "") -> None:
        """Record a successful install or update."""
        with self._lock:
            installed = self._config.setdefault("installed", {})
            installed[plugin_id] = {
                "version": version,
                "digest": digest,
                "installed_at": datetime.now(timezone.utc).isoformat(),
            }
            self._save()
        logger.info(f"Recorded install: {plugin_id} v{version}")

    def record_uninstall(self, plugin_id: str) -> None:
        """Forget an installed plugin."""
        with self._lock:
            installed = self._config.get("installed", {})
            if plugin_id not in installed:
                return
            del installed[plugin_id]
            self._save()
        logger.info(f"Recorded uninstall: {plugin_id}")

    def reload(self) -> None:
        """Reload config from disk."""
        with self._lock:
            self._config = self._load()
