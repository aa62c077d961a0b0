"""Global constants for SourceHub."""

import os
from pathlib import Path

# Directory paths
SOURCEHUB_ROOT = Path(__file__).resolve().parent.parent

# Data directory (supports SOURCEHUB_DATA_DIR env var, relative paths resolve against SOURCEHUB_ROOT)
_data_dir_env = os.getenv("SOURCEHUB_DATA_DIR", "")
if _data_dir_env:
    _data_dir_path = Path(_data_dir_env)
    DATA_DIR = _data_dir_path if _data_dir_path.is_absolute() else (SOURCEHUB_ROOT / _data_dir_path).resolve()
else:
    DATA_DIR = SOURCEHUB_ROOT / "data"

INSTALLED_PLUGINS_FILE = DATA_DIR / "installed.json"

# Catalog mirrors, tried in order
DEFAULT_CATALOG_URLS = [
    "https://cdn.jsdelivr.net/gh/sourcehub/catalog@main/registry/sources.json",
    "https://raw.githubusercontent.com/sourcehub/catalog/main/registry/sources.json",
]
CATALOG_URLS = [
    u.strip() for u in os.getenv("SOURCEHUB_CATALOG_URLS", "").split(",") if u.strip()
] or DEFAULT_CATALOG_URLS

# Catalog document cache lifetime (seconds)
CATALOG_TTL = float(os.getenv("SOURCEHUB_CATALOG_TTL", str(3 * 60 * 60)))

# Activated plugin cache lifetime (seconds, 0 disables expiry)
PLUGIN_CACHE_TTL = float(os.getenv("SOURCEHUB_CACHE_TTL", str(24 * 60 * 60)))

# Network fetch settings
FETCH_TIMEOUT = float(os.getenv("SOURCEHUB_FETCH_TIMEOUT", "30"))
FETCH_RETRIES = int(os.getenv("SOURCEHUB_FETCH_RETRIES", "3"))
FETCH_BACKOFF_BASE = float(os.getenv("SOURCEHUB_FETCH_BACKOFF", "1.0"))

USER_AGENT = "SourceHub-Loader/1.0"

# Logical module name plugins import the SDK from
SDK_LOGICAL_MODULE = "sourcehub_sdk"
SDK_CONCRETE_MODULE = "sourcehub.plugins.sdk"
