"""Plugin descriptor model - catalog metadata describing an installable plugin."""

import re
from typing import Any, Dict, FrozenSet, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

PLUGIN_ID_PATTERN = re.compile(r"^[a-z0-9]+(-[a-z0-9]+)*$")
SHA256_HEX_PATTERN = re.compile(r"^[0-9a-fA-F]{64}$")

# Catalog capability keys -> capability names
_CATALOG_CAPABILITY_KEYS = {
    "supportsSearch": "search",
    "supportsLatest": "latest",
    "supportsPopular": "popular",
    "supportsTrending": "trending",
}


class CapabilityFlags(BaseModel):
    """Optional operations a plugin claims to support."""

    model_config = ConfigDict(extra="ignore")

    search: bool = True
    latest: bool = False
    popular: bool = False
    trending: bool = False

    @model_validator(mode="before")
    @classmethod
    def _accept_catalog_keys(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        out = dict(data)
        for catalog_key, name in _CATALOG_CAPABILITY_KEYS.items():
            if catalog_key in out and name not in out:
                out[name] = out.pop(catalog_key)
        return out

    def enabled(self) -> FrozenSet[str]:
        """Names of all capabilities declared as supported."""
        return frozenset(name for name, value in self.model_dump().items() if value)


class PluginDescriptor(BaseModel):
    """Catalog record for one plugin.

    Accepts both the flat form (artifactUrl, expectedDigest, ...) and the nested form
    published by the catalog (downloads.stable, integrity.sha256, metadata.tags, ...).
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str = Field(..., description="Unique plugin identifier (lowercase kebab-case)")
    display_name: str = Field(..., alias="displayName", description="Human-readable name")
    version: str = Field(..., description="Plugin version (semver)")
    base_endpoint: str = Field(
        default="",
        alias="baseEndpoint",
        description="Site the plugin scrapes; never fetched by the loader",
    )
    artifact_url: str = Field(..., alias="artifactUrl", description="URL of the plugin source file")
    expected_digest: Optional[str] = Field(
        default=None,
        alias="expectedDigest",
        description="Hex SHA-256 of the artifact bytes",
    )
    capabilities: CapabilityFlags = Field(default_factory=CapabilityFlags)

    description: str = ""
    author: str = ""
    icon: str = ""
    tags: List[str] = Field(default_factory=list)
    languages: List[str] = Field(default_factory=list)
    nsfw: bool = False
    official: bool = False

    @model_validator(mode="before")
    @classmethod
    def _flatten_catalog_record(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        out: Dict[str, Any] = dict(data)

        if "name" in out and "displayName" not in out and "display_name" not in out:
            out["displayName"] = out["name"]
        if "baseUrl" in out and "baseEndpoint" not in out and "base_endpoint" not in out:
            out["baseEndpoint"] = out["baseUrl"]

        downloads = out.get("downloads")
        if isinstance(downloads, dict) and "artifactUrl" not in out and "artifact_url" not in out:
            url = downloads.get("stable") or downloads.get("latest")
            if url:
                out["artifactUrl"] = url

        integrity = out.get("integrity")
        if isinstance(integrity, dict) and "expectedDigest" not in out and "expected_digest" not in out:
            if integrity.get("sha256"):
                out["expectedDigest"] = integrity["sha256"]

        metadata = out.get("metadata")
        if isinstance(metadata, dict):
            for key in ("tags", "languages", "nsfw", "official"):
                if key in metadata and key not in out:
                    out[key] = metadata[key]

        return out

    @field_validator("id")
    @classmethod
    def id_is_kebab_case(cls, v: str) -> str:
        if not PLUGIN_ID_PATTERN.match(v or ""):
            raise ValueError(f"plugin id must be lowercase kebab-case, got {v!r}")
        return v

    @field_validator("expected_digest")
    @classmethod
    def digest_is_sha256_hex(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        v = v.strip()
        if not SHA256_HEX_PATTERN.match(v):
            raise ValueError("expected_digest must be a 64-character hex SHA-256 digest")
        return v.lower()

    def to_dict(self) -> dict:
        """Serialize descriptor for API responses."""
        return {
            "id": self.id,
            "name": self.display_name,
            "version": self.version,
            "base_endpoint": self.base_endpoint,
            "artifact_url": self.artifact_url,
            "expected_digest": self.expected_digest,
            "capabilities": sorted(self.capabilities.enabled()),
            "description": self.description,
            "author": self.author,
            "tags": list(self.tags),
            "languages": list(self.languages),
            "nsfw": self.nsfw,
            "official": self.official,
        }
