"""Plugin catalog - fetches the remote catalog document and parses its descriptors."""

import asyncio
import json
import logging
import time
from typing import Any, Dict, List, Optional, Sequence

from pydantic import ValidationError

from sourcehub.constants import CATALOG_TTL, CATALOG_URLS
from sourcehub.plugins.descriptor import PluginDescriptor
from sourcehub.plugins.errors import CatalogError, FetchError, PluginNotFoundError
from sourcehub.plugins.fetcher import ArtifactFetcher

logger = logging.getLogger(__name__)


class PluginCatalog:
    """Catalog of installable plugins, mirrored across one or more URLs.

    The document is cached for ``ttl`` seconds. Mirrors are tried in order until one
    returns a well-formed document.
    """

    def __init__(
        self,
        urls: Optional[Sequence[str]] = None,
        fetcher: Optional[ArtifactFetcher] = None,
        ttl: float = CATALOG_TTL,
    ):
        self.urls = list(urls) if urls is not None else list(CATALOG_URLS)
        self.fetcher = fetcher or ArtifactFetcher()
        self.ttl = ttl
        self._document: Optional[Dict[str, Any]] = None
        self._descriptors: Dict[str, PluginDescriptor] = {}
        self._loaded_at: Optional[float] = None
        self._refresh_lock = asyncio.Lock()

    async def refresh(self) -> List[PluginDescriptor]:
        """Fetch the catalog now, bypassing the cache.

        Returns:
            All descriptors in the fresh document

        Raises:
            CatalogError: no mirror returned a usable document
        """
        async with self._refresh_lock:
            errors = []
            for url in self.urls:
                try:
                    document = await self.fetcher.fetch_json(url)
                    self.load_document(document)
                    logger.info(f"Synced {len(self._descriptors)} plugin(s) from catalog {url}")
                    return self.list_loaded()
                except (FetchError, CatalogError, json.JSONDecodeError) as e:
                    logger.warning(f"Catalog mirror {url} failed: {e}")
                    errors.append(f"{url}: {e}")

            raise CatalogError("All catalog mirrors failed: " + "; ".join(errors or ["no URLs configured"]))

    def load_document(self, document: Any) -> None:
        """Validate and load a catalog document.

        Invalid records are skipped; the first record wins for duplicate ids.

        Raises:
            CatalogError: the document itself has the wrong shape
        """
        if not isinstance(document, dict):
            raise CatalogError("Invalid catalog format: expected a JSON object")
        if not isinstance(document.get("sources"), list):
            raise CatalogError("Invalid catalog format: sources must be an array")
        if not document.get("version") or not isinstance(document.get("metadata"), dict):
            raise CatalogError("Invalid catalog format: missing version or metadata")

        descriptors: Dict[str, PluginDescriptor] = {}
        for record in document["sources"]:
            try:
                descriptor = PluginDescriptor.model_validate(record)
            except ValidationError as e:
                record_id = record.get("id") if isinstance(record, dict) else None
                logger.error(f"Invalid catalog record {record_id!r}: {e}")
                continue
            if descriptor.id in descriptors:
                logger.warning(f"Duplicate plugin ID '{descriptor.id}' in catalog, skipping (first-found wins)")
                continue
            descriptors[descriptor.id] = descriptor

        self._document = document
        self._descriptors = descriptors
        self._loaded_at = time.monotonic()

    def is_stale(self) -> bool:
        """True if the catalog was never loaded or its TTL elapsed."""
        if self._loaded_at is None:
            return True
        return (time.monotonic() - self._loaded_at) > self.ttl

    async def ensure_loaded(self) -> None:
        """Refresh the catalog if it is stale."""
        if self.is_stale():
            await self.refresh()

    def list_loaded(self) -> List[PluginDescriptor]:
        """Descriptors currently loaded, without touching the network."""
        return list(self._descriptors.values())

    async def list_all(self) -> List[PluginDescriptor]:
        """All descriptors in the catalog."""
        await self.ensure_loaded()
        return self.list_loaded()

    async def get(self, plugin_id: str) -> PluginDescriptor:
        """Get the descriptor for a plugin id.

        Raises:
            PluginNotFoundError: the id is not in the catalog
        """
        await self.ensure_loaded()
        descriptor = self._descriptors.get(plugin_id)
        if descriptor is None:
            raise PluginNotFoundError(f"Plugin '{plugin_id}' not found in catalog", plugin_id=plugin_id)
        return descriptor

    async def search(
        self,
        query: str = "",
        language: Optional[str] = None,
        tag: Optional[str] = None,
        official: Optional[bool] = None,
        nsfw: Optional[bool] = None,
    ) -> List[PluginDescriptor]:
        """Substring search over id, name, description and tags.

        Args:
            query: Case-insensitive search text (empty matches everything)
            language: Only plugins supporting this language code
            tag: Only plugins carrying this tag (exact, case-insensitive)
            official: True for official plugins only, False for community ones only
            nsfw: True for NSFW plugins only, False for safe-for-work ones only
        """
        await self.ensure_loaded()
        needle = (query or "").strip().lower()
        results = []
        for d in self._descriptors.values():
            if needle and not (
                needle in d.id.lower()
                or needle in d.display_name.lower()
                or needle in d.description.lower()
                or any(needle in t.lower() for t in d.tags)
            ):
                continue
            if language and language.lower() not in [lang.lower() for lang in d.languages]:
                continue
            if tag and tag.lower() not in [t.lower() for t in d.tags]:
                continue
            if official is not None and d.official != official:
                continue
            if nsfw is not None and d.nsfw != nsfw:
                continue
            results.append(d)
        return results

    async def metadata(self) -> Dict[str, Any]:
        """Catalog metadata (lastUpdated, totalSources, maintainer, ...) plus its version."""
        await self.ensure_loaded()
        return {"version": self._document.get("version"), **self._document.get("metadata", {})}

    async def statistics(self) -> Dict[str, Any]:
        """Totals of the loaded catalog, split by official, NSFW, language and tag."""
        await self.ensure_loaded()
        descriptors = self.list_loaded()
        languages: Dict[str, int] = {}
        tags: Dict[str, int] = {}
        for d in descriptors:
            for lang in d.languages:
                languages[lang] = languages.get(lang, 0) + 1
            for tag in d.tags:
                tags[tag] = tags.get(tag, 0) + 1

        official = sum(1 for d in descriptors if d.official)
        nsfw = sum(1 for d in descriptors if d.nsfw)
        return {
            "total": len(descriptors),
            "official": official,
            "community": len(descriptors) - official,
            "nsfw": nsfw,
            "sfw": len(descriptors) - nsfw,
            "languages": languages,
            "tags": tags,
        }

    async def notices(self) -> List[Dict[str, Any]]:
        """Announcements published with the catalog."""
        await self.ensure_loaded()
        return list(self._document.get("notices") or [])
