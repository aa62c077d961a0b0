"""Shared fixtures for plugin system tests."""

import asyncio
import json
from string import Template
from typing import Dict, List, Optional, Union

import pytest

from sourcehub.plugins.activator import PluginActivator
from sourcehub.plugins.cache import PluginCache
from sourcehub.plugins.catalog import PluginCatalog
from sourcehub.plugins.errors import FetchError
from sourcehub.plugins.fetcher import FetchResult
from sourcehub.plugins.integrity import sha256_hex
from sourcehub.plugins.manager import PluginManager
from sourcehub.plugins.registry import PluginRegistry

PLUGIN_TEMPLATE = Template('''"""$name plugin."""

from sourcehub_sdk import BaseSource, Item, Child, Asset, PaginationInfo


class $cls(BaseSource):
    id = "$plugin_id"
    name = "$name"
    version = "$version"
    base_url = "https://example.org"

    async def search(self, query, options=None):
$search_body

    async def get_details(self, item_id):
        return Item(id=item_id, title="Details", source_id=self.id)

    async def get_children(self, parent_id):
        return [Child(id=parent_id + "-c1", title="Chapter 1", number=1)]

    async def get_leaf_assets(self, child_id):
        return [Asset(index=0, image_url="https://example.org/1.png")]

    async def list_all(self, options=None):
        return []

    async def extract_pagination_info(self, url):
        return PaginationInfo()
$extra

__plugin__ = $cls
''')

DEFAULT_SEARCH_BODY = '        return [Item(id=query + "-1", title="Result for " + query, source_id=self.id)]'


def make_plugin_source(
    plugin_id: str = "demo-source",
    version: str = "1.0.0",
    cls: str = "DemoSource",
    search_body: str = DEFAULT_SEARCH_BODY,
    extra: str = "",
) -> str:
    """Build the source text of a well-formed plugin."""
    return PLUGIN_TEMPLATE.substitute(
        plugin_id=plugin_id,
        name=plugin_id.replace("-", " ").title(),
        version=version,
        cls=cls,
        search_body=search_body,
        extra=extra,
    )


def make_record(
    plugin_id: str = "demo-source",
    version: str = "1.0.0",
    content: Optional[bytes] = None,
    digest: Optional[str] = None,
    **extra,
) -> dict:
    """Build a catalog record in the nested form the catalog publishes."""
    if digest is None and content is not None:
        digest = sha256_hex(content)
    record = {
        "id": plugin_id,
        "name": plugin_id.replace("-", " ").title(),
        "version": version,
        "baseUrl": "https://example.org",
        "downloads": {"stable": f"https://plugins.example.org/{plugin_id}/{version}.py"},
        "capabilities": {"supportsSearch": True},
        "metadata": {"tags": ["manga"], "languages": ["en"]},
    }
    if digest is not None:
        record["integrity"] = {"sha256": digest}
    record.update(extra)
    return record


def make_catalog_document(*records: dict) -> dict:
    return {
        "version": "1.0.0",
        "metadata": {"lastUpdated": "2026-01-01", "totalSources": len(records), "maintainer": "tests"},
        "sources": list(records),
    }


class FakeFetcher:
    """In-memory stand-in for ArtifactFetcher that records every call."""

    def __init__(self, responses: Optional[Dict[str, Union[bytes, FetchError]]] = None, delay: float = 0.0):
        self.responses = dict(responses or {})
        self.delay = delay
        self.calls: List[str] = []

    async def fetch(self, url, timeout=None, max_retries=None, headers=None) -> FetchResult:
        self.calls.append(url)
        if self.delay:
            await asyncio.sleep(self.delay)
        value = self.responses.get(url)
        if value is None:
            return FetchResult(error=FetchError(f"HTTP 404 for {url}", url=url, status=404, attempts=1))
        if isinstance(value, FetchError):
            return FetchResult(error=value)
        return FetchResult(content=value)

    async def fetch_json(self, url, **kwargs):
        return json.loads(self.responses[url])


def publish(fetcher: FakeFetcher, catalog: PluginCatalog, *records: dict, contents: Optional[List[bytes]] = None):
    """Load records into the catalog and serve their artifacts from the fake fetcher."""
    for record, content in zip(records, contents or []):
        fetcher.responses[record["downloads"]["stable"]] = content
    catalog.load_document(make_catalog_document(*records))


@pytest.fixture
def fetcher():
    return FakeFetcher()


@pytest.fixture
def catalog(fetcher):
    return PluginCatalog(urls=[], fetcher=fetcher)


@pytest.fixture
def registry():
    return PluginRegistry()


@pytest.fixture
def manager(tmp_path, catalog, registry, fetcher):
    return PluginManager(
        catalog=catalog,
        registry=registry,
        cache=PluginCache(),
        fetcher=fetcher,
        activator=PluginActivator(scratch_dir=tmp_path),
    )
