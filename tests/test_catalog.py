"""Tests for the plugin catalog."""

import asyncio
import json

import pytest

from sourcehub.plugins.catalog import PluginCatalog
from sourcehub.plugins.errors import CatalogError, FetchError, PluginNotFoundError

from conftest import FakeFetcher, make_catalog_document, make_record

MIRROR_A = "https://mirror-a.example.org/sources.json"
MIRROR_B = "https://mirror-b.example.org/sources.json"


class _MirrorFetcher(FakeFetcher):
    """Fails for the URLs in `broken`, serves JSON documents for the rest."""

    def __init__(self, documents, broken=()):
        super().__init__()
        self.documents = documents
        self.broken = set(broken)

    async def fetch_json(self, url, **kwargs):
        self.calls.append(url)
        if url in self.broken:
            raise FetchError(f"HTTP 503 for {url}", url=url, status=503, attempts=4)
        return json.loads(json.dumps(self.documents[url]))


def _loaded_catalog(*records):
    catalog = PluginCatalog(urls=[], fetcher=FakeFetcher())
    catalog.load_document(make_catalog_document(*records))
    return catalog


class TestLoadDocument:
    """Tests for catalog document validation."""

    @pytest.mark.parametrize("document", [
        [],
        {"version": "1", "metadata": {}},
        {"version": "1", "metadata": {}, "sources": {}},
        {"metadata": {}, "sources": []},
        {"version": "1", "sources": []},
    ])
    def test_bad_shape_rejected(self, document):
        catalog = PluginCatalog(urls=[], fetcher=FakeFetcher())
        with pytest.raises(CatalogError):
            catalog.load_document(document)

    def test_invalid_records_skipped(self):
        catalog = _loaded_catalog(
            make_record("good-one", digest="a" * 64),
            {"id": "Bad Id", "name": "x", "version": "1", "downloads": {"stable": "https://x.org"}},
            {"id": "no-artifact", "name": "x", "version": "1"},
            "not a record",
        )
        assert [d.id for d in catalog.list_loaded()] == ["good-one"]

    def test_duplicate_ids_first_wins(self):
        catalog = _loaded_catalog(
            make_record("demo", version="1.0.0", digest="a" * 64),
            make_record("demo", version="2.0.0", digest="b" * 64),
        )
        assert [d.version for d in catalog.list_loaded()] == ["1.0.0"]

    def test_loading_marks_fresh(self):
        catalog = PluginCatalog(urls=[], fetcher=FakeFetcher())
        assert catalog.is_stale()
        catalog.load_document(make_catalog_document())
        assert not catalog.is_stale()


class TestRefresh:
    """Tests for fetching the catalog from mirrors."""

    def test_falls_back_to_next_mirror(self):
        document = make_catalog_document(make_record("demo", digest="a" * 64))
        fetcher = _MirrorFetcher({MIRROR_B: document}, broken=[MIRROR_A])
        catalog = PluginCatalog(urls=[MIRROR_A, MIRROR_B], fetcher=fetcher)

        descriptors = asyncio.run(catalog.refresh())
        assert [d.id for d in descriptors] == ["demo"]
        assert fetcher.calls == [MIRROR_A, MIRROR_B]

    def test_malformed_mirror_skipped(self):
        good = make_catalog_document(make_record("demo", digest="a" * 64))
        fetcher = _MirrorFetcher({MIRROR_A: {"sources": "nope"}, MIRROR_B: good})
        catalog = PluginCatalog(urls=[MIRROR_A, MIRROR_B], fetcher=fetcher)

        assert [d.id for d in asyncio.run(catalog.refresh())] == ["demo"]

    def test_all_mirrors_fail(self):
        fetcher = _MirrorFetcher({}, broken=[MIRROR_A, MIRROR_B])
        catalog = PluginCatalog(urls=[MIRROR_A, MIRROR_B], fetcher=fetcher)

        with pytest.raises(CatalogError, match="All catalog mirrors failed"):
            asyncio.run(catalog.refresh())

    def test_cached_document_not_refetched(self):
        document = make_catalog_document(make_record("demo", digest="a" * 64))
        fetcher = _MirrorFetcher({MIRROR_A: document})
        catalog = PluginCatalog(urls=[MIRROR_A], fetcher=fetcher)

        async def scenario():
            await catalog.list_all()
            await catalog.get("demo")
            return await catalog.search("demo")

        assert len(asyncio.run(scenario())) == 1
        assert fetcher.calls == [MIRROR_A]


class TestLookup:
    """Tests for get/search/metadata."""

    def _catalog(self):
        return _loaded_catalog(
            make_record("manga-dex", digest="a" * 64, description="Largest manga library"),
            make_record(
                "webtoon-hub",
                digest="b" * 64,
                metadata={"tags": ["webtoon", "korean"], "languages": ["ko", "en"]},
            ),
            make_record("raw-jp", digest="c" * 64, metadata={"tags": ["raw"], "languages": ["ja"]}),
        )

    def test_get_unknown(self):
        with pytest.raises(PluginNotFoundError):
            asyncio.run(self._catalog().get("nope"))

    def test_search_by_text(self):
        catalog = self._catalog()
        assert [d.id for d in asyncio.run(catalog.search("LIBRARY"))] == ["manga-dex"]
        assert [d.id for d in asyncio.run(catalog.search("webtoon"))] == ["webtoon-hub"]
        assert len(asyncio.run(catalog.search(""))) == 3

    def test_search_by_language_and_tag(self):
        catalog = self._catalog()
        assert [d.id for d in asyncio.run(catalog.search(language="ja"))] == ["raw-jp"]
        assert sorted(d.id for d in asyncio.run(catalog.search(language="EN"))) == ["manga-dex", "webtoon-hub"]
        assert [d.id for d in asyncio.run(catalog.search(tag="korean"))] == ["webtoon-hub"]
        assert asyncio.run(catalog.search("manga", tag="raw")) == []

    def test_metadata_and_notices(self):
        catalog = self._catalog()
        metadata = asyncio.run(catalog.metadata())
        assert metadata["version"] == "1.0.0"
        assert metadata["totalSources"] == 3
        assert asyncio.run(catalog.notices()) == []


class TestFlagsAndStatistics:
    """Tests for official/NSFW filters and catalog statistics."""

    def _catalog(self):
        return _loaded_catalog(
            make_record("manga-dex", digest="a" * 64, metadata={"languages": ["en", "ja"], "official": True}),
            make_record("community-scans", digest="b" * 64, metadata={"tags": ["scans"], "languages": ["en"]}),
            make_record(
                "after-dark",
                digest="c" * 64,
                metadata={"tags": ["scans", "adult"], "languages": ["en"], "nsfw": True},
            ),
        )

    def test_official_filter(self):
        catalog = self._catalog()
        assert [d.id for d in asyncio.run(catalog.search(official=True))] == ["manga-dex"]
        assert [d.id for d in asyncio.run(catalog.search(official=False))] == ["community-scans", "after-dark"]

    def test_nsfw_filter(self):
        catalog = self._catalog()
        assert [d.id for d in asyncio.run(catalog.search(nsfw=True))] == ["after-dark"]
        assert [d.id for d in asyncio.run(catalog.search(nsfw=False))] == ["manga-dex", "community-scans"]
        assert [d.id for d in asyncio.run(catalog.search("scans", official=False, nsfw=False))] == ["community-scans"]

    def test_statistics(self):
        stats = asyncio.run(self._catalog().statistics())
        assert stats == {
            "total": 3,
            "official": 1,
            "community": 2,
            "nsfw": 1,
            "sfw": 2,
            "languages": {"en": 3, "ja": 1},
            "tags": {"scans": 2, "adult": 1},
        }

    def test_statistics_of_empty_catalog(self):
        stats = asyncio.run(_loaded_catalog().statistics())
        assert stats["total"] == 0
        assert stats["languages"] == {}
