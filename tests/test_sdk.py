"""Tests for the plugin SDK helpers."""

import asyncio
from unittest.mock import AsyncMock

import pytest
from pydantic import ValidationError

from sourcehub.plugins.sdk import Asset, BaseSource, PaginationInfo


class _Minimal(BaseSource):
    id = "minimal"
    name = "Minimal"
    version = "1.0.0"
    base_url = "https://example.org/api/"

    async def search(self, query, options=None):
        return []

    async def get_details(self, item_id):
        raise NotImplementedError

    async def get_children(self, parent_id):
        return []

    async def get_leaf_assets(self, child_id):
        return []

    async def list_all(self, options=None):
        return []

    async def extract_pagination_info(self, url):
        return PaginationInfo()


class TestBaseSource:
    """Tests for BaseSource helpers."""

    def test_build_url_plain(self):
        assert _Minimal().build_url("manga") == "https://example.org/api/manga"

    def test_build_url_params(self):
        url = _Minimal().build_url(
            "manga",
            {"title": "one piece", "tags": ["a", "b"], "order": {"rating": "desc"}, "skip": None},
        )
        assert url == (
            "https://example.org/api/manga?title=one+piece"
            "&tags%5B%5D=a&tags%5B%5D=b&order%5Brating%5D=desc"
        )

    def test_build_url_appends_to_existing_query(self):
        assert _Minimal().build_url("manga?lang=en", {"page": 2}) == "https://example.org/api/manga?lang=en&page=2"

    def test_logger_named_after_plugin(self):
        assert _Minimal().logger.name == "plugin.minimal"

    def test_request_json_goes_through_fetcher(self):
        fetcher = AsyncMock()
        fetcher.fetch_json.return_value = {"data": []}
        source = _Minimal(fetcher=fetcher)

        assert asyncio.run(source.request_json("https://example.org/api/x")) == {"data": []}
        fetcher.fetch_json.assert_awaited_once_with(
            "https://example.org/api/x", headers={"Accept": "application/json"}
        )

    def test_abstract_operations_required(self):
        class Incomplete(BaseSource):
            id = "incomplete"

        with pytest.raises(TypeError):
            Incomplete()

    def test_on_stop_is_optional(self):
        asyncio.run(_Minimal().on_stop())


class TestModels:
    """Tests for SDK data models."""

    def test_asset_index_non_negative(self):
        with pytest.raises(ValidationError):
            Asset(index=-1, image_url="https://example.org/1.png")
