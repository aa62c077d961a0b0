"""Tests for the plugin REST API."""

from unittest.mock import patch

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from sourcehub.routers import plugins_router

from conftest import make_plugin_source, make_record, publish

SOURCE = make_plugin_source().encode("utf-8")


@pytest.fixture
def client(manager):
    app = FastAPI()
    app.include_router(plugins_router)
    with patch("sourcehub.routers.plugins.get_plugin_manager", return_value=manager):
        yield TestClient(app)


class TestCatalogRoutes:
    """Catalog endpoints."""

    def test_list_catalog(self, client, catalog, fetcher):
        publish(fetcher, catalog, make_record(content=SOURCE), make_record("other-source", digest="b" * 64))

        response = client.get("/api/plugins/catalog")

        assert response.status_code == 200
        assert [p["id"] for p in response.json()["plugins"]] == ["demo-source", "other-source"]

    def test_search_catalog(self, client, catalog, fetcher):
        publish(fetcher, catalog, make_record(content=SOURCE), make_record("other-source", digest="b" * 64))

        response = client.get("/api/plugins/catalog/search", params={"q": "other"})

        assert response.status_code == 200
        assert [p["id"] for p in response.json()["plugins"]] == ["other-source"]

    def test_search_catalog_by_flags(self, client, catalog, fetcher):
        publish(
            fetcher,
            catalog,
            make_record(content=SOURCE, metadata={"languages": ["en"], "official": True}),
            make_record("other-source", digest="b" * 64, metadata={"languages": ["en"], "nsfw": True}),
        )

        official = client.get("/api/plugins/catalog/search", params={"official": "true"}).json()["plugins"]
        sfw = client.get("/api/plugins/catalog/search", params={"nsfw": "false"}).json()["plugins"]

        assert [p["id"] for p in official] == ["demo-source"]
        assert [p["id"] for p in sfw] == ["demo-source"]

    def test_catalog_statistics(self, client, catalog, fetcher):
        publish(
            fetcher,
            catalog,
            make_record(content=SOURCE, metadata={"languages": ["en"], "official": True}),
            make_record("other-source", digest="b" * 64, metadata={"languages": ["en"], "nsfw": True}),
        )

        response = client.get("/api/plugins/catalog/stats")

        assert response.status_code == 200
        stats = response.json()
        assert stats["total"] == 2
        assert stats["official"] == 1
        assert stats["nsfw"] == 1
        assert stats["languages"] == {"en": 2}

    def test_sync_failure_is_bad_gateway(self, client, catalog):
        catalog.urls = []
        response = client.post("/api/plugins/catalog/sync")
        assert response.status_code == 502
        assert response.json()["detail"]["stage"] == "catalog"


class TestInstallRoutes:
    """Install / update / uninstall endpoints."""

    def test_install_and_list(self, client, catalog, fetcher):
        publish(fetcher, catalog, make_record(content=SOURCE), contents=[SOURCE])

        response = client.post("/api/plugins/demo-source/install")
        assert response.status_code == 200
        assert response.json()["plugin"]["version"] == "1.0.0"

        installed = client.get("/api/plugins/").json()["plugins"]
        assert [p["id"] for p in installed] == ["demo-source"]

        detail = client.get("/api/plugins/demo-source").json()
        assert detail["state"] == "registered"
        assert detail["capabilities"] == ["search"]

    def test_integrity_failure_is_unprocessable(self, client, catalog, fetcher):
        publish(fetcher, catalog, make_record(digest="0" * 64), contents=[SOURCE])

        response = client.post("/api/plugins/demo-source/install")

        assert response.status_code == 422
        detail = response.json()["detail"]
        assert detail["error"] == "IntegrityMismatchError"
        assert detail["stage"] == "verify"
        assert detail["plugin_id"] == "demo-source"

    def test_validation_failure_lists_reasons(self, client, catalog, fetcher):
        content = make_plugin_source(search_body="        return eval(query)").encode("utf-8")
        publish(fetcher, catalog, make_record(content=content), contents=[content])

        response = client.post("/api/plugins/demo-source/install")

        assert response.status_code == 422
        assert any("eval" in r for r in response.json()["detail"]["reasons"])

    def test_fetch_failure_is_bad_gateway(self, client, catalog, fetcher):
        publish(fetcher, catalog, make_record(content=SOURCE))

        response = client.post("/api/plugins/demo-source/install")
        assert response.status_code == 502

    def test_unknown_plugin_is_not_found(self, client, catalog, fetcher):
        publish(fetcher, catalog)
        assert client.post("/api/plugins/nope/install").status_code == 404
        assert client.get("/api/plugins/nope").status_code == 404
        assert client.delete("/api/plugins/nope").status_code == 404

    def test_update_and_check(self, client, catalog, fetcher):
        publish(fetcher, catalog, make_record(content=SOURCE), contents=[SOURCE])
        client.post("/api/plugins/demo-source/install")

        newer = make_plugin_source(version="1.1.0").encode("utf-8")
        publish(fetcher, catalog, make_record(version="1.1.0", content=newer), contents=[newer])

        updates = client.get("/api/plugins/updates").json()["updates"]
        assert updates == [{"id": "demo-source", "installed_version": "1.0.0", "available_version": "1.1.0"}]

        response = client.post("/api/plugins/demo-source/update")
        assert response.status_code == 200
        assert response.json()["plugin"]["version"] == "1.1.0"
        assert client.get("/api/plugins/updates").json()["updates"] == []

    def test_uninstall(self, client, catalog, fetcher):
        publish(fetcher, catalog, make_record(content=SOURCE), contents=[SOURCE])
        client.post("/api/plugins/demo-source/install")

        assert client.delete("/api/plugins/demo-source").status_code == 200
        assert client.get("/api/plugins/").json()["plugins"] == []


class TestSearchRoute:
    """Cross-plugin search endpoint."""

    def test_search_installed(self, client, catalog, fetcher):
        publish(fetcher, catalog, make_record(content=SOURCE), contents=[SOURCE])
        client.post("/api/plugins/demo-source/install")

        response = client.post("/api/plugins/search", json={"query": "bleach"})

        assert response.status_code == 200
        results = response.json()["results"]
        assert results["demo-source"][0]["title"] == "Result for bleach"
