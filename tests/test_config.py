"""Tests for the installed-plugins config service."""

import json

from sourcehub.plugins.config import PluginConfigService


class TestPluginConfigService:
    """Tests for PluginConfigService."""

    def test_missing_file_starts_empty(self, tmp_path):
        config = PluginConfigService(tmp_path / "installed.json")
        assert config.get_installed() == {}
        assert not config.is_installed("demo")

    def test_record_install_persists(self, tmp_path):
        path = tmp_path / "data" / "installed.json"
        config = PluginConfigService(path)
        config.record_install("demo", "1.2.0", "ab" * 32)

        assert config.is_installed("demo")
        assert config.get_installed_version("demo") == "1.2.0"

        on_disk = json.loads(path.read_text(encoding="utf-8"))
        assert on_disk["installed"]["demo"]["version"] == "1.2.0"
        assert on_disk["installed"]["demo"]["digest"] == "ab" * 32

        reloaded = PluginConfigService(path)
        assert reloaded.get_installed_version("demo") == "1.2.0"

    def test_record_uninstall(self, tmp_path):
        config = PluginConfigService(tmp_path / "installed.json")
        config.record_install("demo", "1.0.0")
        config.record_uninstall("demo")
        config.record_uninstall("never-installed")

        assert not config.is_installed("demo")
        assert PluginConfigService(tmp_path / "installed.json").get_installed() == {}

    def test_corrupt_file_is_ignored(self, tmp_path):
        path = tmp_path / "installed.json"
        path.write_text("{not json", encoding="utf-8")
        config = PluginConfigService(path)
        assert config.get_installed() == {}

    def test_get_installed_returns_copy(self, tmp_path):
        config = PluginConfigService(tmp_path / "installed.json")
        config.record_install("demo", "1.0.0")
        config.get_installed()["demo"]["version"] = "9.9.9"
        assert config.get_installed_version("demo") == "1.0.0"
