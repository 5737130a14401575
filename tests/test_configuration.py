"""Tests for squire/core/configuration.py and squire/core/config.py."""
import json
from pathlib import Path

import pytest

from squire.core.config import Settings
from squire.core.configuration import Configuration
from squire.core.errors import ConfigurationError


@pytest.fixture
def configuration(settings, files):
    return Configuration(settings, files)


class TestSettings:
    def test_layout_under_home(self, tmp_path):
        settings = Settings(home_path=tmp_path)
        assert settings.sites_path == tmp_path / "Sites"
        assert settings.certificates_path == tmp_path / "Certificates"
        assert settings.nginx_path == tmp_path / "Nginx"
        assert settings.config_file == tmp_path / "config.json"

    def test_from_environment(self, tmp_path):
        settings = Settings.from_environment({
            "SQUIRE_HOME": str(tmp_path / "elsewhere"),
            "SQUIRE_TRUST_STORE": "keychain",
            "SQUIRE_ELEVATE_COMMAND": "pkexec",
        })
        assert settings.home_path == tmp_path / "elsewhere"
        assert settings.platform_trust_store() == "keychain"
        assert settings.elevate_command == "pkexec"

    def test_bundled_stubs_exist(self):
        settings = Settings()
        assert Path(settings.openssl_stub).is_file()
        assert Path(settings.secure_server_stub).is_file()


class TestConfiguration:
    def test_read_defaults_without_file(self, configuration):
        assert configuration.read() == {"domain": "test", "paths": []}

    def test_install_creates_layout(self, configuration, settings):
        configuration.install()

        for path in (settings.sites_path, settings.certificates_path, settings.nginx_path, settings.log_path):
            assert path.is_dir()
        assert json.loads(settings.config_file.read_text()) == {"domain": "test", "paths": []}

    def test_install_keeps_existing_values(self, configuration):
        configuration.install()
        configuration.update_key("domain", "dev")
        configuration.install()
        assert configuration.domain() == "dev"

    def test_update_key(self, configuration):
        configuration.install()
        configuration.update_key("domain", "local")
        assert configuration.read()["domain"] == "local"

    def test_paths_are_an_ordered_set(self, configuration):
        configuration.install()
        assert configuration.add_path("/a") is True
        assert configuration.add_path("/b") is True
        assert configuration.add_path("/a") is False
        assert configuration.prepend_path("/c") is True
        assert configuration.paths() == ["/c", "/a", "/b"]

    def test_remove_path(self, configuration):
        configuration.install()
        configuration.add_path("/a")
        assert configuration.remove_path("/a") is True
        assert configuration.remove_path("/a") is False
        assert configuration.paths() == []

    def test_prune_drops_missing_directories(self, configuration, tmp_path):
        configuration.install()
        configuration.add_path(tmp_path)
        configuration.add_path(tmp_path / "gone")

        assert configuration.prune() == [str(tmp_path / "gone")]
        assert configuration.paths() == [str(tmp_path)]

    def test_invalid_json(self, configuration, settings):
        configuration.install()
        settings.config_file.write_text("{not json")
        with pytest.raises(ConfigurationError):
            configuration.read()

    def test_non_object_json(self, configuration, settings):
        configuration.install()
        settings.config_file.write_text("[1, 2]")
        with pytest.raises(ConfigurationError):
            configuration.read()
