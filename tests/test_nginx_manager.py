"""Tests for squire/managers/nginx_manager.py - config templating."""
from pathlib import Path

import pytest

from squire.core.errors import ConfigurationError
from squire.managers.nginx_manager import (
    OPENSSL_PLACEHOLDERS,
    SECURE_SERVER_PLACEHOLDERS,
    NginxManager,
    Template,
)


class TestTemplate:
    def test_render_substitutes_every_token(self):
        template = Template("cn = SQUIRE_DOMAIN; alt = *.SQUIRE_DOMAIN", OPENSSL_PLACEHOLDERS)
        assert template.render(SQUIRE_DOMAIN="blog.test") == "cn = blog.test; alt = *.blog.test"

    def test_unknown_placeholder_rejected(self):
        with pytest.raises(ConfigurationError, match="SQUIRE_TYPO"):
            Template("SQUIRE_DOMAIN SQUIRE_TYPO", OPENSSL_PLACEHOLDERS)

    def test_missing_placeholder_rejected(self):
        with pytest.raises(ConfigurationError, match="SQUIRE_DOMAIN"):
            Template("no tokens here", OPENSSL_PLACEHOLDERS)

    def test_render_requires_exact_keys(self):
        template = Template("SQUIRE_DOMAIN", OPENSSL_PLACEHOLDERS)
        with pytest.raises(ConfigurationError):
            template.render()
        with pytest.raises(ConfigurationError):
            template.render(SQUIRE_DOMAIN="a", SQUIRE_EXTRA="b")

    def test_render_is_single_pass(self):
        template = Template("SQUIRE_DOMAIN", OPENSSL_PLACEHOLDERS)
        assert template.render(SQUIRE_DOMAIN="SQUIRE_DOMAIN") == "SQUIRE_DOMAIN"


class TestNginxManager:
    def test_bundled_stubs_are_valid(self, settings, files):
        nginx = NginxManager(settings, files)
        assert nginx.secure_server_template.placeholders == SECURE_SERVER_PLACEHOLDERS
        assert nginx.openssl_template.placeholders == OPENSSL_PLACEHOLDERS

    def test_build_secure_server(self, settings, files):
        nginx = NginxManager(settings, files)
        content = nginx.build_secure_server("blog.test", Path("/c/blog.test.crt"), Path("/c/blog.test.key"))

        assert "server_name blog.test www.blog.test *.blog.test;" in content
        assert 'ssl_certificate "/c/blog.test.crt";' in content
        assert 'ssl_certificate_key "/c/blog.test.key";' in content
        assert str(settings.server_path) in content
        assert f"{settings.home_path}/Log/nginx-error.log" in content
        assert f"location /{settings.static_prefix}/" in content

    def test_openssl_stub_requires_v3_req(self, settings, files, tmp_path):
        stub = tmp_path / "openssl.conf"
        stub.write_text("[ req ]\ncommonName = SQUIRE_DOMAIN\n")
        settings.openssl_stub = stub
        nginx = NginxManager(settings, files)

        with pytest.raises(ConfigurationError, match="v3_req"):
            nginx.build_certificate_conf("blog.test")

    def test_install_and_remove(self, settings, files):
        nginx = NginxManager(settings, files)

        path = nginx.install_secure_server("blog.test", Path("/c/x.crt"), Path("/c/x.key"))

        assert path == settings.nginx_path / "blog.test"
        assert path.is_file()
        assert nginx.remove_secure_server("blog.test") is True
        assert not path.exists()
        assert nginx.remove_secure_server("blog.test") is False
