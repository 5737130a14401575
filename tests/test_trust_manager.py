"""Tests for squire/managers/trust_manager.py - OS trust store variants."""
from pathlib import Path
from unittest.mock import patch

import pytest

from squire.core.errors import ConfigurationError, TrustStoreError
from squire.managers.trust_manager import (
    CaCertificatesTrustStore,
    KeychainTrustStore,
    trust_store_for_platform,
)


class TestKeychain:
    def test_trust_and_untrust_commands(self, settings, fake_cli):
        store = KeychainTrustStore(settings, fake_cli)

        store.trust(Path("/certs/blog.test.crt"), "blog.test")
        store.untrust("blog.test")

        assert fake_cli.commands("root") == [
            ["/usr/bin/security", "add-trusted-cert", "-d", "-r", "trustRoot",
             "-k", "/Library/Keychains/System.keychain", "/certs/blog.test.crt"],
            ["/usr/bin/security", "delete-certificate", "-c", "blog.test", "-t"],
        ]
        assert fake_cli.commands("user") == []

    def test_failure_raises_trust_store_error(self, settings, fake_cli):
        fake_cli.fail_when("add-trusted-cert")
        store = KeychainTrustStore(settings, fake_cli)

        with pytest.raises(TrustStoreError) as exc_info:
            store.trust(Path("/certs/blog.test.crt"), "blog.test")

        assert exc_info.value.host == "blog.test"
        assert "simulated failure" in str(exc_info.value)


class TestCaCertificates:
    def test_trust_copies_anchor_and_updates(self, settings, fake_cli):
        store = CaCertificatesTrustStore(settings, fake_cli)

        store.trust(Path("/certs/blog.test.crt"), "blog.test")

        anchor = str(settings.ca_certificates_dir / "blog.test.crt")
        assert fake_cli.commands("root") == [
            ["mkdir", "-p", str(settings.ca_certificates_dir)],
            ["cp", "/certs/blog.test.crt", anchor],
            ["update-ca-certificates"],
        ]

    def test_untrust_removes_anchor(self, settings, fake_cli):
        store = CaCertificatesTrustStore(settings, fake_cli)

        store.untrust("blog.test")

        assert fake_cli.commands("root") == [
            ["rm", "-f", str(settings.ca_certificates_dir / "blog.test.crt")],
            ["update-ca-certificates", "--fresh"],
        ]

    def test_update_failure(self, settings, fake_cli):
        fake_cli.fail_when("update-ca-certificates")
        store = CaCertificatesTrustStore(settings, fake_cli)

        with pytest.raises(TrustStoreError):
            store.untrust("blog.test")


class TestTrustStoreForPlatform:
    def test_explicit_choice(self, settings, fake_cli):
        settings.trust_store = "ca-certificates"
        assert isinstance(trust_store_for_platform(settings, fake_cli), CaCertificatesTrustStore)

    @pytest.mark.parametrize("platform,expected", [
        ("darwin", KeychainTrustStore),
        ("linux", CaCertificatesTrustStore),
    ])
    def test_platform_default(self, settings, fake_cli, platform, expected):
        settings.trust_store = None
        with patch("squire.core.config.sys.platform", platform):
            assert isinstance(trust_store_for_platform(settings, fake_cli), expected)

    def test_unknown_store(self, settings, fake_cli):
        settings.trust_store = "windows"
        with pytest.raises(ConfigurationError):
            trust_store_for_platform(settings, fake_cli)
