# tests/test_config.py
"""Tests for configuration loading."""

import tempfile
from pathlib import Path

import pytest

from avatarreg.config import RegistryConfig, open_registry, resolve_identity
from avatarreg.errors import InvalidArgument
from avatarreg.identity import IdentityStore


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


class TestRegistryConfig:
    """Tests for RegistryConfig."""

    def test_defaults(self):
        config = RegistryConfig()
        assert config.registry_dir == "./avatars"
        assert config.identities_path == Path("./avatars") / "identities"
        assert config.port == 8080

    def test_from_yaml(self):
        config = RegistryConfig.from_yaml(
            "registry_dir: /data/avatars\n"
            "admin: 0xadmin\n"
            "port: '9000'\n"
            "log_level: DEBUG\n"
        )
        assert config.registry_dir == "/data/avatars"
        assert config.admin == "0xadmin"
        assert config.port == 9000
        assert config.log_level == "DEBUG"

    def test_empty_yaml(self):
        assert RegistryConfig.from_yaml("") == RegistryConfig()

    def test_unknown_keys_ignored(self):
        config = RegistryConfig.from_yaml("admin: 0xadmin\nmarketplace: true\n")
        assert config.admin == "0xadmin"

    def test_non_mapping_rejected(self):
        with pytest.raises(InvalidArgument):
            RegistryConfig.from_yaml("- a\n- b\n")

    def test_explicit_identities_dir(self):
        config = RegistryConfig(identities_dir="/keys")
        assert config.identities_path == Path("/keys")

    def test_discover_env(self, temp_dir, monkeypatch):
        path = temp_dir / "custom.yaml"
        path.write_text("admin: 0xenv\n")
        monkeypatch.setenv("AVATARREG_CONFIG", str(path))
        assert RegistryConfig.discover().admin == "0xenv"

    def test_discover_explicit_path_wins(self, temp_dir, monkeypatch):
        env_path = temp_dir / "env.yaml"
        env_path.write_text("admin: 0xenv\n")
        explicit = temp_dir / "explicit.yaml"
        explicit.write_text("admin: 0xexplicit\n")
        monkeypatch.setenv("AVATARREG_CONFIG", str(env_path))
        assert RegistryConfig.discover(explicit).admin == "0xexplicit"

    def test_discover_defaults(self, temp_dir, monkeypatch):
        monkeypatch.delenv("AVATARREG_CONFIG", raising=False)
        monkeypatch.chdir(temp_dir)
        assert RegistryConfig.discover() == RegistryConfig()


class TestOpenRegistry:
    """Tests for open_registry."""

    def test_admin_and_signer_by_name(self, temp_dir):
        identities = IdentityStore(temp_dir / "identities")
        operator = identities.create("operator")

        config = RegistryConfig(
            registry_dir=str(temp_dir),
            admin="operator",
            signer="operator",
        )
        registry = open_registry(config)

        assert registry.admin == operator.address
        assert registry.signer.address == operator.address
        registry.emergency_pause(caller=operator.address)

    def test_raw_admin_address(self, temp_dir):
        registry = open_registry(RegistryConfig(registry_dir=str(temp_dir), admin="0xadmin"))
        assert registry.admin == "0xadmin"
        assert registry.signer is None

    def test_missing_signer(self, temp_dir):
        config = RegistryConfig(registry_dir=str(temp_dir), admin="0xadmin", signer="ghost")
        with pytest.raises(InvalidArgument):
            open_registry(config)

    def test_resolve_identity_passthrough(self, temp_dir):
        identities = IdentityStore(temp_dir)
        assert resolve_identity(identities, "0xraw") == "0xraw"
        assert resolve_identity(identities, None) is None
