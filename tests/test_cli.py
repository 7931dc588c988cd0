# tests/test_cli.py
"""Tests for the command-line interface."""

import json
import tempfile
from pathlib import Path

import pytest

from avatarreg.cli import main
from avatarreg.identity import IdentityStore


@pytest.fixture
def registry_dir():
    """Create a temporary registry directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def run(registry_dir, monkeypatch):
    """Run the CLI against the temporary registry."""
    monkeypatch.delenv("AVATARREG_CONFIG", raising=False)
    monkeypatch.chdir(registry_dir)

    def _run(*argv):
        return main(["--registry-dir", str(registry_dir), *argv])
    return _run


class TestCli:
    """End-to-end CLI flows."""

    def test_no_command(self, run, capsys):
        assert main([]) == 1

    def test_identity_create_and_list(self, run, registry_dir, capsys):
        assert run("identity", "create", "alice") == 0
        out = capsys.readouterr().out
        assert "Created identity alice" in out

        assert run("identity", "list") == 0
        address = IdentityStore(registry_dir / "identities").get("alice").address
        assert address in capsys.readouterr().out

    def test_new_registry_needs_admin(self, run, capsys):
        assert run("create", "Hero", "Qm123", "--caller", "0xalice") == 1
        assert "admin" in capsys.readouterr().err

    def test_create_update_transfer(self, run, registry_dir, capsys):
        assert run("--admin", "0xadmin", "create", "Hero", "Qm123", "-a", "Str:10", "--caller", "0xalice") == 0
        assert "Created avatar 1" in capsys.readouterr().out

        assert run("update", "1", "--level-increase", "3", "-a", "Agi:5", "--caller", "0xalice") == 0
        assert "level 4" in capsys.readouterr().out

        assert run("transfer", "1", "0xbob", "--caller", "0xalice") == 0
        capsys.readouterr()

        assert run("show", "1") == 0
        avatar = json.loads(capsys.readouterr().out)
        assert avatar["owner"] == "0xbob"
        assert avatar["level"] == 4
        assert avatar["attributes"] == ["Str:10", "Agi:5"]

        assert run("owned", "0xalice") == 0
        assert json.loads(capsys.readouterr().out) == []
        assert run("owned", "0xbob") == 0
        assert json.loads(capsys.readouterr().out) == [1]

        assert run("total") == 0
        assert capsys.readouterr().out.strip() == "1"

        assert run("events", "--avatar", "1") == 0
        events = json.loads(capsys.readouterr().out)
        assert [e["event_type"] for e in events] == ["Created", "Updated", "Transferred"]

    def test_named_identities(self, run, registry_dir, capsys):
        run("identity", "create", "alice")
        run("identity", "create", "bob")
        capsys.readouterr()

        assert run("--admin", "alice", "create", "Hero", "Qm123", "--as", "alice") == 0
        assert run("transfer", "1", "bob", "--as", "alice") == 0
        assert run("pause", "--as", "alice") == 0
        capsys.readouterr()

        bob = IdentityStore(registry_dir / "identities").get("bob")
        assert run("owned", "bob") == 0
        assert json.loads(capsys.readouterr().out) == [1]
        assert run("show", "1") == 0
        assert json.loads(capsys.readouterr().out)["owner"] == bob.address

    def test_errors_reported(self, run, capsys):
        run("--admin", "0xadmin", "create", "Hero", "Qm123", "--caller", "0xalice")
        capsys.readouterr()

        assert run("update", "1", "--name", "Stolen", "--caller", "0xbob") == 1
        assert "does not own" in capsys.readouterr().err

        assert run("show", "999") == 1
        assert "does not exist" in capsys.readouterr().err

        assert run("pause", "--caller", "0xalice") == 1
        assert "admin" in capsys.readouterr().err

        assert run("create", "Hero", "Qm", "--as", "ghost") == 1
        assert "Unknown identity" in capsys.readouterr().err

    def test_deactivate_reactivate(self, run, capsys):
        run("--admin", "0xadmin", "create", "Hero", "Qm123", "--caller", "0xalice")
        assert run("deactivate", "1", "--caller", "0xalice") == 0
        assert run("update", "1", "--level-increase", "1", "--caller", "0xalice") == 1
        assert "inactive" in capsys.readouterr().err
        assert run("reactivate", "1", "--caller", "0xalice") == 0
        assert run("update", "1", "--level-increase", "1", "--caller", "0xalice") == 0

    def test_malformed_config_reported(self, run, registry_dir, capsys):
        config_path = registry_dir / "broken.yaml"
        config_path.write_text("admin: [unclosed\n")
        assert run("--config", str(config_path), "total") == 1
        assert "error:" in capsys.readouterr().err

    def test_bad_port_reported(self, run, registry_dir, capsys):
        config_path = registry_dir / "port.yaml"
        config_path.write_text("admin: 0xadmin\nport: abc\n")
        assert run("--config", str(config_path), "total") == 1
        assert "error:" in capsys.readouterr().err
