"""
Tests for persistence — host client config load/save.
"""

import json
from pathlib import Path

import pytest

from readiness.core.persistence.client_config import (
    CLIENT_CONFIG_FILE,
    ClientConfig,
    ServerEntry,
    default_client_config_path,
    load_client_config,
    save_client_config,
)


class TestClientConfig:
    """Tests for client config persistence."""

    def test_save_and_load(self, tmp_path: Path):
        """Config roundtrips through save/load."""
        path = tmp_path / "host" / "config.json"
        config = ClientConfig()
        config.servers["fetch"] = ServerEntry(command="uvx", args=["hub-fetch"])

        save_client_config(config, path)
        assert path.is_file()

        loaded = load_client_config(path)
        assert loaded.servers["fetch"].command == "uvx"
        assert loaded.servers["fetch"].args == ["hub-fetch"]

    def test_written_under_mcp_servers(self, tmp_path: Path):
        path = tmp_path / "config.json"
        config = ClientConfig()
        config.servers["a"] = ServerEntry(command="npx")
        save_client_config(config, path)

        data = json.loads(path.read_text())
        assert data == {"mcpServers": {"a": {"command": "npx", "args": [], "env": {}}}}

    def test_unknown_fields_preserved(self, tmp_path: Path):
        """Host-owned settings survive a load/save cycle."""
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"globalShortcut": "Ctrl+Space", "mcpServers": {}}))

        config = load_client_config(path)
        config.servers["b"] = ServerEntry(command="uvx")
        save_client_config(config, path)

        data = json.loads(path.read_text())
        assert data["globalShortcut"] == "Ctrl+Space"
        assert "b" in data["mcpServers"]

    def test_load_missing_returns_empty(self, tmp_path: Path):
        config = load_client_config(tmp_path / "nonexistent.json")
        assert config.servers == {}

    def test_load_blank_returns_empty(self, tmp_path: Path):
        path = tmp_path / "config.json"
        path.write_text("  \n")
        assert load_client_config(path).servers == {}

    def test_load_corrupt_raises(self, tmp_path: Path):
        """Corrupt JSON is reported, not replaced."""
        path = tmp_path / "config.json"
        path.write_text("{broken json")
        with pytest.raises(ValueError, match="Corrupt client config"):
            load_client_config(path)

    def test_load_non_object_raises(self, tmp_path: Path):
        path = tmp_path / "config.json"
        path.write_text("[1, 2]")
        with pytest.raises(ValueError, match="Expected a JSON object"):
            load_client_config(path)

    def test_no_temp_files_left(self, tmp_path: Path):
        path = tmp_path / "config.json"
        save_client_config(ClientConfig(), path)
        save_client_config(ClientConfig(), path)
        assert [p.name for p in tmp_path.iterdir()] == ["config.json"]

    def test_default_path(self):
        assert default_client_config_path().name == CLIENT_CONFIG_FILE
