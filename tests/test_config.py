"""
Tests for configuration loading — readiness.yml parsing and validation.
"""

import textwrap
from pathlib import Path

import pytest

from readiness.core.config.loader import ConfigError, find_config_file, load_config
from readiness.core.models.resource import ResourceKind
from readiness.core.use_cases.config_check import check_config


@pytest.fixture
def valid_config_yml(tmp_path: Path) -> Path:
    """Create a valid readiness.yml in a temp directory."""
    content = textwrap.dedent("""\
        version: 1
        poll_interval: 5
        install_timeout: 120

        resources:
          - id: node
            binary: node
            install_command: ["brew", "install", "node"]
          - id: uv
            install_command: ["sh", "-c", "curl -LsSf https://astral.sh/uv/install.sh | sh"]
          - id: resource-bundle
            kind: resource_bundle
            bundle_path: ~/.hub/bundle

        catalog:
          path: catalog.json
          uninstall_via_backend: true
          tool_paths:
            node: /opt/hub/node/bin
    """)
    path = tmp_path / "readiness.yml"
    path.write_text(content)
    return path


class TestFindConfigFile:
    def test_finds_in_directory(self, valid_config_yml: Path):
        assert find_config_file(valid_config_yml.parent) == valid_config_yml

    def test_walks_up(self, valid_config_yml: Path):
        nested = valid_config_yml.parent / "a" / "b"
        nested.mkdir(parents=True)
        assert find_config_file(nested) == valid_config_yml

    def test_not_found(self, tmp_path: Path):
        assert find_config_file(tmp_path) is None


class TestLoadConfig:
    def test_load_valid(self, valid_config_yml: Path):
        config = load_config(valid_config_yml)
        assert config.poll_interval == 5
        assert config.install_timeout == 120
        assert config.resource_ids() == ["node", "uv", "resource-bundle"]
        assert config.get_resource("node").install_command == ["brew", "install", "node"]
        assert config.get_resource("resource-bundle").kind == ResourceKind.RESOURCE_BUNDLE
        assert config.catalog.uninstall_via_backend is True
        assert config.catalog.tool_paths == {"node": "/opt/hub/node/bin"}

    def test_defaults_when_absent(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.chdir(tmp_path)
        config = load_config()
        assert config.poll_interval == 10.0
        assert config.resource_ids() == ["node", "uv", "resource-bundle"]

    def test_no_search(self, valid_config_yml: Path, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.chdir(valid_config_yml.parent)
        assert load_config(search=False).poll_interval == 10.0
        assert load_config().poll_interval == 5

    def test_wrapped_under_hub_key(self, tmp_path: Path):
        path = tmp_path / "readiness.yml"
        path.write_text("hub:\n  poll_interval: 3\n")
        assert load_config(path).poll_interval == 3

    def test_empty_file_is_defaults(self, tmp_path: Path):
        path = tmp_path / "readiness.yml"
        path.write_text("")
        assert load_config(path).resource_ids() == ["node", "uv", "resource-bundle"]

    def test_missing_explicit_file(self, tmp_path: Path):
        with pytest.raises(ConfigError, match="not found"):
            load_config(tmp_path / "nope.yml")

    def test_invalid_yaml(self, tmp_path: Path):
        path = tmp_path / "readiness.yml"
        path.write_text("resources: [unclosed\n")
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_config(path)

    def test_not_a_mapping(self, tmp_path: Path):
        path = tmp_path / "readiness.yml"
        path.write_text("- just\n- a list\n")
        with pytest.raises(ConfigError, match="Expected a YAML mapping"):
            load_config(path)

    def test_schema_error(self, tmp_path: Path):
        path = tmp_path / "readiness.yml"
        path.write_text("poll_interval: -1\n")
        with pytest.raises(ConfigError, match="Invalid hub configuration"):
            load_config(path)

    def test_duplicate_ids(self, tmp_path: Path):
        path = tmp_path / "readiness.yml"
        path.write_text("resources:\n  - id: node\n  - id: node\n")
        with pytest.raises(ConfigError, match="duplicate resource ids"):
            load_config(path)


class TestCheckConfig:
    def test_valid_with_warnings(self, valid_config_yml: Path):
        result = check_config(valid_config_yml)
        assert result.valid
        assert result.errors == []
        # catalog.json does not exist next to the test
        assert any("Catalog file does not exist" in w for w in result.warnings)

    def test_missing_file_uses_defaults(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.chdir(tmp_path)
        result = check_config()
        assert result.valid
        assert result.config_path is None
        assert any("built-in defaults" in w for w in result.warnings)
        assert any("no install_command" in w for w in result.warnings)

    def test_invalid(self, tmp_path: Path):
        path = tmp_path / "readiness.yml"
        path.write_text("poll_interval: 0\n")
        result = check_config(path)
        assert not result.valid
        assert result.errors
        assert result.to_dict()["resources"] == []

    def test_to_dict(self, valid_config_yml: Path):
        data = check_config(valid_config_yml).to_dict()
        assert data["valid"] is True
        assert data["resources"] == ["node", "uv", "resource-bundle"]
        assert data["uninstall_via_backend"] is True
