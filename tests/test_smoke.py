"""
Smoke tests — verify the bootstrap is healthy.

These tests ensure the basic scaffolding works:
- Package imports successfully
- CLI entrypoint responds
- Version is set
"""

from click.testing import CliRunner

from readiness import __version__
from readiness.main import cli


class TestBootstrap:
    """Verify the project bootstrap is healthy."""

    def test_version_is_set(self):
        """Version string should be defined and non-empty."""
        assert __version__
        assert isinstance(__version__, str)

    def test_cli_help(self):
        """CLI --help should exit cleanly with usage info."""
        runner = CliRunner()
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        for command in ("status", "install", "watch", "health", "catalog"):
            assert command in result.output

    def test_cli_version(self):
        """CLI --version should print the version."""
        runner = CliRunner()
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_mock_status_command(self, tmp_path, monkeypatch):
        """Status with defaults and the mock backend reports everything ready."""
        monkeypatch.chdir(tmp_path)
        runner = CliRunner()
        result = runner.invoke(cli, ["--mock", "status"])
        assert result.exit_code == 0
        assert "3/3 ready" in result.output

    def test_config_check_command_exists(self, tmp_path, monkeypatch):
        """Config check runs even without a readiness.yml."""
        monkeypatch.chdir(tmp_path)
        runner = CliRunner()
        result = runner.invoke(cli, ["config", "check"])
        assert result.exit_code == 0

    def test_core_package_imports(self):
        """Core packages should be importable."""
        import readiness.adapters
        import readiness.core.engine.orchestrator
        import readiness.core.models
        import readiness.core.services.catalog_machine
        import readiness.core.services.provision
        import readiness.core.services.scheduler
        import readiness.core.services.status_store

        assert readiness.core.models is not None
        assert readiness.adapters.MockBackend is not None
