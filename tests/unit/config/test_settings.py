"""Unit tests for configuration loading and startup checks."""

from __future__ import annotations

from pathlib import Path

import pytest

from cspp.config import (
    LEGACY_ENV_VARS,
    PathsConfig,
    ServerConfig,
    Settings,
    load_settings,
    reconcile_port_with_base_url,
    require_slack_credentials,
)
from cspp.errors import ConfigError


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    """Isolate from the developer's environment and any ./config.yaml."""
    for name in LEGACY_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    for name in ("CSPP_CONFIG_FILE", "CSPP_SERVER__PORT", "CSPP_SLACK__TOKEN"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


def write_config(path: Path, text: str) -> Path:
    path.write_text(text)
    return path


class TestPathsConfig:
    def test_role_dirs_default_under_data_dir(self):
        paths = PathsConfig(data_dir=Path("/srv/cspp"))

        assert paths.uploads_dir == Path("/srv/cspp/uploads")
        assert paths.processed_dir == Path("/srv/cspp/processed")
        assert paths.discard_dir == Path("/srv/cspp/discard")
        assert paths.credentials_dir == Path("/srv/cspp/credentials")

    def test_explicit_role_dir_wins(self):
        paths = PathsConfig(data_dir=Path("/srv/cspp"), uploads_dir=Path("/incoming"))
        assert paths.uploads_dir == Path("/incoming")
        assert Path("/incoming") in paths.all_dirs()


class TestLoadSettings:
    def test_defaults(self):
        settings = load_settings()

        assert settings.server.port == 8080
        assert settings.paths.data_dir == Path("data")
        assert settings.slack.token == ""

    def test_yaml_file(self, tmp_path: Path):
        config = write_config(
            tmp_path / "cspp.yaml",
            "server:\n  port: 9000\nslack:\n  channel: C999\n",
        )

        settings = load_settings(config)

        assert settings.server.port == 9000
        assert settings.slack.channel == "C999"

    def test_config_yaml_in_working_directory(self, tmp_path: Path):
        write_config(tmp_path / "config.yaml", "server:\n  port: 9100\n")
        assert load_settings().server.port == 9100

    def test_config_file_env_var(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
        config = write_config(tmp_path / "elsewhere.yaml", "server:\n  port: 9200\n")
        monkeypatch.setenv("CSPP_CONFIG_FILE", str(config))

        assert load_settings().server.port == 9200

    def test_missing_explicit_file(self, tmp_path: Path):
        with pytest.raises(ConfigError):
            load_settings(tmp_path / "missing.yaml")

    def test_legacy_env_overrides_file(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
        config = write_config(tmp_path / "cspp.yaml", "server:\n  port: 9000\n  host: 127.0.0.1\n")
        monkeypatch.setenv("CSPP_PORT", "9300")
        monkeypatch.setenv("CSPP_SLACK_TOKEN", "xoxb-legacy")
        monkeypatch.setenv("CSPP_DATA_DIR", "/srv/cspp")

        settings = load_settings(config)

        assert settings.server.port == 9300
        assert settings.server.host == "127.0.0.1"
        assert settings.slack.token == "xoxb-legacy"
        assert settings.paths.uploads_dir == Path("/srv/cspp/uploads")

    def test_nested_env_overrides_everything(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
        config = write_config(tmp_path / "cspp.yaml", "server:\n  port: 9000\n")
        monkeypatch.setenv("CSPP_PORT", "9300")
        monkeypatch.setenv("CSPP_SERVER__PORT", "9400")

        assert load_settings(config).server.port == 9400


class TestReconcilePort:
    def test_base_url_port_wins(self):
        settings = Settings(server=ServerConfig(port=8080, base_url="http://cspp.example.com:9999"))
        assert reconcile_port_with_base_url(settings).server.port == 9999

    def test_base_url_port_wins_over_custom_port(self):
        settings = Settings(server=ServerConfig(port=7000, base_url="http://cspp.example.com:9999/"))
        assert reconcile_port_with_base_url(settings).server.port == 9999

    def test_base_url_without_port_keeps_configured(self):
        settings = Settings(server=ServerConfig(port=7000, base_url="https://cspp.example.com"))
        assert reconcile_port_with_base_url(settings).server.port == 7000

    def test_no_base_url(self):
        settings = Settings(server=ServerConfig(port=7000))
        assert reconcile_port_with_base_url(settings).server.port == 7000

    @pytest.mark.parametrize("base_url", ["cspp.example.com:9999", "http://host:notaport"])
    def test_invalid_base_url(self, base_url: str):
        settings = Settings(server=ServerConfig(base_url=base_url))
        with pytest.raises(ConfigError):
            reconcile_port_with_base_url(settings)

    def test_public_base_url(self):
        assert Settings().public_base_url() == "<service address>"
        settings = Settings(server=ServerConfig(base_url="https://cspp.example.com/"))
        assert settings.public_base_url() == "https://cspp.example.com"


class TestRequireSlackCredentials:
    def test_all_present(self, settings):
        require_slack_credentials(settings)

    def test_reports_every_missing_variable(self):
        with pytest.raises(ConfigError) as exc_info:
            require_slack_credentials(Settings())

        assert exc_info.value.details["missing"] == [
            "CSPP_SLACK_TOKEN",
            "CSPP_SLACK_CHANNEL",
            "CSPP_SLACK_TEAM_ID",
        ]
