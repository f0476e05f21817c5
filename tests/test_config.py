"""Tests for settings loading."""

from __future__ import annotations

from pathlib import Path

import pytest

from taskgate.core.config import AuthConfig, RTMConfig, Settings, load_settings


class TestDefaults:
    def test_rtm_defaults(self) -> None:
        config = RTMConfig()
        assert config.api_endpoint == "https://api.rememberthemilk.com/services/rest/"
        assert config.auth_endpoint == "https://www.rememberthemilk.com/services/auth/"
        assert config.permissions == "delete"
        assert 10 <= config.timeout_seconds <= 15

    def test_has_credentials(self) -> None:
        assert not RTMConfig(api_key="", shared_secret="").has_credentials
        assert RTMConfig(api_key="k", shared_secret="s").has_credentials

    def test_token_path_is_expanded(self) -> None:
        config = AuthConfig(token_path="~/tokens/rtm.json")
        assert config.resolved_token_path == Path.home() / "tokens" / "rtm.json"

    def test_env_prefix(self, monkeypatch) -> None:
        monkeypatch.setenv("TASKGATE_RTM_API_KEY", "from-env")
        monkeypatch.setenv("TASKGATE_SERVER_PORT", "9999")
        settings = Settings()
        assert settings.rtm.api_key == "from-env"
        assert settings.server.port == 9999


class TestLoadSettings:
    def test_no_path_returns_defaults(self) -> None:
        settings = load_settings()
        assert settings.server.name == "taskgate"

    def test_yaml_overrides(self, tmp_path) -> None:
        path = tmp_path / "taskgate.yml"
        path.write_text(
            "log_level: DEBUG\n"
            "server:\n  port: 9090\n  status_secret: s3cret\n"
            "rtm:\n  api_key: abc\n  shared_secret: def\n"
            "auth:\n  token_path: /tmp/t.json\n"
        )
        settings = load_settings(path)
        assert settings.log_level == "DEBUG"
        assert settings.server.port == 9090
        assert settings.server.status_secret == "s3cret"
        assert settings.rtm.has_credentials
        assert settings.auth.token_path == "/tmp/t.json"

    def test_empty_file_yields_defaults(self, tmp_path) -> None:
        path = tmp_path / "empty.yml"
        path.write_text("")
        assert load_settings(path).server.port == 8080

    def test_missing_file(self, tmp_path) -> None:
        with pytest.raises(FileNotFoundError):
            load_settings(tmp_path / "nope.yml")

    def test_non_mapping_rejected(self, tmp_path) -> None:
        path = tmp_path / "list.yml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ValueError, match="mapping"):
            load_settings(path)
