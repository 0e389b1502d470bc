"""Tests for settings loading from TOML, environment and defaults."""

from pathlib import Path

import pytest

from fineauth.config.esi import MIN_LOGIN_STATE_TTL_SECONDS, ESISettings
from fineauth.config.settings import Settings, get_settings
from fineauth.exceptions import ConfigurationError


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    for name in ("FINEAUTH_CONFIG", "ESI__CLIENT_ID", "ESI__CLIENT_SECRET", "ESI__SCOPES"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


def test_defaults():
    settings = Settings()

    assert settings.server.port == 3000
    assert settings.esi.is_configured is False
    assert settings.esi.queue_run_seconds == 12
    assert settings.esi.login_state_ttl_seconds == MIN_LOGIN_STATE_TTL_SECONDS
    assert settings.characters.allow_all_members is False


def test_toml_file(tmp_path: Path):
    config = tmp_path / "custom.toml"
    config.write_text(
        """
[server]
port = 8080
log_level = "debug"

[esi]
client_id = "abc"
client_secret = "xyz"
scopes = ["esi-mail.read_mail.v1"]

[characters]
allow_all_members = true
"""
    )

    settings = get_settings(config)

    assert settings.server.port == 8080
    assert settings.server.log_level == "DEBUG"
    assert settings.esi.is_configured is True
    assert settings.esi.scopes == ["esi-mail.read_mail.v1"]
    assert settings.characters.allow_all_members is True


def test_config_discovered_in_working_directory(tmp_path: Path):
    (tmp_path / "fineauth.toml").write_text("[server]\nport = 4000\n")

    assert get_settings().server.port == 4000


def test_config_env_var(tmp_path: Path, monkeypatch):
    config = tmp_path / "elsewhere.toml"
    config.write_text("[server]\nport = 5000\n")
    monkeypatch.setenv("FINEAUTH_CONFIG", str(config))

    assert get_settings().server.port == 5000


def test_scopes_from_environment(monkeypatch):
    monkeypatch.setenv("ESI__SCOPES", "esi-mail.read_mail.v1, esi-skills.read_skills.v1")

    assert ESISettings().scopes == ["esi-mail.read_mail.v1", "esi-skills.read_skills.v1"]


def test_space_separated_scopes():
    settings = ESISettings(scopes="esi-mail.read_mail.v1 esi-skills.read_skills.v1")

    assert settings.scopes == ["esi-mail.read_mail.v1", "esi-skills.read_skills.v1"]


def test_invalid_toml(tmp_path: Path):
    config = tmp_path / "broken.toml"
    config.write_text("[server\nport = ")

    with pytest.raises(ConfigurationError, match="Invalid TOML syntax"):
        get_settings(config)


def test_invalid_values(tmp_path: Path):
    config = tmp_path / "bad.toml"
    config.write_text('[server]\nlog_level = "chatty"\n')

    with pytest.raises(ConfigurationError, match="log_level"):
        get_settings(config)


def test_login_state_ttl_has_a_floor():
    with pytest.raises(ValueError):
        ESISettings(login_state_ttl_seconds=60)
