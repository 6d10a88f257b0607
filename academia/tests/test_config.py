"""
Tests for configuration loading.
"""

import pytest

from academia.common.exceptions import ConfigurationError
from academia.config import CONFIG_FILE_ENV, Settings, load_settings, load_yaml_overrides


def test_defaults():
    settings = Settings()

    assert settings.LEVEL_THRESHOLDS[:3] == [0, 100, 300]
    assert settings.STREAK_WEEKLY_BONUS == 50
    assert settings.STREAK_MONTHLY_BONUS == 200
    assert settings.LEADERBOARD_MAX_LIMIT == 100


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("STREAK_WEEKLY_BONUS", "75")
    monkeypatch.setenv("LOG_LEVEL", "debug")

    settings = load_settings()

    assert settings.STREAK_WEEKLY_BONUS == 75
    assert settings.LOG_LEVEL == "DEBUG"


def test_yaml_file_supplies_values(tmp_path, monkeypatch):
    config_file = tmp_path / "academia.yaml"
    config_file.write_text("STREAK_MONTHLY_BONUS: 300\nCONFLICT_MAX_RETRIES: 2\n")
    monkeypatch.setenv("CONFLICT_MAX_RETRIES", "7")

    settings = load_settings(str(config_file))

    assert settings.STREAK_MONTHLY_BONUS == 300
    # Environment variables win over the file
    assert settings.CONFLICT_MAX_RETRIES == 7


def test_yaml_file_from_environment(tmp_path, monkeypatch):
    config_file = tmp_path / "academia.yaml"
    config_file.write_text("PERIOD_RETENTION: 4\n")
    monkeypatch.setenv(CONFIG_FILE_ENV, str(config_file))

    assert load_settings().PERIOD_RETENTION == 4


def test_missing_yaml_file(tmp_path):
    with pytest.raises(ConfigurationError):
        load_yaml_overrides(str(tmp_path / "missing.yaml"))


def test_yaml_must_be_a_mapping(tmp_path):
    config_file = tmp_path / "academia.yaml"
    config_file.write_text("- 1\n- 2\n")
    with pytest.raises(ConfigurationError):
        load_yaml_overrides(str(config_file))


@pytest.mark.parametrize("overrides", [
    {"LEVEL_THRESHOLDS": [10, 100]},
    {"LEVEL_THRESHOLDS": [0, 300, 100]},
    {"STREAK_WEEKLY_BONUS": -1},
    {"LOG_LEVEL": "LOUD"},
])
def test_invalid_values_are_rejected(tmp_path, monkeypatch, overrides):
    import yaml

    for key in overrides:
        monkeypatch.delenv(key, raising=False)

    config_file = tmp_path / "academia.yaml"
    config_file.write_text(yaml.safe_dump(overrides))

    with pytest.raises(ConfigurationError):
        load_settings(str(config_file))
