"""Tests for configuration loading."""

import pytest

from staybook.config import DEFAULT_SETTINGS, booking_setting, get_env_required, load_yaml_config


def test_defaults_when_file_missing(tmp_path, monkeypatch):
    monkeypatch.setattr("staybook.config.PROJECT_ROOT", tmp_path)
    monkeypatch.delenv("STAYBOOK_CONFIG", raising=False)

    assert load_yaml_config() == DEFAULT_SETTINGS


def test_yaml_overrides_defaults(tmp_path):
    config_file = tmp_path / "config.yaml"
    config_file.write_text("booking:\n  max_discount_percent: 35\n")

    config = load_yaml_config(config_file)

    assert config["booking"]["max_discount_percent"] == 35
    assert config["booking"]["event_booking_daily_hours"] == 8
    assert config["permissions"]["admin"] == ["*"]


def test_env_var_points_at_config(tmp_path, monkeypatch):
    config_file = tmp_path / "other.yaml"
    config_file.write_text("booking:\n  default_currency: USD\n")
    monkeypatch.setenv("STAYBOOK_CONFIG", str(config_file))

    assert load_yaml_config()["booking"]["default_currency"] == "USD"


def test_explicit_missing_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_yaml_config(tmp_path / "nope.yaml")


def test_booking_setting():
    assert booking_setting("max_discount_percent") == 20
    assert booking_setting("event_booking_daily_hours") == 8


def test_get_env_required(monkeypatch):
    monkeypatch.delenv("STAYBOOK_SECRET", raising=False)
    with pytest.raises(RuntimeError):
        get_env_required("STAYBOOK_SECRET")
    monkeypatch.setenv("STAYBOOK_SECRET", "s3cret")
    assert get_env_required("STAYBOOK_SECRET") == "s3cret"
