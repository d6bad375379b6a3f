from pathlib import Path

import pytest
import yaml

from pit.config import apply_overrides, load_settings
from pit.schema import SchemaError


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("DATA_FILE", "PREVIEW_SIZE", "QUERY_TIMEOUT", "LOG_LEVEL", "LOG_FILE"):
        monkeypatch.delenv("PIT_" + name, raising=False)


def test_defaults_without_file(tmp_path):
    settings = load_settings(tmp_path / "missing.yaml")
    assert settings.data_file == Path("pit.yaml")
    assert settings.preview_size == 3
    assert settings.query_timeout == 10.0
    assert settings.log_level == "WARNING"
    assert settings.log_file is None


def test_file_then_environment(tmp_path, monkeypatch):
    file = tmp_path / "pitrc.yaml"
    file.write_text(yaml.dump({"preview_size": 5, "log_level": "info", "unknown": 1}))
    monkeypatch.setenv("PIT_PREVIEW_SIZE", "2")
    monkeypatch.setenv("PIT_DATA_FILE", "work.yaml")
    settings = load_settings(file)
    assert settings.preview_size == 2
    assert settings.log_level == "INFO"
    assert settings.data_file == Path("work.yaml")


def test_zero_timeout_disables_it(tmp_path, monkeypatch):
    monkeypatch.setenv("PIT_QUERY_TIMEOUT", "0")
    assert load_settings(tmp_path / "none.yaml").query_timeout is None


def test_bad_number(tmp_path, monkeypatch):
    monkeypatch.setenv("PIT_PREVIEW_SIZE", "lots")
    with pytest.raises(SchemaError):
        load_settings(tmp_path / "none.yaml")


def test_file_must_be_mapping(tmp_path):
    file = tmp_path / "pitrc.yaml"
    file.write_text("- a\n- b\n")
    with pytest.raises(SchemaError):
        load_settings(file)


@pytest.mark.parametrize("source", ["env", "file"])
def test_unknown_log_level(tmp_path, monkeypatch, source):
    file = tmp_path / "pitrc.yaml"
    if source == "env":
        monkeypatch.setenv("PIT_LOG_LEVEL", "bogus")
    else:
        file.write_text(yaml.dump({"log_level": "loud"}))
    with pytest.raises(SchemaError, match="log_level"):
        load_settings(file)


def test_overrides_are_validated(tmp_path):
    settings = load_settings(tmp_path / "none.yaml")
    apply_overrides(settings, data_file=Path("other.yaml"), log_level=" debug ")
    assert settings.data_file == Path("other.yaml")
    assert settings.log_level == "DEBUG"
    with pytest.raises(SchemaError):
        apply_overrides(settings, log_level="chatty")
    assert settings.log_level == "DEBUG"


def test_none_override_keeps_loaded_value(tmp_path, monkeypatch):
    monkeypatch.setenv("PIT_LOG_LEVEL", "error")
    settings = apply_overrides(load_settings(tmp_path / "none.yaml"), log_level=None)
    assert settings.log_level == "ERROR"
