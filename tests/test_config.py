from pathlib import Path

import pytest

from myq.core.config import StatusConfig, build_config, load_config


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch, tmp_path):
    for name in ("MYQ_INTERVAL", "MYQ_HEADER", "MYQ_LOG_LEVEL", "MYQ_VIEWS_DIR"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("MYQ_CONFIG_PATH", str(tmp_path / "absent.yaml"))


def test_defaults_when_file_missing():
    config = load_config()
    assert config == StatusConfig()
    assert config.interval == 1.0
    assert config.header_repeat == 0
    assert config.queue_size == 1
    assert config.log_level == "WARNING"


def test_yaml_file(tmp_path):
    path = tmp_path / "myq.yaml"
    path.write_text("interval: 5\nheader_repeat: 20\ntruncate_width: true\n")
    config = load_config(path)
    assert config.interval == 5
    assert config.header_repeat == 20
    assert config.truncate_width is True


def test_config_path_from_env(tmp_path, monkeypatch):
    path = tmp_path / "custom.yaml"
    path.write_text("queue_size: 4\n")
    monkeypatch.setenv("MYQ_CONFIG_PATH", str(path))
    assert load_config().queue_size == 4


def test_env_overrides_file(tmp_path, monkeypatch):
    path = tmp_path / "myq.yaml"
    path.write_text("interval: 5\nlog_level: info\n")
    monkeypatch.setenv("MYQ_INTERVAL", "10")
    monkeypatch.setenv("MYQ_LOG_LEVEL", "debug")
    monkeypatch.setenv("MYQ_VIEWS_DIR", str(tmp_path))
    config = load_config(path)
    assert config.interval == 10
    assert config.log_level == "DEBUG"
    assert config.views_dir == Path(tmp_path)


@pytest.mark.parametrize(
    "values",
    [
        {"interval": 0.5},
        {"header_repeat": -1},
        {"queue_size": 0},
        {"log_level": "LOUD"},
        {"colour": "red"},
    ],
)
def test_invalid_values(values):
    with pytest.raises(ValueError, match="Configuration validation failed"):
        build_config(values)


def test_non_mapping_file(tmp_path):
    path = tmp_path / "myq.yaml"
    path.write_text("- 1\n- 2\n")
    with pytest.raises(ValueError):
        load_config(path)


def test_merged_ignores_unset_flags():
    config = StatusConfig(interval=5).merged(interval=None, header_repeat=10)
    assert config.interval == 5
    assert config.header_repeat == 10


def test_interval_is_whole():
    assert StatusConfig(interval=2).interval_is_whole()
    assert not StatusConfig(interval=2.5).interval_is_whole()
