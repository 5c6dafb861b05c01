import pytest

from pi_manager.config import ConfigManager, ConfigError, MonitorConfig, METRICS
from pi_manager.config.config_manager import DEFAULTS, format_duration, parse_bool, parse_duration


def _write(path, text):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


def test_missing_key_is_backfilled_once(tmp_path):
    config_path = tmp_path / "config"
    _write(config_path, "log_interval=10s\nlogging_timer_enabled=true\n")
    manager = ConfigManager(str(config_path))

    config = manager.load_config()
    manager.load_config()
    manager.load_config()

    assert config.retention == 7 * 86400
    assert config == manager.load_config()
    text = config_path.read_text(encoding="utf-8")
    assert text.count("log_prune=") == 1
    assert "log_prune=7d" in text
    # existing values survive the backfill
    assert config.sampling_interval == 10
    assert config.enabled is True


def test_backfill_handles_file_without_trailing_newline(tmp_path):
    config_path = tmp_path / "config"
    _write(config_path, "log_prune=2d")

    ConfigManager(str(config_path)).load_config()

    lines = config_path.read_text(encoding="utf-8").splitlines()
    assert lines[0] == "log_prune=2d"
    assert "log_interval=5s" in lines


def test_missing_file_is_created_with_defaults(tmp_path):
    config_path = tmp_path / "nested" / "config"

    config = ConfigManager(str(config_path)).load_config()

    assert config == MonitorConfig()
    text = config_path.read_text(encoding="utf-8")
    for key in DEFAULTS:
        assert f"{key}=" in text


def test_malformed_values_fall_back_to_defaults(tmp_path):
    config_path = tmp_path / "config"
    _write(config_path, "log_prune=forever\nlog_interval=-5s\nlogging_timer_enabled=maybe\ncpu_mode=fast\n")

    config = ConfigManager(str(config_path)).load_config()

    assert config.retention == 7 * 86400
    assert config.sampling_interval == 5
    assert config.enabled is False
    assert config.cpu_mode == "cumulative"


def test_comments_quotes_and_long_duration_forms(tmp_path):
    config_path = tmp_path / "config"
    _write(config_path, "# settings\n\nlog_prune=\"7days\"\nlog_interval=5seconds\ncpu_mode=delta\n")

    config = ConfigManager(str(config_path)).load_config()

    assert config.retention == 7 * 86400
    assert config.sampling_interval == 5
    assert config.cpu_mode == "delta"


def test_metric_toggles(tmp_path):
    config_path = tmp_path / "config"
    _write(config_path, "sample_wifi=false\nlog_temp=no\n")

    config = ConfigManager(str(config_path)).load_config()

    assert not config.samples("wifi")
    assert not config.logs("wifi")
    assert config.samples("temp")
    assert not config.logs("temp")
    assert config.logs("cpu")
    assert config.sampled_metrics == frozenset(m for m in METRICS if m != "wifi")


def test_set_value_replaces_in_place_and_keeps_comments(tmp_path):
    config_path = tmp_path / "config"
    _write(config_path, "# keep me\nlogging_timer_enabled=false\nlog_prune=7d\n")
    manager = ConfigManager(str(config_path))

    assert manager.set_enabled(True)

    text = config_path.read_text(encoding="utf-8")
    assert text.startswith("# keep me\nlogging_timer_enabled=true\n")
    assert text.count("logging_timer_enabled") == 1
    assert manager.load_config().enabled is True


def test_set_value_appends_unknown_key(tmp_path):
    config_path = tmp_path / "config"
    _write(config_path, "log_prune=7d\n")
    manager = ConfigManager(str(config_path))

    manager.set_value("log_interval", "30s")

    assert manager.load_config().sampling_interval == 30


def test_reset_removes_the_file(tmp_path):
    config_path = tmp_path / "config"
    manager = ConfigManager(str(config_path))
    manager.load_config()

    manager.reset()
    manager.reset()

    assert not config_path.exists()


@pytest.mark.parametrize("text,seconds", [
    ("5s", 5), ("5", 5), ("5seconds", 5), ("10min", 600), ("10m", 600),
    ("12h", 43200), ("2hours", 7200), ("7d", 604800), ("7days", 604800), (" 3 D ", 259200),
])
def test_parse_duration(text, seconds):
    assert parse_duration(text) == seconds


@pytest.mark.parametrize("text", ["", "d", "5w", "-5s", "0s", "five"])
def test_parse_duration_rejects_garbage(text):
    with pytest.raises(ConfigError):
        parse_duration(text)


@pytest.mark.parametrize("seconds,text", [(5, "5s"), (90, "90s"), (600, "10min"), (7200, "2h"), (604800, "7d")])
def test_format_duration(seconds, text):
    assert format_duration(seconds) == text
    assert parse_duration(text) == seconds


def test_parse_bool():
    assert parse_bool("TRUE") is True
    assert parse_bool("off") is False
    with pytest.raises(ConfigError):
        parse_bool("sometimes")
