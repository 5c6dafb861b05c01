"""
Configuration Manager module for Pi Manager.

The configuration lives in a plain ``key=value`` file. Every load parses it
into a typed :class:`MonitorConfig`, backfilling keys the file is missing.
"""
import os
import re
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Tuple

from pi_manager.utils import get_logger, atomic_write_text, read_text

logger = get_logger(__name__)

METRICS: Tuple[str, ...] = ("cpu", "ram", "temp", "disk", "swap", "load", "wifi")
CPU_MODES = ("cumulative", "delta")

KEY_RETENTION = "log_prune"
KEY_INTERVAL = "log_interval"
KEY_ENABLED = "logging_timer_enabled"
KEY_CPU_MODE = "cpu_mode"


def _build_defaults() -> Dict[str, str]:
    defaults = {
        KEY_RETENTION: "7d",
        KEY_INTERVAL: "5s",
        KEY_ENABLED: "false",
        KEY_CPU_MODE: "cumulative",
    }
    for metric in METRICS:
        defaults[f"sample_{metric}"] = "true"
    for metric in METRICS:
        defaults[f"log_{metric}"] = "true"
    return defaults


DEFAULTS: Dict[str, str] = _build_defaults()

_DURATION_RE = re.compile(r"^\s*(\d+)\s*([a-z]*)\s*$")
_DURATION_UNITS = {
    "": 1, "s": 1, "sec": 1, "secs": 1, "second": 1, "seconds": 1,
    "m": 60, "min": 60, "mins": 60, "minute": 60, "minutes": 60,
    "h": 3600, "hr": 3600, "hour": 3600, "hours": 3600,
    "d": 86400, "day": 86400, "days": 86400,
}
_TRUE_WORDS = {"true", "yes", "on", "1"}
_FALSE_WORDS = {"false", "no", "off", "0"}


class ConfigError(ValueError):
    """A configuration value could not be parsed."""


def parse_duration(text: str) -> int:
    """
    Parse a duration such as ``5s``, ``10min``, ``12h``, ``7d`` or ``7days``.

    :param text: Duration string; a bare number means seconds
    :type text: str
    :return: Duration in seconds
    :rtype: int
    :raises ConfigError: If the text is not a positive duration
    """
    match = _DURATION_RE.match(str(text).lower())
    if not match or match.group(2) not in _DURATION_UNITS:
        raise ConfigError(f"Unparseable duration: '{text}'")
    seconds = int(match.group(1)) * _DURATION_UNITS[match.group(2)]
    if seconds <= 0:
        raise ConfigError(f"Duration must be positive: '{text}'")
    return seconds


def format_duration(seconds: int) -> str:
    """
    Render seconds with the largest whole unit, in a form systemd accepts.

    >>> format_duration(604800)
    '7d'
    >>> format_duration(90)
    '90s'
    """
    for suffix, size in (("d", 86400), ("h", 3600), ("min", 60)):
        if seconds % size == 0:
            return f"{seconds // size}{suffix}"
    return f"{seconds}s"


def parse_bool(text: str) -> bool:
    """
    :raises ConfigError: If the text is not a recognised boolean word
    """
    word = str(text).strip().lower()
    if word in _TRUE_WORDS:
        return True
    if word in _FALSE_WORDS:
        return False
    raise ConfigError(f"Unparseable boolean: '{text}'")


@dataclass(frozen=True)
class MonitorConfig:
    """Typed view of the configuration file."""
    sampling_interval: int = 5
    retention: int = 7 * 86400
    enabled: bool = False
    cpu_mode: str = "cumulative"
    sampled_metrics: FrozenSet[str] = field(default_factory=lambda: frozenset(METRICS))
    logged_series: FrozenSet[str] = field(default_factory=lambda: frozenset(METRICS))

    def samples(self, metric: str) -> bool:
        return metric in self.sampled_metrics

    def logs(self, series: str) -> bool:
        return series in self.logged_series and series in self.sampled_metrics

    @property
    def interval_text(self) -> str:
        return format_duration(self.sampling_interval)

    @property
    def retention_text(self) -> str:
        return format_duration(self.retention)


def parse_lines(text: str) -> Dict[str, str]:
    """
    Parse ``key=value`` lines. Blank lines, ``#`` comments and lines without
    ``=`` are ignored; a later duplicate key wins.
    """
    values: Dict[str, str] = {}
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        values[key.strip()] = value.strip().strip('"').strip("'")
    return values


def build_config(values: Dict[str, str]) -> MonitorConfig:
    """
    Turn raw key/value pairs into a :class:`MonitorConfig`.

    Malformed values fall back to their defaults with a warning; this never raises.

    :param values: Raw values, usually from :func:`parse_lines`
    :type values: Dict[str, str]
    :return: Parsed configuration
    :rtype: MonitorConfig
    """
    def lookup(key: str, parser):
        raw = values.get(key, DEFAULTS[key])
        try:
            return parser(raw)
        except ConfigError as e:
            logger.warning(f"Invalid value for '{key}' ({e}). Using default '{DEFAULTS[key]}'.")
            return parser(DEFAULTS[key])

    def cpu_mode(text: str) -> str:
        mode = text.strip().lower()
        if mode not in CPU_MODES:
            raise ConfigError(f"Unknown CPU mode: '{text}'")
        return mode

    return MonitorConfig(
        sampling_interval=lookup(KEY_INTERVAL, parse_duration),
        retention=lookup(KEY_RETENTION, parse_duration),
        enabled=lookup(KEY_ENABLED, parse_bool),
        cpu_mode=lookup(KEY_CPU_MODE, cpu_mode),
        sampled_metrics=frozenset(m for m in METRICS if lookup(f"sample_{m}", parse_bool)),
        logged_series=frozenset(m for m in METRICS if lookup(f"log_{m}", parse_bool)),
    )


class ConfigManager:
    """
    Loads and manages the configuration file.
    """

    def __init__(self, config_path: str):
        """
        :param config_path: Path to the ``key=value`` configuration file
        :type config_path: str
        """
        self._config_path = config_path

    @property
    def config_path(self) -> str:
        return self._config_path

    def _default_text(self) -> str:
        return "".join(f"{key}={value}\n" for key, value in DEFAULTS.items())

    def ensure_exists(self) -> bool:
        """
        Writes a default configuration file if none exists.

        :return: True if a new file was created
        :rtype: bool
        """
        if os.path.exists(self._config_path):
            return False
        try:
            atomic_write_text(self._config_path, self._default_text())
            logger.info(f"Created default configuration at: {self._config_path}")
            return True
        except OSError as e:
            logger.error(f"Failed to create configuration file {self._config_path}: {e}")
            return False

    def _backfill(self, text: str, present: Dict[str, str]) -> None:
        """Appends defaults for keys missing from the file."""
        missing: List[str] = [key for key in DEFAULTS if key not in present]
        if not missing:
            return
        addition = "".join(f"{key}={DEFAULTS[key]}\n" for key in missing)
        if text and not text.endswith("\n"):
            addition = "\n" + addition
        try:
            with open(self._config_path, 'a', encoding='utf-8') as f:
                f.write(addition)
            logger.info(f"Added missing configuration keys with defaults: {', '.join(missing)}")
        except OSError as e:
            logger.warning(f"Could not backfill configuration keys {missing}: {e}")

    def load_config(self) -> MonitorConfig:
        """
        Reads the configuration file, backfills missing keys and returns the typed config.

        A missing or unreadable file yields the defaults; this never raises.

        :return: Parsed configuration
        :rtype: MonitorConfig
        """
        self.ensure_exists()
        text = read_text(self._config_path)
        if text is None:
            logger.warning(f"Configuration file {self._config_path} unavailable. Using defaults.")
            return build_config(dict(DEFAULTS))

        present = parse_lines(text)
        self._backfill(text, present)
        values = dict(DEFAULTS)
        values.update(present)
        config = build_config(values)
        logger.debug(f"Configuration loaded from {self._config_path}: {config}")
        return config

    def set_value(self, key: str, value: str) -> bool:
        """
        Sets a key in the file, preserving other lines and comments.

        :param key: Configuration key
        :type key: str
        :param value: New raw value
        :type value: str
        :return: True if saved successfully, False otherwise
        :rtype: bool
        """
        text = read_text(self._config_path)
        if text is None:
            text = self._default_text()

        lines = text.splitlines()
        replaced = False
        for index, line in enumerate(lines):
            stripped = line.strip()
            if stripped.startswith("#") or "=" not in stripped:
                continue
            if stripped.split("=", 1)[0].strip() == key:
                lines[index] = f"{key}={value}"
                replaced = True
        if not replaced:
            lines.append(f"{key}={value}")

        try:
            atomic_write_text(self._config_path, "\n".join(lines) + "\n")
        except OSError as e:
            logger.error(f"Failed to save configuration to {self._config_path}: {e}")
            return False

        logger.info(f"Configuration '{key}' set to '{value}'.")
        return True

    def set_enabled(self, enabled: bool) -> bool:
        return self.set_value(KEY_ENABLED, "true" if enabled else "false")

    def reset(self) -> None:
        """
        Deletes the configuration file so the next load recreates defaults.
        """
        try:
            os.remove(self._config_path)
            logger.info(f"Removed configuration file: {self._config_path}")
        except FileNotFoundError:
            pass
