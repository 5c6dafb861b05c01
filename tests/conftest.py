from typing import Dict, List, Optional, Sequence, Tuple

import pytest

from pi_manager.config import ConfigManager
from pi_manager.monitoring import SystemSources
from pi_manager.system.directory_utils import determine_storage_paths
from pi_manager.utils import CommandResult


class FakeRunner:
    """Records commands and answers them from a table keyed by the joined command line."""

    def __init__(self, responses: Optional[Dict[str, CommandResult]] = None):
        self.responses = responses or {}
        self.calls: List[Tuple[List[str], bool]] = []
        self.use_sudo = False
        self.timeout = 1.0

    def run(self, args: Sequence[str], privileged: bool = False, input_text: Optional[str] = None) -> CommandResult:
        self.calls.append((list(args), privileged))
        return self.responses.get(" ".join(args), CommandResult(0, "", ""))

    def commands(self) -> List[str]:
        return [" ".join(args) for args, _ in self.calls]


class FakeSources(SystemSources):
    """Deterministic stand-in for the OS. Set an attribute to an exception to make that source fail."""

    def __init__(self, **overrides):
        super().__init__(runner=FakeRunner())
        self.values = {
            "cpu_times": [(300.0, 100.0, 600.0)],
            "memory": (512.0, 1024.0),
            "swap": (0.0, 0.0),
            "disk_percent": 42.4,
            "thermal_millidegrees": 48312,
            "load_average": (0.52, 0.4, 0.31),
            "wifi_link": "Connected to aa:bb:cc:dd:ee:ff (on wlan0)\n\tSSID: home\n\tsignal: -58 dBm\n",
            "wifi_ssid": "home",
            "ipv4_address": "192.168.1.20",
            "uptime_seconds": 3 * 3600 + 5 * 60,
            "cpu_count": 4,
        }
        self.values.update(overrides)
        self.slept: List[float] = []

    def _get(self, name):
        value = self.values[name]
        if isinstance(value, Exception):
            raise value
        return value

    def cpu_times(self):
        readings = self._get("cpu_times")
        return readings.pop(0) if len(readings) > 1 else readings[0]

    def memory(self):
        return self._get("memory")

    def swap(self):
        return self._get("swap")

    def disk_percent(self):
        return self._get("disk_percent")

    def thermal_millidegrees(self):
        return self._get("thermal_millidegrees")

    def load_average(self):
        return self._get("load_average")

    def wifi_link(self):
        return self._get("wifi_link")

    def wifi_ssid(self):
        return self._get("wifi_ssid")

    def ipv4_address(self):
        return self._get("ipv4_address")

    def uptime_seconds(self):
        return self._get("uptime_seconds")

    def cpu_count(self):
        return self._get("cpu_count")

    def sleep(self, seconds):
        self.slept.append(seconds)


@pytest.fixture
def paths(tmp_path):
    environ = {
        "USER": "pi",
        "HOME": str(tmp_path / "home"),
        "XDG_CONFIG_HOME": str(tmp_path / "config"),
        "XDG_STATE_HOME": str(tmp_path / "state"),
    }
    return determine_storage_paths(
        environ,
        unit_dir=str(tmp_path / "systemd"),
        logrotate_dir=str(tmp_path / "logrotate.d"),
    )


@pytest.fixture
def config_manager(paths):
    return ConfigManager(paths.config_file)


@pytest.fixture
def runner():
    return FakeRunner()


@pytest.fixture
def sources():
    return FakeSources()
