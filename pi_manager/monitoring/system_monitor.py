"""
System monitoring functionality for tracking the device's resources.

Every metric is read independently. A source that is missing (no thermal
zone, no wireless link, ...) yields ``None`` for that metric only, and the
rest of the pass carries on.
"""
import re
import socket
import time
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

import psutil

from pi_manager.config import MonitorConfig
from pi_manager.utils import get_logger, CommandRunner, read_text

logger = get_logger(__name__)

THERMAL_ZONE_PATH = "/sys/class/thermal/thermal_zone0/temp"
WIRELESS_INTERFACE = "wlan0"
ROOT_MOUNT = "/"
CPU_DELTA_INTERVAL = 0.1
UNAVAILABLE = "N/A"

_SIGNAL_RE = re.compile(r"signal:\s*(-?\d+(?:\.\d+)?)\s*dBm")


def dbm_to_percent(dbm: float) -> int:
    """
    Map a signal strength to 0-100%: -100 dBm is 0%, -50 dBm is 100%, saturating outside that band.

    :param dbm: Signal strength in dBm
    :type dbm: float
    :return: Clamped percentage
    :rtype: int
    """
    percent = int((dbm + 100) * 100 / 50)
    return max(0, min(100, percent))


def millidegrees_to_celsius(raw: int) -> int:
    """
    Convert a thermal-zone reading to whole degrees, truncating toward zero (60999 -> 60).
    """
    degrees = abs(raw) // 1000
    return -degrees if raw < 0 else degrees


def cpu_percent_from_times(user: float, system: float, idle: float) -> float:
    """
    Busy share of the given tick counts, as a one-decimal percentage.

    Fed cumulative counters this is the busy share since boot; fed the
    difference of two readings it is the load over that interval.
    """
    total = user + system + idle
    if total <= 0:
        return 0.0
    return round((user + system) * 100 / total, 1)


def usage_percent(used: float, total: float) -> float:
    if total <= 0:
        return 0.0
    return used * 100 / total


def format_load(load: Tuple[float, float, float]) -> str:
    return "%.2f/%.2f/%.2f" % load


def format_uptime(seconds: float) -> str:
    """
    Human readable uptime, ``uptime -p`` style without the leading ``up``.
    """
    minutes = int(seconds // 60)
    days, minutes = divmod(minutes, 1440)
    hours, minutes = divmod(minutes, 60)
    parts = []
    for amount, unit in ((days, "day"), (hours, "hour"), (minutes, "minute")):
        if amount:
            parts.append(f"{amount} {unit}{'s' if amount != 1 else ''}")
    return ", ".join(parts) if parts else "0 minutes"


class SystemSources:
    """
    The OS interfaces the sampler reads from.

    Each method raises on failure (``OSError``, ``ValueError`` or a psutil
    error); :class:`SystemMonitor` turns that into an unavailable metric. Tests
    pass a fake implementing the same methods.
    """

    def __init__(self, runner: Optional[CommandRunner] = None,
                 thermal_path: str = THERMAL_ZONE_PATH,
                 interface: str = WIRELESS_INTERFACE):
        self.runner = runner or CommandRunner(timeout=5.0)
        self.thermal_path = thermal_path
        self.interface = interface

    def cpu_times(self) -> Tuple[float, float, float]:
        times = psutil.cpu_times()
        return times.user, times.system, times.idle

    def memory(self) -> Tuple[float, float]:
        mem = psutil.virtual_memory()
        return mem.used, mem.total

    def swap(self) -> Tuple[float, float]:
        swap = psutil.swap_memory()
        return swap.used, swap.total

    def disk_percent(self) -> float:
        return psutil.disk_usage(ROOT_MOUNT).percent

    def thermal_millidegrees(self) -> int:
        text = read_text(self.thermal_path)
        if text is None:
            raise FileNotFoundError(self.thermal_path)
        return int(text.strip())

    def load_average(self) -> Tuple[float, float, float]:
        return psutil.getloadavg()

    def wifi_link(self) -> str:
        result = self.runner.run(["iw", "dev", self.interface, "link"])
        if not result.ok:
            raise OSError(result.stderr.strip() or f"iw exited {result.exit_code}")
        return result.stdout

    def wifi_ssid(self) -> str:
        result = self.runner.run(["iwgetid", "-r"])
        if not result.ok or not result.stdout.strip():
            raise OSError("no SSID")
        return result.stdout.strip()

    def ipv4_address(self) -> str:
        for address in psutil.net_if_addrs().get(self.interface, []):
            if address.family == socket.AF_INET:
                return address.address
        raise OSError(f"no IPv4 address on {self.interface}")

    def uptime_seconds(self) -> float:
        return time.time() - psutil.boot_time()

    def cpu_count(self) -> int:
        return psutil.cpu_count() or 1

    def sleep(self, seconds: float) -> None:
        time.sleep(seconds)


@dataclass(frozen=True)
class MetricsSnapshot:
    """One sampling pass. ``None`` marks a metric whose source was unavailable or disabled."""
    timestamp: int
    cpu: Optional[float] = None
    ram: Optional[float] = None
    temp: Optional[int] = None
    disk: Optional[float] = None
    swap: Optional[float] = None
    load: Optional[Tuple[float, float, float]] = None
    wifi_dbm: Optional[int] = None

    @property
    def wifi_percent(self) -> Optional[int]:
        return None if self.wifi_dbm is None else dbm_to_percent(self.wifi_dbm)

    @property
    def load_text(self) -> str:
        return UNAVAILABLE if self.load is None else format_load(self.load)

    def to_row(self, config: Optional[MonitorConfig] = None) -> Dict[str, str]:
        """
        Formats the snapshot as a ``metrics.csv`` row. Unavailable metrics are
        written as ``N/A``; series with logging switched off are left empty.
        """
        def fmt(value, pattern: str) -> str:
            return UNAVAILABLE if value is None else pattern % value

        row = {
            "cpu": fmt(self.cpu, "%.1f"),
            "ram": fmt(self.ram, "%.1f"),
            "temp": fmt(self.temp, "%d"),
            "disk": fmt(self.disk, "%.1f"),
            "swap": fmt(self.swap, "%.1f"),
            "load": self.load_text,
            "wifi": fmt(self.wifi_dbm, "%d"),
        }
        if config is not None:
            for series in row:
                if not config.logs(series):
                    row[series] = ""
        return row


class SystemMonitor:
    """
    Class responsible for sampling the device's resources.

    Reads CPU, memory, swap, disk, temperature, load and Wi-Fi signal through
    a :class:`SystemSources` and normalises them to percentages, degrees and
    dBm. Each reading is isolated: a failure is logged and reported as ``None``.
    """

    def __init__(self, sources: Optional[SystemSources] = None, config: Optional[MonitorConfig] = None):
        self.sources = sources or SystemSources()
        self.config = config or MonitorConfig()
        logger.debug(f"SystemMonitor initialized (cpu_mode={self.config.cpu_mode})")

    def _read(self, metric: str, reader):
        """Runs one reader, returning None if the metric is disabled or its source fails."""
        if not self.config.samples(metric):
            return None
        try:
            return reader()
        except (OSError, ValueError, psutil.Error) as e:
            logger.debug(f"Metric '{metric}' unavailable: {e}")
            return None

    def get_cpu_usage(self) -> float:
        """
        CPU busy percentage. In ``cumulative`` mode this is the share of ticks
        since boot; in ``delta`` mode it covers a short interval.
        """
        first = self.sources.cpu_times()
        if self.config.cpu_mode != "delta":
            return cpu_percent_from_times(*first)
        self.sources.sleep(CPU_DELTA_INTERVAL)
        second = self.sources.cpu_times()
        return cpu_percent_from_times(*(b - a for a, b in zip(first, second)))

    def get_ram_usage(self) -> float:
        return round(usage_percent(*self.sources.memory()), 1)

    def get_swap_usage(self) -> float:
        return round(usage_percent(*self.sources.swap()), 1)

    def get_disk_usage(self) -> float:
        return round(float(self.sources.disk_percent()), 1)

    def get_cpu_temp(self) -> int:
        return millidegrees_to_celsius(self.sources.thermal_millidegrees())

    def get_load_avg(self) -> Tuple[float, float, float]:
        return tuple(self.sources.load_average())

    def get_wifi_dbm(self) -> int:
        match = _SIGNAL_RE.search(self.sources.wifi_link())
        if not match:
            raise ValueError("no signal line in link output (not connected?)")
        return int(float(match.group(1)))

    def sample(self, timestamp: Optional[int] = None) -> MetricsSnapshot:
        """
        Takes one reading of every enabled metric.

        :param timestamp: Epoch seconds to stamp the snapshot with, defaults to now
        :type timestamp: Optional[int]
        :return: The snapshot
        :rtype: MetricsSnapshot
        """
        snapshot = MetricsSnapshot(
            timestamp=int(time.time()) if timestamp is None else int(timestamp),
            cpu=self._read("cpu", self.get_cpu_usage),
            ram=self._read("ram", self.get_ram_usage),
            temp=self._read("temp", self.get_cpu_temp),
            disk=self._read("disk", self.get_disk_usage),
            swap=self._read("swap", self.get_swap_usage),
            load=self._read("load", self.get_load_avg),
            wifi_dbm=self._read("wifi", self.get_wifi_dbm),
        )
        logger.debug(f"System metrics sampled: {snapshot}")
        return snapshot

    def get_ssid(self) -> str:
        try:
            return self.sources.wifi_ssid()
        except OSError:
            return UNAVAILABLE

    def get_ip(self) -> str:
        try:
            return self.sources.ipv4_address()
        except (OSError, psutil.Error):
            return UNAVAILABLE

    def get_uptime(self) -> str:
        try:
            return format_uptime(self.sources.uptime_seconds())
        except (OSError, psutil.Error):
            return UNAVAILABLE

    def get_num_cores(self) -> int:
        return self.sources.cpu_count()
