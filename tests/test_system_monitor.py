import pytest

from pi_manager.config import MonitorConfig, METRICS
from pi_manager.monitoring import MetricsSnapshot, SystemMonitor, dbm_to_percent, millidegrees_to_celsius
from pi_manager.monitoring.system_monitor import cpu_percent_from_times, format_uptime

from conftest import FakeSources


@pytest.mark.parametrize("dbm,percent", [
    (-50, 100), (-100, 0), (-120, 0), (-30, 100), (-75, 50), (-58, 84),
])
def test_dbm_to_percent_is_clamped(dbm, percent):
    assert dbm_to_percent(dbm) == percent


@pytest.mark.parametrize("raw,celsius", [(60999, 60), (48312, 48), (0, 0), (-1500, -1)])
def test_millidegrees_truncate(raw, celsius):
    assert millidegrees_to_celsius(raw) == celsius


def test_cpu_percent_from_times():
    assert cpu_percent_from_times(300, 100, 600) == 40.0
    assert cpu_percent_from_times(0, 0, 0) == 0.0


def test_sample_reads_every_metric(sources):
    snapshot = SystemMonitor(sources).sample(timestamp=1000)

    assert snapshot == MetricsSnapshot(
        timestamp=1000, cpu=40.0, ram=50.0, temp=48, disk=42.4, swap=0.0,
        load=(0.52, 0.4, 0.31), wifi_dbm=-58,
    )
    assert snapshot.wifi_percent == 84
    assert snapshot.load_text == "0.52/0.40/0.31"


def test_failing_source_only_blanks_its_own_metric():
    sources = FakeSources(thermal_millidegrees=FileNotFoundError("no thermal zone"),
                          wifi_link="Not connected.\n")

    snapshot = SystemMonitor(sources).sample(timestamp=1000)

    assert snapshot.temp is None
    assert snapshot.wifi_dbm is None
    assert snapshot.wifi_percent is None
    assert snapshot.cpu == 40.0
    assert snapshot.ram == 50.0
    assert snapshot.disk == 42.4


def test_disabled_metric_is_not_read():
    sources = FakeSources(wifi_link=AssertionError("must not be called"))
    config = MonitorConfig(sampled_metrics=frozenset(m for m in METRICS if m != "wifi"))

    snapshot = SystemMonitor(sources, config).sample(timestamp=1000)

    assert snapshot.wifi_dbm is None
    assert snapshot.cpu is not None


def test_cumulative_cpu_takes_one_reading(sources):
    SystemMonitor(sources).get_cpu_usage()

    assert sources.slept == []


def test_delta_cpu_measures_the_interval():
    sources = FakeSources(cpu_times=[(100.0, 50.0, 850.0), (130.0, 60.0, 860.0)])
    monitor = SystemMonitor(sources, MonitorConfig(cpu_mode="delta"))

    assert monitor.get_cpu_usage() == 80.0
    assert len(sources.slept) == 1


def test_to_row_formats_values_and_marks_unavailable_metrics():
    snapshot = MetricsSnapshot(timestamp=1000, cpu=12.34, ram=50.0, temp=48, disk=None,
                               swap=0.0, load=(1.0, 0.5, 0.25), wifi_dbm=-61)

    assert snapshot.to_row() == {
        "cpu": "12.3", "ram": "50.0", "temp": "48", "disk": "N/A",
        "swap": "0.0", "load": "1.00/0.50/0.25", "wifi": "-61",
    }


def test_to_row_leaves_unlogged_series_empty():
    snapshot = MetricsSnapshot(timestamp=1000, cpu=1.0, temp=40)
    config = MonitorConfig(logged_series=frozenset(m for m in METRICS if m != "temp"))

    row = snapshot.to_row(config)

    assert row["temp"] == ""
    assert row["cpu"] == "1.0"


def test_display_helpers(sources):
    monitor = SystemMonitor(sources)

    assert monitor.get_ssid() == "home"
    assert monitor.get_ip() == "192.168.1.20"
    assert monitor.get_uptime() == "3 hours, 5 minutes"
    assert monitor.get_num_cores() == 4


def test_display_helpers_report_unavailable():
    monitor = SystemMonitor(FakeSources(wifi_ssid=OSError("down"), ipv4_address=OSError("down")))

    assert monitor.get_ssid() == "N/A"
    assert monitor.get_ip() == "N/A"


@pytest.mark.parametrize("seconds,text", [
    (30, "0 minutes"), (60, "1 minute"), (90061, "1 day, 1 hour, 1 minute"),
])
def test_format_uptime(seconds, text):
    assert format_uptime(seconds) == text
