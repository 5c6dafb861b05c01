import logging
import os

import pytest

from pi_manager.core import PiManager, confirm
from pi_manager.scheduling import ScheduleReconciler
from pi_manager.storage import MetricSample, SeriesStore
from pi_manager.system.directory_utils import METRICS_SERIES

from conftest import FakeSources


@pytest.fixture
def manager(paths, config_manager, runner, sources):
    reconciler = ScheduleReconciler(paths, config_manager, runner=runner, exec_start="pi-manager --log")
    return PiManager(paths, config_manager=config_manager, reconciler=reconciler, sources=sources)


def test_run_logger_appends_one_row(manager, paths):
    assert manager.run_logger(now=1_000_000) == 0

    store = SeriesStore(paths.log_dir)
    assert store.columns(METRICS_SERIES) == ["timestamp", "cpu", "ram", "temp", "disk", "swap", "load", "wifi"]
    assert list(store.read_all(METRICS_SERIES, "cpu")) == [MetricSample(1_000_000, 40.0)]
    assert list(store.read_all(METRICS_SERIES, "wifi")) == [MetricSample(1_000_000, -58.0)]


def test_run_logger_prunes_expired_rows(manager, paths, config_manager):
    config_manager.set_value("log_prune", "1h")
    manager.run_logger(now=1_000_000)
    manager.run_logger(now=1_000_000 + 1800)
    manager.run_logger(now=1_000_000 + 3601)

    timestamps = [s.timestamp for s in SeriesStore(paths.log_dir).read_all(METRICS_SERIES, "ram")]
    assert timestamps == [1_001_800, 1_003_601]


def test_run_logger_writes_na_for_unavailable_metric(paths, config_manager, runner):
    manager = PiManager(paths, config_manager=config_manager,
                        reconciler=ScheduleReconciler(paths, config_manager, runner=runner, exec_start="x"),
                        sources=FakeSources(thermal_millidegrees=OSError("missing")))

    assert manager.run_logger(now=500) == 0

    with open(paths.metrics_file, encoding="utf-8") as f:
        row = f.read().splitlines()[1].split(",")
    assert row[3] == "N/A"


def test_run_logger_reports_write_failure(paths, config_manager, runner, sources, tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("")
    manager = PiManager(paths, config_manager=config_manager, store=SeriesStore(str(blocker)),
                        reconciler=ScheduleReconciler(paths, config_manager, runner=runner, exec_start="x"),
                        sources=sources)

    records = []
    handler = logging.Handler()
    handler.emit = records.append
    module_logger = logging.getLogger("pi_manager.core.manager")
    module_logger.addHandler(handler)
    try:
        assert manager.run_logger(now=500) == 1
    finally:
        module_logger.removeHandler(handler)

    messages = [record.getMessage() for record in records if record.levelno == logging.ERROR]
    assert messages and messages[0].startswith("Failed to write to ")


def test_initial_setup_creates_directories_and_config(manager, paths):
    manager.initial_setup()

    for directory in (paths.config_dir, paths.log_dir, paths.snapshot_dir):
        assert os.path.isdir(directory)
    assert os.path.exists(paths.config_file)
    assert os.path.exists(paths.metrics_file)
    assert os.path.exists(os.path.join(paths.unit_dir, "nick_pi_manager-log.timer"))


def test_clear_logs(manager, paths):
    manager.run_logger(now=100)

    manager.clear_logs()

    assert list(SeriesStore(paths.log_dir).read_all(METRICS_SERIES, "cpu")) == []


def test_reset_restores_defaults(manager, paths, config_manager):
    manager.initial_setup()
    config_manager.set_value("log_interval", "30s")
    manager.run_logger(now=100)

    config = manager.reset(clear_logs=True)

    assert config.sampling_interval == 5
    assert os.path.getsize(paths.metrics_file) == 0
    with open(os.path.join(paths.unit_dir, "nick_pi_manager-log.timer"), encoding="utf-8") as f:
        assert "OnUnitActiveSec=5s" in f.read()
    with open(paths.config_file, encoding="utf-8") as f:
        assert "log_interval=5s\n" in f.read()


@pytest.mark.parametrize("answer,expected", [("y", True), ("YES", True), ("n", False), ("", False)])
def test_confirm(answer, expected):
    assert confirm("Sure? ", ask=lambda prompt: answer) is expected


def test_confirm_on_eof():
    def ask(prompt):
        raise EOFError

    assert confirm("Sure? ", ask=ask) is False
