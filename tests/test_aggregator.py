import time

import pytest

from pi_manager.storage import MetricSample, SeriesStore, WindowPreset, aggregate, preset_for_choice, summarize
from pi_manager.storage.aggregator import render_history, render_history_table

NOW = 1_700_000_000


def test_ten_minute_window_has_61_buckets_ten_seconds_apart():
    buckets = aggregate([], 600, 10, now=NOW)

    assert len(buckets) == 61
    assert buckets[0].bucket_start == NOW - 600
    assert buckets[-1].bucket_start == NOW
    assert all(b.bucket_start - a.bucket_start == 10 for a, b in zip(buckets, buckets[1:]))


@pytest.mark.parametrize("preset", list(WindowPreset))
def test_every_preset_yields_window_over_bucket_plus_one(preset):
    buckets = aggregate([], preset.window_seconds, preset.bucket_seconds, now=NOW)

    assert len(buckets) == preset.window_seconds // preset.bucket_seconds + 1


def test_bucket_reports_the_maximum_sample():
    t0 = NOW - 600
    samples = [MetricSample(t0, 10), MetricSample(t0 + 2, 55), MetricSample(t0 + 4, 30)]

    buckets = aggregate(samples, 600, 10, now=NOW)

    assert buckets[0].max_value == 55
    assert buckets[0].count == 3
    assert buckets[1].max_value is None


def test_empty_buckets_are_distinguishable_from_zero_readings():
    samples = [MetricSample(NOW - 5, 0.0)]

    buckets = aggregate(samples, 60, 10, now=NOW)

    assert buckets[5].max_value == 0.0
    assert buckets[5].has_data
    assert all(not b.has_data for i, b in enumerate(buckets) if i != 5)


def test_duplicate_and_out_of_order_timestamps_count_independently():
    samples = [MetricSample(NOW - 1, 4), MetricSample(NOW - 30, 9), MetricSample(NOW - 1, 7)]

    buckets = aggregate(samples, 60, 10, now=NOW)

    assert buckets[5].max_value == 7
    assert buckets[5].count == 2
    assert buckets[3].max_value == 9


def test_samples_outside_the_window_are_ignored():
    samples = [MetricSample(NOW - 61, 99), MetricSample(NOW + 60, 99), MetricSample(NOW, 3)]

    buckets = aggregate(samples, 60, 10, now=NOW)

    assert buckets[-1].max_value == 3
    assert sum(b.count for b in buckets) == 1


@pytest.mark.parametrize("window,bucket", [(0, 10), (60, 0), (-60, 10), (10, 60)])
def test_invalid_window_parameters_are_rejected(window, bucket):
    with pytest.raises(ValueError):
        aggregate([], window, bucket, now=NOW)


def test_bucket_label_is_local_time():
    bucket = aggregate([], 60, 60, now=NOW)[0]

    assert bucket.label == time.strftime("%Y-%m-%d %H:%M:%S", time.localtime(NOW - 60))


@pytest.mark.parametrize("choice,expected", [
    ("1", WindowPreset.ONE_MINUTE),
    ("2", WindowPreset.TEN_MINUTES),
    ("6", WindowPreset.ONE_DAY),
    ("0", None),
    ("7", None),
    ("²", None),
    ("-1", None),
    ("x", None),
    ("", None),
])
def test_preset_for_choice(choice, expected):
    assert preset_for_choice(choice) is expected


def test_summarize_reads_one_column_from_the_store(tmp_path):
    store = SeriesStore(str(tmp_path))
    store.append("metrics", NOW - 30, {"cpu": "20.0", "ram": "50.0"})
    store.append("metrics", NOW - 25, {"cpu": "80.0", "ram": "40.0"})

    buckets = summarize(store, "metrics", "cpu", WindowPreset.ONE_MINUTE, now=NOW)

    assert len(buckets) == 61
    assert buckets[30].max_value == 20.0
    assert buckets[35].max_value == 80.0


def test_render_history_marks_empty_buckets():
    buckets = aggregate([MetricSample(NOW, 55)], 20, 10, now=NOW)

    lines = render_history(buckets, "% CPU")

    assert lines[0].endswith("   --% CPU")
    assert lines[-1].endswith(" 55.0% CPU")
    assert len(lines) == 3


def test_render_history_table_has_one_column_per_series():
    cpu = aggregate([MetricSample(NOW, 12.5)], 20, 10, now=NOW)
    ram = aggregate([], 20, 10, now=NOW)

    lines = render_history_table({"cpu": cpu, "ram": ram})

    assert "CPU" in lines[0] and "RAM" in lines[0]
    assert len(lines) == 4
    assert lines[-1].split()[-2:] == ["12.5", "--"]
