"""
Windowed max-hold aggregation of metric series.

A query window is cut into fixed-size buckets and each bucket reports the
largest sample that fell into it, so short spikes survive downsampling.
Buckets that received no sample carry ``None`` rather than zero, which keeps
"no data" apart from a genuine reading of 0.
"""
import time
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence

from pi_manager.storage.series_store import MetricSample, SeriesStore
from pi_manager.utils import get_logger

logger = get_logger(__name__)

LABEL_FORMAT = "%Y-%m-%d %H:%M:%S"
EMPTY_CELL = "   --"

HISTORY_UNITS: Dict[str, str] = {
    "cpu": "% CPU",
    "ram": "% RAM",
    "temp": " °C",
    "disk": "% DISK",
    "swap": "% SWAP",
    "load": " LOAD",
    "wifi": " dBm",
}


class WindowPreset(Enum):
    """The history windows offered by the dashboard, as (window seconds, bucket seconds, label)."""
    ONE_MINUTE = (60, 1, "1 minute")
    TEN_MINUTES = (600, 10, "10 minutes")
    ONE_HOUR = (3600, 60, "1 hour")
    SIX_HOURS = (21600, 600, "6 hours")
    TWELVE_HOURS = (43200, 1200, "12 hours")
    ONE_DAY = (86400, 3600, "24 hours")

    @property
    def window_seconds(self) -> int:
        return self.value[0]

    @property
    def bucket_seconds(self) -> int:
        return self.value[1]

    @property
    def label(self) -> str:
        return self.value[2]


def preset_for_choice(choice: str) -> Optional[WindowPreset]:
    """
    Map a menu key ``"1"``..``"6"`` to its preset, or None for anything else.
    """
    presets = list(WindowPreset)
    try:
        index = int(str(choice).strip())
    except ValueError:
        return None
    if 1 <= index <= len(presets):
        return presets[index - 1]
    return None


@dataclass(frozen=True)
class Bucket:
    """One time slice of a query window."""
    bucket_start: int
    max_value: Optional[float] = None
    count: int = 0

    @property
    def has_data(self) -> bool:
        return self.count > 0

    @property
    def label(self) -> str:
        return time.strftime(LABEL_FORMAT, time.localtime(self.bucket_start))


def aggregate(samples: Iterable[MetricSample], window_seconds: int, bucket_seconds: int,
              now: Optional[int] = None) -> List[Bucket]:
    """
    Reduce samples to ``window_seconds // bucket_seconds + 1`` max-hold buckets.

    The window starts at ``now - window_seconds``. A sample at time ``t`` lands
    in bucket ``(t - start) // bucket_seconds``; samples before the window or
    past its last bucket are ignored. Duplicate and out-of-order timestamps are
    fine, every sample counts on its own.

    :param samples: Samples in any order
    :type samples: Iterable[MetricSample]
    :param window_seconds: Length of the query window
    :type window_seconds: int
    :param bucket_seconds: Width of each bucket
    :type bucket_seconds: int
    :param now: End of the window in epoch seconds, defaults to the current time
    :type now: Optional[int]
    :return: Buckets in chronological order
    :rtype: List[Bucket]
    :raises ValueError: If the window or bucket size is not positive, or the bucket is wider than the window
    """
    if window_seconds <= 0 or bucket_seconds <= 0:
        raise ValueError("Window and bucket sizes must be positive")
    if bucket_seconds > window_seconds:
        raise ValueError(f"Bucket size {bucket_seconds}s exceeds window {window_seconds}s")

    now = int(time.time()) if now is None else int(now)
    start = now - window_seconds
    bucket_count = window_seconds // bucket_seconds

    maxima: List[Optional[float]] = [None] * (bucket_count + 1)
    counts = [0] * (bucket_count + 1)
    for sample in samples:
        if sample.timestamp < start:
            continue
        index = (sample.timestamp - start) // bucket_seconds
        if index > bucket_count:
            continue
        counts[index] += 1
        if maxima[index] is None or sample.value > maxima[index]:
            maxima[index] = sample.value

    return [
        Bucket(bucket_start=start + index * bucket_seconds, max_value=maxima[index], count=counts[index])
        for index in range(bucket_count + 1)
    ]


def summarize(store: SeriesStore, dataset: str, column: str, preset: WindowPreset,
              now: Optional[int] = None) -> List[Bucket]:
    """
    Aggregate one column of a stored dataset over a preset window.
    """
    buckets = aggregate(store.read_all(dataset, column), preset.window_seconds, preset.bucket_seconds, now)
    filled = sum(1 for bucket in buckets if bucket.has_data)
    logger.debug(f"Aggregated '{dataset}.{column}' over {preset.label}: {filled}/{len(buckets)} buckets with data")
    return buckets


def _format_cell(bucket: Bucket) -> str:
    return EMPTY_CELL if bucket.max_value is None else "%5.1f" % bucket.max_value


def render_history(buckets: Sequence[Bucket], unit: str) -> List[str]:
    """
    One line per bucket: its start time and maximum, e.g. ``2025-01-01 12:00:00   55.0% CPU``.
    """
    return [f"{bucket.label}  {_format_cell(bucket)}{unit}" for bucket in buckets]


def render_history_table(columns: Dict[str, Sequence[Bucket]]) -> List[str]:
    """
    Side-by-side history of several series sharing the same window.

    :param columns: Series name to its buckets; every entry must have the same bucket starts
    :type columns: Dict[str, Sequence[Bucket]]
    :return: Header line followed by one line per bucket
    :rtype: List[str]
    """
    names = list(columns)
    if not names:
        return []
    lines = [" " * len(time.strftime(LABEL_FORMAT)) + "  " + " ".join(f"{name.upper():>6}" for name in names)]
    for row in zip(*(columns[name] for name in names)):
        lines.append(f"{row[0].label}  " + " ".join(f"{_format_cell(bucket):>6}" for bucket in row))
    return lines
