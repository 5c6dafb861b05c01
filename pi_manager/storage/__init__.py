"""
Metric persistence and history queries for Pi Manager.
"""
from pi_manager.storage.series_store import MetricSample, SeriesStore, SeriesStoreError
from pi_manager.storage.aggregator import Bucket, WindowPreset, aggregate, preset_for_choice, summarize

__all__ = [
    'MetricSample',
    'SeriesStore',
    'SeriesStoreError',
    'Bucket',
    'WindowPreset',
    'aggregate',
    'preset_for_choice',
    'summarize'
]
