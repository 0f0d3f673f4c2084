from analytics.aggregation import aggregate, baseline_series
from analytics.cache import AnalyticsCache, Cache, CacheEntry, compute_missing, is_valid
from analytics.errors import AnalyticsError, FetchError, ValidationError
from analytics.models import NO_LOG, AggregationResult, AggregationScope, Filter
from analytics.orchestrator import BatchFetchOrchestrator
from analytics.ranges import resolve_cutoff, should_promote_to_custom
from analytics.session import AnalyticsPipeline, FilterSession, run_pipeline

__all__ = [
    "AggregationResult",
    "AggregationScope",
    "AnalyticsCache",
    "AnalyticsError",
    "AnalyticsPipeline",
    "BatchFetchOrchestrator",
    "Cache",
    "CacheEntry",
    "FetchError",
    "Filter",
    "FilterSession",
    "NO_LOG",
    "ValidationError",
    "aggregate",
    "baseline_series",
    "compute_missing",
    "is_valid",
    "resolve_cutoff",
    "run_pipeline",
    "should_promote_to_custom",
]
