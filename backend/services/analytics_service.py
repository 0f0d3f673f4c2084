from __future__ import annotations

from typing import Any

from analytics.aggregation import baseline_series
from analytics.orchestrator import BatchFetchOrchestrator
from analytics.session import AnalyticsPipeline, FilterSession
from analytics.sources import DatabaseSymptomLogSource

_ORCHESTRATOR: BatchFetchOrchestrator | None = None


def get_orchestrator() -> BatchFetchOrchestrator:
    """Process-wide orchestrator so the analytics cache survives across requests."""
    global _ORCHESTRATOR
    if _ORCHESTRATOR is None:
        _ORCHESTRATOR = BatchFetchOrchestrator(DatabaseSymptomLogSource())
    return _ORCHESTRATOR


def set_orchestrator(orchestrator: BatchFetchOrchestrator | None) -> None:
    global _ORCHESTRATOR
    _ORCHESTRATOR = orchestrator


def invalidate_symptom_log(user_id: str, date: str) -> None:
    """Called after a log is saved or deleted so the next read refetches it."""
    if _ORCHESTRATOR is None:
        return
    _ORCHESTRATOR.invalidate(user_id, date)


async def run_analytics(
    *,
    user: str,
    symptom: str,
    time_range: str,
    start_date: str | None = None,
    end_date: str | None = None,
) -> dict[str, Any]:
    session = FilterSession(selected_range=time_range)
    session.set_user(user)
    session.set_symptom(symptom)
    if start_date or end_date:
        session.set_dates(start_date, end_date)

    orchestrator = get_orchestrator()
    pipeline = AnalyticsPipeline(session, orchestrator)
    result = await pipeline.run()
    if result is None:
        result = pipeline.result

    f = session.filter
    payload = result.to_dict()
    payload.update(
        {
            "baselineData": [point.to_dict() for point in baseline_series(result.chart_data)],
            "hasData": result.has_data,
            "filter": {
                "user": f.selected_user,
                "symptom": f.selected_symptom,
                "range": f.selected_range,
                "startDate": f.start_date.isoformat() if f.start_date else None,
                "endDate": f.end_date.isoformat() if f.end_date else None,
            },
            "filteredUserIds": list(pipeline.scope.user_ids) if pipeline.scope else [],
            "filteredDates": list(pipeline.scope.dates) if pipeline.scope else [],
        }
    )
    return payload


def cache_stats() -> dict[str, Any]:
    orchestrator = get_orchestrator()
    return {
        "caches": orchestrator.cache.stats(),
        "pending": orchestrator.pending_keys(),
    }


def refresh_catalogs() -> None:
    """Drop the cached symptom and user catalogs, e.g. after seeding or user changes."""
    get_orchestrator().invalidate_catalogs()
