"""Pure trend computations over the merged analytics cache.

Nothing here performs I/O or reads the clock: the same logs, index, catalog
and scope always produce the same result.
"""
from __future__ import annotations

import math
from collections.abc import Mapping, Sequence

from analytics.models import (
    AggregationResult,
    AggregationScope,
    BaselinePoint,
    ChartPoint,
    ReductionRow,
    SymptomDefinition,
    SymptomLog,
)
from config import settings
from utils.datetime_utils import chart_label, parse_date_key

NOT_ENOUGH_DATA = "Not enough data"
NO_CHANGE = "No change"

Number = int | float
Logs = Mapping[tuple[str, str], object]
Index = Mapping[str, Sequence[str]]

_EMPTY_LOG = SymptomLog()


def pct_change(first: Number, last: Number) -> float:
    """First/last percentage change; a zero baseline maps to 0 (flat) or 100 (rise)."""
    if first == 0:
        return 0.0 if last == 0 else 100.0
    return (last - first) / first * 100


def format_number(value: Number) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def format_signed_pct(value: float, decimals: int) -> str:
    sign = "+" if value > 0 else ""
    return f"{sign}{value:.{decimals}f}%"


def describe_change(first: Number, last: Number) -> str:
    if first == 0:
        return NO_CHANGE if last == 0 else f"Started from 0 → {format_number(last)}"
    return format_signed_pct(pct_change(first, last), 2)


def _log_at(logs: Logs, user_id: str, date_key: str) -> SymptomLog:
    log = logs.get((user_id, date_key))
    # NO_LOG and missing keys both read as an entry with no scores.
    return log if isinstance(log, SymptomLog) else _EMPTY_LOG


def entry_score(log: SymptomLog, selected_symptom: str, all_symptoms: bool) -> Number:
    if all_symptoms:
        return log.total_score()
    score = log.score_for(selected_symptom)
    return score if score is not None else 0


def _entry_dates(index: Index, user_id: str, dates: Sequence[str]) -> list[str]:
    indexed = set(index.get(user_id) or ())
    return [d for d in dates if d in indexed]


def is_complete(logs: Logs, scope: AggregationScope) -> bool:
    return all(key in logs for key in scope.required_keys())


def build_series(logs: Logs, index: Index, scope: AggregationScope) -> list[ChartPoint]:
    def _point(date_key: str, score: Number) -> ChartPoint:
        return ChartPoint(date=date_key, score=score, label=chart_label(parse_date_key(date_key)))

    if not scope.all_users:
        user_id = scope.user_ids[0]
        return [
            _point(d, entry_score(_log_at(logs, user_id, d), scope.selected_symptom, scope.all_symptoms))
            for d in scope.dates
        ]

    entries = {user_id: _entry_dates(index, user_id, scope.dates) for user_id in scope.user_ids}
    contributors = list(scope.user_ids)
    if scope.all_symptoms:
        # Single-entry users add a step to a summed series without carrying a trend.
        contributors = [user_id for user_id in contributors if len(entries[user_id]) >= 2]

    totals: dict[str, Number] = {}
    for user_id in contributors:
        for d in entries[user_id]:
            score = entry_score(_log_at(logs, user_id, d), scope.selected_symptom, scope.all_symptoms)
            totals[d] = totals.get(d, 0) + score
    return [_point(d, totals[d]) for d in scope.dates if d in totals]


def _symptom_ids_in_scope(logs: Logs, index: Index, scope: AggregationScope) -> list[str]:
    if not scope.all_symptoms:
        return [scope.selected_symptom]
    seen: list[str] = []
    for user_id in scope.user_ids:
        for d in _entry_dates(index, user_id, scope.dates):
            for entry in _log_at(logs, user_id, d).scores:
                if entry.symptom_id not in seen:
                    seen.append(entry.symptom_id)
    return seen


def _numeric_values(logs: Logs, index: Index, user_id: str, symptom_id: str, dates: Sequence[str]) -> list[Number]:
    values: list[Number] = []
    for d in _entry_dates(index, user_id, dates):
        score = _log_at(logs, user_id, d).score_for(symptom_id)
        if score is not None:
            values.append(score)
    return values


def _symptom_change(logs: Logs, index: Index, symptom_id: str, scope: AggregationScope) -> float | None:
    per_user = {
        user_id: _numeric_values(logs, index, user_id, symptom_id, scope.dates)
        for user_id in scope.user_ids
    }
    if not scope.all_users:
        values = per_user[scope.user_ids[0]]
        if len(values) < 2:
            return None
        return pct_change(values[0], values[-1])

    qualifying = {user_id: values for user_id, values in per_user.items() if len(values) >= 2}
    if not qualifying:
        return None
    if scope.all_symptoms:
        changes = [pct_change(values[0], values[-1]) for values in qualifying.values()]
        return sum(changes) / len(changes)

    # Pooled first/last: earliest and latest values across qualifying users.
    dated: list[tuple[object, int, Number]] = []
    for order, user_id in enumerate(scope.user_ids):
        if user_id not in qualifying:
            continue
        for d in _entry_dates(index, user_id, scope.dates):
            score = _log_at(logs, user_id, d).score_for(symptom_id)
            if score is not None:
                dated.append((parse_date_key(d), order, score))
    dated.sort(key=lambda item: (item[0], item[1]))
    return pct_change(dated[0][2], dated[-1][2])


def rank_reductions(
    logs: Logs,
    index: Index,
    symptoms: Sequence[SymptomDefinition],
    scope: AggregationScope,
    top_n: int | None = None,
) -> list[ReductionRow]:
    names = {s.id: s.name for s in symptoms}
    rows: list[ReductionRow] = []
    for symptom_id in _symptom_ids_in_scope(logs, index, scope):
        change = _symptom_change(logs, index, symptom_id, scope)
        if change is None:
            continue
        rows.append(
            ReductionRow(
                symptom=names.get(symptom_id, symptom_id),
                formatted_change=format_signed_pct(change, 1),
                raw_pct_change=change,
            )
        )
    rows.sort(key=lambda row: (row.raw_pct_change, row.symptom))
    limit = top_n if top_n is not None else settings.REDUCTION_TOP_N
    return rows[:limit]


def summarize_overall(series: Sequence[ChartPoint]) -> str:
    if len(series) < 2:
        return NOT_ENOUGH_DATA
    return describe_change(series[0].score, series[-1].score)


def baseline_series(series: Sequence[ChartPoint]) -> list[BaselinePoint]:
    """Each point's score relative to the first one; a zero baseline counts as 1."""
    if not series:
        return []
    baseline = series[0].score
    safe_baseline = 1 if baseline == 0 else baseline
    points = []
    for point in series:
        change = point.score / safe_baseline
        points.append(
            BaselinePoint(
                date=point.date,
                label=point.label,
                change=change,
                change_percent=math.floor((change - 1) * 100 + 0.5),
            )
        )
    return points


def aggregate(
    logs: Logs,
    index: Index,
    symptoms: Sequence[SymptomDefinition],
    scope: AggregationScope,
    top_n: int | None = None,
) -> AggregationResult:
    """Trend series, top reductions and overall change for one scope.

    Returns the empty result while any required (user, date) log is absent.
    """
    if not scope.user_ids or not scope.dates or not symptoms:
        return AggregationResult.empty()
    if not is_complete(logs, scope):
        return AggregationResult.empty()

    series = build_series(logs, index, scope)
    return AggregationResult(
        chart_data=tuple(series),
        reduction_data=tuple(rank_reductions(logs, index, symptoms, scope, top_n)),
        overall_change=summarize_overall(series),
    )
