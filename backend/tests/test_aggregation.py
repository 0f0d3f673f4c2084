from __future__ import annotations

import sys
from pathlib import Path

import pytest


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from analytics.aggregation import (  # noqa: E402
    NO_CHANGE,
    NOT_ENOUGH_DATA,
    aggregate,
    baseline_series,
    build_series,
    describe_change,
    format_signed_pct,
    rank_reductions,
    summarize_overall,
)
from analytics.models import (  # noqa: E402
    ALL,
    NO_LOG,
    AggregationResult,
    AggregationScope,
    ChartPoint,
    SymptomDefinition,
    SymptomLog,
)

D1, D2, D3 = "01-01-2026", "01-05-2026", "01-10-2026"

SYMPTOMS = [
    SymptomDefinition(id="a", name="A"),
    SymptomDefinition(id="b", name="B"),
    SymptomDefinition(id="c", name="C"),
    SymptomDefinition(id="fatigue", name="Fatigue"),
]


def _log(**scores) -> SymptomLog:
    return SymptomLog.from_scores([{"symptomId": k, "score": v} for k, v in scores.items()])


def _scope(user_ids, dates, user=ALL, symptom=ALL) -> AggregationScope:
    return AggregationScope(
        selected_user=user,
        selected_symptom=symptom,
        user_ids=tuple(user_ids),
        dates=tuple(dates),
    )


def _fill(logs: dict, user_ids, dates) -> dict:
    """Every (user, date) pair in scope is loaded; pairs without a log hold an empty one."""
    filled = dict(logs)
    for user_id in user_ids:
        for d in dates:
            filled.setdefault((user_id, d), SymptomLog())
    return filled


def test_all_users_all_symptoms_drops_single_entry_users():
    logs = _fill(
        {
            ("userA", D1): _log(fatigue=10),
            ("userA", D2): _log(fatigue=5),
            ("userB", D1): _log(fatigue=4),
        },
        ["userA", "userB"],
        [D1, D2],
    )
    index = {"userA": [D2, D1], "userB": [D1]}
    series = build_series(logs, index, _scope(["userA", "userB"], [D1, D2]))
    assert [(p.date, p.score) for p in series] == [(D1, 10), (D2, 5)]
    assert series[0].label == "Jan 01 2026"


def test_all_users_specific_symptom_keeps_single_entry_users():
    logs = _fill(
        {
            ("userA", D1): _log(fatigue=10),
            ("userA", D2): _log(fatigue=5),
            ("userB", D1): _log(fatigue=4),
        },
        ["userA", "userB"],
        [D1, D2],
    )
    index = {"userA": [D1, D2], "userB": [D1]}
    series = build_series(logs, index, _scope(["userA", "userB"], [D1, D2], symptom="fatigue"))
    assert [(p.date, p.score) for p in series] == [(D1, 14), (D2, 5)]


def test_single_user_series_covers_every_working_date():
    logs = {("u1", D1): _log(fatigue=3, a=None), ("u1", D2): NO_LOG}
    index = {"u1": [D1]}
    series = build_series(logs, index, _scope(["u1"], [D1, D2], user="u1"))
    assert [(p.date, p.score) for p in series] == [(D1, 3), (D2, 0)]

    one_symptom = build_series(logs, index, _scope(["u1"], [D1, D2], user="u1", symptom="a"))
    assert [p.score for p in one_symptom] == [0, 0]


@pytest.mark.parametrize(
    ("first", "last", "expected"),
    [
        (0, 0, NO_CHANGE),
        (0, 8, "Started from 0 → 8"),
        (10, 5, "-50.00%"),
        (10, 10, "0.00%"),
        (4, 5, "+25.00%"),
    ],
)
def test_describe_change(first, last, expected):
    assert describe_change(first, last) == expected


def test_overall_needs_two_points():
    assert summarize_overall([]) == NOT_ENOUGH_DATA
    assert summarize_overall([ChartPoint(date=D1, score=7)]) == NOT_ENOUGH_DATA


def test_formatted_percentages_carry_sign_for_rises_only():
    assert format_signed_pct(10.0, 1) == "+10.0%"
    assert format_signed_pct(-50.0, 1) == "-50.0%"
    assert format_signed_pct(0.0, 1) == "0.0%"


def test_reductions_sort_ascending_by_signed_change():
    logs = {
        ("u1", D1): _log(a=10, b=20, c=4),
        ("u1", D2): _log(a=5, b=22, c=0),
    }
    index = {"u1": [D1, D2]}
    rows = rank_reductions(logs, index, SYMPTOMS, _scope(["u1"], [D1, D2], user="u1"))
    assert [row.symptom for row in rows] == ["C", "A", "B"]
    assert [row.formatted_change for row in rows] == ["-100.0%", "-50.0%", "+10.0%"]
    assert rows[0].to_dict() == {"symptom": "C", "formattedChange": "-100.0%", "rawPctChange": -100.0}


def test_reductions_keep_top_five_and_break_ties_by_name():
    ids = ["s1", "s2", "s3", "s4", "s5", "s6"]
    symptoms = [SymptomDefinition(id=s, name=s.upper()) for s in ids]
    logs = {
        ("u1", D1): _log(**{s: 10 for s in ids}),
        ("u1", D2): _log(s1=5, s2=5, s3=9, s4=12, s5=1, s6=20),
    }
    rows = rank_reductions(logs, {"u1": [D1, D2]}, symptoms, _scope(["u1"], [D1, D2], user="u1"))
    assert [row.symptom for row in rows] == ["S5", "S1", "S2", "S3", "S4"]


def test_reductions_skip_symptoms_without_two_values():
    logs = {("u1", D1): _log(a=3), ("u1", D2): _log(a=None, b=4), ("u1", D3): _log(b=2)}
    rows = rank_reductions(logs, {"u1": [D1, D2, D3]}, SYMPTOMS, _scope(["u1"], [D1, D2, D3], user="u1"))
    assert [(row.symptom, row.formatted_change) for row in rows] == [("B", "-50.0%")]


def test_all_users_all_symptoms_reduction_averages_per_user_changes():
    logs = _fill(
        {
            ("u1", D1): _log(a=10),
            ("u1", D2): _log(a=5),
            ("u2", D1): _log(a=10),
            ("u2", D3): _log(a=20),
            ("u3", D2): _log(a=1),
        },
        ["u1", "u2", "u3"],
        [D1, D2, D3],
    )
    index = {"u1": [D1, D2], "u2": [D1, D3], "u3": [D2]}
    rows = rank_reductions(logs, index, SYMPTOMS, _scope(["u1", "u2", "u3"], [D1, D2, D3]))
    # u1 -50, u2 +100; u3 has a single value and does not qualify.
    assert rows[0].raw_pct_change == pytest.approx(25.0)
    assert rows[0].formatted_change == "+25.0%"


def test_all_users_specific_symptom_pools_first_and_last_values():
    logs = _fill(
        {
            ("u1", D1): _log(a=10),
            ("u1", D2): _log(a=8),
            ("u2", D2): _log(a=6),
            ("u2", D3): _log(a=4),
        },
        ["u1", "u2"],
        [D1, D2, D3],
    )
    index = {"u1": [D1, D2], "u2": [D2, D3]}
    rows = rank_reductions(logs, index, SYMPTOMS, _scope(["u1", "u2"], [D1, D2, D3], symptom="a"))
    assert len(rows) == 1
    assert rows[0].raw_pct_change == pytest.approx(-60.0)


def test_aggregate_same_value_twice_is_zero_percent_not_no_change():
    logs = {("u1", D1): _log(fatigue=10), ("u1", D3): _log(fatigue=10)}
    result = aggregate(logs, {"u1": [D1, D3]}, SYMPTOMS, _scope(["u1"], [D1, D3], user="u1", symptom="fatigue"))
    assert result.overall_change == "0.00%"
    assert result.has_data


def test_aggregate_is_empty_until_every_required_log_is_loaded():
    logs = {("u1", D1): _log(a=1)}
    scope = _scope(["u1"], [D1, D2], user="u1")
    assert aggregate(logs, {"u1": [D1, D2]}, SYMPTOMS, scope) == AggregationResult.empty()
    assert aggregate(logs, {}, SYMPTOMS, _scope(["u1"], [], user="u1")).to_dict() == {
        "chartData": [],
        "reductionData": [],
        "overallChange": None,
    }
    assert aggregate(logs, {}, [], _scope(["u1"], [D1], user="u1")).overall_change is None


def test_aggregate_is_idempotent():
    logs = {
        ("u1", D1): _log(a=10, b=20, c=4),
        ("u1", D2): _log(a=5, b=22, c=0),
    }
    index = {"u1": [D1, D2]}
    scope = _scope(["u1"], [D1, D2], user="u1")
    first = aggregate(logs, index, SYMPTOMS, scope)
    assert aggregate(logs, index, SYMPTOMS, scope) == first
    assert first.overall_change == "-20.59%"


def test_null_scores_count_as_zero_in_totals():
    logs = {("u1", D1): _log(a=None, b=None), ("u1", D2): _log(a=2, b=None)}
    result = aggregate(logs, {"u1": [D1, D2]}, SYMPTOMS, _scope(["u1"], [D1, D2], user="u1"))
    assert [p.score for p in result.chart_data] == [0, 2]
    assert result.overall_change == "Started from 0 → 2"


def test_baseline_series_treats_zero_baseline_as_one():
    series = [ChartPoint(date=D1, score=0), ChartPoint(date=D2, score=3)]
    points = baseline_series(series)
    assert [p.change_percent for p in points] == [-100, 200]

    series = [ChartPoint(date=D1, score=8), ChartPoint(date=D2, score=6), ChartPoint(date=D3, score=10)]
    assert [p.change_percent for p in baseline_series(series)] == [0, -25, 25]
    assert baseline_series([]) == []
