from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

ALL = "all"
SYMPTOM_CATEGORIES = {"behavioral", "physical"}


def _numeric_or_none(value: Any) -> int | float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    return None


@dataclass(frozen=True)
class SymptomDefinition:
    id: str
    name: str
    category: str = "physical"
    default_value: int | float = 0
    optional: bool = False

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "SymptomDefinition":
        symptom_id = str(payload.get("id") or "").strip().lower()
        category = str(payload.get("category") or "physical").strip().lower()
        default_value = _numeric_or_none(payload.get("defaultValue", payload.get("value")))
        return cls(
            id=symptom_id,
            name=str(payload.get("name") or symptom_id),
            category=category if category in SYMPTOM_CATEGORIES else "physical",
            default_value=default_value if default_value is not None else 0,
            optional=bool(payload.get("optional", False)),
        )


@dataclass(frozen=True)
class UserRef:
    id: str
    display_label: str

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "UserRef":
        user_id = str(payload.get("_id") or payload.get("id") or "")
        label = str(payload.get("name") or payload.get("email") or user_id)
        return cls(id=user_id, display_label=label)


@dataclass(frozen=True)
class ScoreEntry:
    symptom_id: str
    score: int | float | None = None

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "ScoreEntry":
        return cls(
            symptom_id=str(payload.get("symptomId") or "").strip().lower(),
            score=_numeric_or_none(payload.get("score")),
        )


@dataclass(frozen=True)
class SymptomLog:
    scores: tuple[ScoreEntry, ...] = ()

    @classmethod
    def from_scores(cls, raw_scores: list[dict[str, Any]] | None) -> "SymptomLog":
        entries = [ScoreEntry.from_payload(item) for item in (raw_scores or []) if isinstance(item, dict)]
        return cls(scores=tuple(entry for entry in entries if entry.symptom_id))

    def score_for(self, symptom_id: str) -> int | float | None:
        for entry in self.scores:
            if entry.symptom_id == symptom_id:
                return entry.score
        return None

    def total_score(self) -> int | float:
        return sum(entry.score for entry in self.scores if entry.score is not None)


class _NoLog:
    """Cached marker for a confirmed absent log (404 on a single-date lookup)."""

    _instance: "_NoLog | None" = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "NO_LOG"

    def __bool__(self) -> bool:
        return False


NO_LOG = _NoLog()


@dataclass(frozen=True)
class Filter:
    selected_user: str = ALL
    selected_symptom: str = ALL
    selected_range: str = "Month"
    start_date: datetime | None = None
    end_date: datetime | None = None


@dataclass(frozen=True)
class DateWindow:
    """Inclusive calendar window; a missing bound is open."""

    start: date | None = None
    end: date | None = None

    def contains(self, d: date) -> bool:
        if self.start is not None and d < self.start:
            return False
        if self.end is not None and d > self.end:
            return False
        return True


@dataclass(frozen=True)
class AggregationScope:
    selected_user: str
    selected_symptom: str
    user_ids: tuple[str, ...]
    dates: tuple[str, ...]

    @property
    def all_users(self) -> bool:
        return self.selected_user == ALL

    @property
    def all_symptoms(self) -> bool:
        return self.selected_symptom == ALL

    def required_keys(self) -> list[tuple[str, str]]:
        return [(user_id, date_key) for user_id in self.user_ids for date_key in self.dates]


@dataclass(frozen=True)
class ChartPoint:
    date: str
    score: int | float
    label: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"date": self.date, "label": self.label, "score": self.score}


@dataclass(frozen=True)
class ReductionRow:
    symptom: str
    formatted_change: str
    raw_pct_change: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "symptom": self.symptom,
            "formattedChange": self.formatted_change,
            "rawPctChange": self.raw_pct_change,
        }


@dataclass(frozen=True)
class BaselinePoint:
    date: str
    change: float
    change_percent: int
    label: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.date,
            "label": self.label,
            "change": self.change,
            "changePercent": self.change_percent,
        }


@dataclass(frozen=True)
class AggregationResult:
    chart_data: tuple[ChartPoint, ...] = ()
    reduction_data: tuple[ReductionRow, ...] = ()
    overall_change: str | None = None

    @classmethod
    def empty(cls) -> "AggregationResult":
        return cls()

    @property
    def has_data(self) -> bool:
        return len(self.chart_data) > 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "chartData": [point.to_dict() for point in self.chart_data],
            "reductionData": [row.to_dict() for row in self.reduction_data],
            "overallChange": self.overall_change,
        }


@dataclass(frozen=True)
class EntryView:
    """One user's entry for a date, merged onto the symptom catalog."""

    user_id: str
    date: str
    entry_already_saved: bool
    symptoms: list[dict[str, Any]] = field(default_factory=list)
