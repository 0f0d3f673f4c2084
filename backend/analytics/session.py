from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import replace
from datetime import date, datetime

from analytics.aggregation import aggregate
from analytics.errors import FetchError, ValidationError
from analytics.models import (
    ALL,
    AggregationResult,
    AggregationScope,
    DateWindow,
    Filter,
    SymptomDefinition,
    UserRef,
)
from analytics.orchestrator import BatchFetchOrchestrator
from analytics.ranges import (
    RANGE_CUSTOM,
    RANGE_MONTH,
    build_window,
    canonical_range,
    resolve_cutoff,
    should_promote_to_custom,
)
from utils.datetime_utils import is_date_key, parse_date_key

logger = logging.getLogger(__name__)

ALL_USERS_LABEL = "All Users"
ALL_SYMPTOMS_LABEL = "All Symptoms"


def coerce_datetime(value: object, field: str) -> datetime | None:
    """Accept datetimes, dates, DateKeys or ISO dates; aware values become naive local time."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.astimezone().replace(tzinfo=None) if value.tzinfo else value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, str):
        text = value.strip()
        if is_date_key(text):
            d = parse_date_key(text)
            return datetime(d.year, d.month, d.day)
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            raise ValidationError(f"`{field}` is not a valid date: {value!r}") from None
        return parsed.astimezone().replace(tzinfo=None) if parsed.tzinfo else parsed
    raise ValidationError(f"`{field}` must be a date")


class FilterSession:
    """The active analytics selection plus a revision counter.

    Every setter produces a new revision; derived user and date sets are
    recomputed from the current filter on each call rather than stored.
    """

    def __init__(
        self,
        selected_user: str = ALL,
        selected_symptom: str = ALL,
        selected_range: str = RANGE_MONTH,
        clock: Callable[[], datetime] | None = None,
    ):
        self._clock = clock or datetime.now
        self.revision = 0
        self.filter = Filter(selected_user=selected_user, selected_symptom=selected_symptom)
        self.set_range(selected_range)

    def now(self) -> datetime:
        return self._clock()

    def _commit(self, new_filter: Filter) -> Filter:
        self.filter = new_filter
        self.revision += 1
        return new_filter

    def set_user(self, user_id: str) -> Filter:
        user_id = str(user_id or "").strip()
        if not user_id:
            raise ValidationError("`selected_user` is required")
        return self._commit(replace(self.filter, selected_user=user_id))

    def set_symptom(self, symptom_id: str) -> Filter:
        symptom_id = str(symptom_id or "").strip().lower()
        if not symptom_id:
            raise ValidationError("`selected_symptom` is required")
        return self._commit(replace(self.filter, selected_symptom=symptom_id))

    def set_range(self, token: str) -> Filter:
        canonical = canonical_range(token)
        if canonical is None:
            raise ValidationError(f"Unknown time range: {token!r}")
        if canonical == RANGE_CUSTOM:
            return self._commit(replace(self.filter, selected_range=RANGE_CUSTOM))
        now = self.now()
        return self._commit(
            replace(
                self.filter,
                selected_range=canonical,
                start_date=resolve_cutoff(canonical, now),
                end_date=now,
            )
        )

    def set_dates(self, start: object, end: object) -> Filter:
        start_dt = coerce_datetime(start, "start_date")
        end_dt = coerce_datetime(end, "end_date")
        if start_dt and end_dt and start_dt.date() > end_dt.date():
            raise ValidationError("`start_date` must not be after `end_date`")
        token = self.filter.selected_range
        if should_promote_to_custom(token, start_dt, end_dt, self.now()):
            logger.debug(f"Dates diverge from {token!r}; switching to {RANGE_CUSTOM}")
            token = RANGE_CUSTOM
        return self._commit(replace(self.filter, selected_range=token, start_date=start_dt, end_date=end_dt))

    def set_start_date(self, start: object) -> Filter:
        return self.set_dates(start, self.filter.end_date)

    def set_end_date(self, end: object) -> Filter:
        return self.set_dates(self.filter.start_date, end)

    def validate(self) -> None:
        f = self.filter
        if f.selected_range == RANGE_CUSTOM and (f.start_date is None or f.end_date is None):
            raise ValidationError("A custom range needs both `start_date` and `end_date`")

    def window(self) -> DateWindow:
        f = self.filter
        return build_window(f.selected_range, self.now(), f.start_date, f.end_date)

    def effective_user_ids(self, users: Sequence[UserRef]) -> list[str]:
        if self.filter.selected_user == ALL:
            return [u.id for u in users if u.id != ALL]
        return [self.filter.selected_user]

    @staticmethod
    def user_options(users: Sequence[UserRef]) -> list[dict[str, str]]:
        return [{"label": ALL_USERS_LABEL, "value": ALL}] + [
            {"label": u.display_label, "value": u.id} for u in users
        ]

    @staticmethod
    def symptom_options(symptoms: Sequence[SymptomDefinition]) -> list[dict[str, str]]:
        return [{"label": ALL_SYMPTOMS_LABEL, "value": ALL}] + [
            {"label": s.name, "value": s.id} for s in symptoms
        ]


class AnalyticsPipeline:
    """Runs index fetch -> log fetch -> aggregate for the session's current revision."""

    def __init__(self, session: FilterSession, orchestrator: BatchFetchOrchestrator):
        self.session = session
        self.orchestrator = orchestrator
        self.result: AggregationResult = AggregationResult.empty()
        self.result_revision: int | None = None
        self.scope: AggregationScope | None = None
        self.last_error: FetchError | None = None

    def _superseded(self, revision: int) -> bool:
        if self.session.revision != revision:
            logger.debug(f"Discarding analytics run for revision {revision}; now at {self.session.revision}")
            return True
        return False

    async def run(self) -> AggregationResult | None:
        """Recompute for the current filter; returns None when the filter changed mid-run."""
        revision = self.session.revision
        self.session.validate()
        f = self.session.filter
        try:
            symptoms, users = await self.orchestrator.ensure_catalogs()
            if self._superseded(revision):
                return None
            user_ids = self.session.effective_user_ids(users)

            await self.orchestrator.ensure_date_index(user_ids)
            if self._superseded(revision):
                return None
            dates = self.orchestrator.working_dates(user_ids, self.session.window())

            if user_ids and dates:
                await self.orchestrator.ensure_logs(user_ids, dates)
                if self._superseded(revision):
                    return None
        except FetchError as e:
            self.last_error = e
            logger.warning(f"Analytics fetch failed for revision {revision}: {e}")
            raise

        cache = self.orchestrator.cache
        scope = AggregationScope(
            selected_user=f.selected_user,
            selected_symptom=f.selected_symptom,
            user_ids=tuple(user_ids),
            dates=tuple(dates),
        )
        result = aggregate(cache.log_values(), cache.index_values(), symptoms, scope)
        self.scope = scope
        self.result = result
        self.result_revision = revision
        self.last_error = None
        return result


async def run_pipeline(
    filter_: Filter,
    orchestrator: BatchFetchOrchestrator,
    clock: Callable[[], datetime] | None = None,
) -> AggregationResult:
    """One-shot pipeline for a fixed filter."""
    session = FilterSession(
        selected_user=filter_.selected_user,
        selected_symptom=filter_.selected_symptom,
        selected_range=filter_.selected_range,
        clock=clock,
    )
    if filter_.start_date is not None or filter_.end_date is not None:
        session.set_dates(filter_.start_date, filter_.end_date)
    result = await AnalyticsPipeline(session, orchestrator).run()
    return result if result is not None else AggregationResult.empty()
