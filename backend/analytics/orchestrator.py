"""Batch fetch orchestration for the analytics cache.

The orchestrator turns a (users x dates) request into at most one batched call
per tier: one for the per-user date index and one for the logs themselves.
Keys that are already being fetched are folded onto the pending task rather
than requested again, and responses are merged only for keys that were not
invalidated while the request was in flight.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine, Hashable, Iterable
from typing import Any

from analytics.cache import AnalyticsCache
from analytics.errors import FetchError, ValidationError
from analytics.models import (
    ALL,
    NO_LOG,
    DateWindow,
    EntryView,
    SymptomDefinition,
    SymptomLog,
    UserRef,
)
from analytics.sources.base import SymptomLogSource
from utils.datetime_utils import is_date_key, normalize_date_key, parse_date_key, sort_date_keys

logger = logging.getLogger(__name__)

CATALOG_KEY = "catalog"


def _dedupe(values: Iterable[Hashable]) -> list:
    out: list = []
    seen: set = set()
    for value in values:
        if value in seen:
            continue
        seen.add(value)
        out.append(value)
    return out


def _normalize_dates(user_id: str, raw_dates: Any) -> tuple[str, ...]:
    if not isinstance(raw_dates, list):
        raise FetchError(f"Date list for user {user_id} is not an array")
    valid: set[str] = set()
    for value in raw_dates:
        if is_date_key(value):
            valid.add(normalize_date_key(value))
        else:
            logger.warning(f"Ignoring malformed date {value!r} for user {user_id}")
    return tuple(sort_date_keys(valid))


def _title_case_id(symptom_id: str) -> str:
    return symptom_id[:1].upper() + symptom_id[1:]


class BatchFetchOrchestrator:
    def __init__(self, source: SymptomLogSource, cache: AnalyticsCache | None = None):
        self.source = source
        self.cache = cache or AnalyticsCache()
        self._inflight_catalogs: dict[str, asyncio.Task] = {}
        self._inflight_index: dict[str, asyncio.Task] = {}
        self._inflight_logs: dict[tuple[str, str], asyncio.Task] = {}

    # ------------------------------------------------------------------
    # in-flight bookkeeping
    # ------------------------------------------------------------------
    async def _fetch_deduplicated(
        self,
        inflight: dict,
        keys: list,
        start_batch: Callable[[list], Coroutine[Any, Any, None]],
    ) -> None:
        pending = {inflight[key] for key in keys if key in inflight}
        fresh = [key for key in keys if key not in inflight]
        if fresh:
            task = asyncio.create_task(start_batch(fresh))
            for key in fresh:
                inflight[key] = task
            task.add_done_callback(lambda done, released=tuple(fresh): self._release(inflight, released, done))
            pending.add(task)
        if pending:
            # Shield so one cancelled waiter does not cancel a fetch others share.
            await asyncio.gather(*(asyncio.shield(task) for task in pending))

    @staticmethod
    def _release(inflight: dict, keys: tuple, task: asyncio.Task) -> None:
        for key in keys:
            if inflight.get(key) is task:
                del inflight[key]

    def pending_keys(self) -> dict[str, int]:
        return {
            "catalogs": len(self._inflight_catalogs),
            "date_index": len(self._inflight_index),
            "logs": len(self._inflight_logs),
        }

    # ------------------------------------------------------------------
    # reference catalogs
    # ------------------------------------------------------------------
    async def _load_catalog(self, cache, name: str, loader, parser) -> list:
        cached = cache.get(CATALOG_KEY)
        if cached is not None:
            return cached

        def _start(_keys: list):
            epoch = cache.epoch(CATALOG_KEY)

            async def _run() -> None:
                payload = await loader()
                if not isinstance(payload, list):
                    raise FetchError(f"{name} catalog response is not an array")
                cache.put_if_current(CATALOG_KEY, parser(payload), epoch)

            return _run()

        await self._fetch_deduplicated(self._inflight_catalogs, [name], _start)
        entry = cache.peek(CATALOG_KEY)
        return entry.value if entry else []

    async def symptoms(self) -> list[SymptomDefinition]:
        return await self._load_catalog(
            self.cache.symptoms,
            "symptoms",
            self.source.list_symptoms,
            lambda payload: [
                SymptomDefinition.from_payload(item)
                for item in payload
                if isinstance(item, dict) and item.get("id")
            ],
        )

    async def users(self) -> list[UserRef]:
        return await self._load_catalog(
            self.cache.users,
            "users",
            self.source.list_users,
            lambda payload: [
                user
                for user in (UserRef.from_payload(item) for item in payload if isinstance(item, dict))
                if user.id and user.id != ALL
            ],
        )

    async def ensure_catalogs(self) -> tuple[list[SymptomDefinition], list[UserRef]]:
        symptoms = await self.symptoms()
        users = await self.users()
        return symptoms, users

    # ------------------------------------------------------------------
    # date index tier
    # ------------------------------------------------------------------
    def _start_index_batch(self, user_ids: list[str]):
        epochs = {user_id: self.cache.date_index.epoch(user_id) for user_id in user_ids}
        return self._fetch_index_batch(user_ids, epochs)

    async def _fetch_index_batch(self, user_ids: list[str], epochs: dict[str, int]) -> None:
        logger.debug(f"Fetching date index for {len(user_ids)} user(s)")
        payload = await self.source.list_dates_batch(user_ids)
        if not isinstance(payload, dict):
            raise FetchError("Date index batch response is not an object")
        parsed = {user_id: _normalize_dates(user_id, payload.get(user_id, [])) for user_id in user_ids}
        for user_id, dates in parsed.items():
            if not self.cache.date_index.put_if_current(user_id, dates, epochs[user_id]):
                logger.debug(f"Dropped date index for {user_id}; invalidated while in flight")

    async def ensure_date_index(self, user_ids: Iterable[str]) -> dict[str, tuple[str, ...]]:
        """Fetch every absent or stale date index in one batched request."""
        ids = _dedupe(user_ids)
        for _attempt in range(2):
            report = self.cache.date_index.compute_missing(ids)
            if not report:
                break
            await self._fetch_deduplicated(self._inflight_index, report.needs_fetch, self._start_index_batch)
        index: dict[str, tuple[str, ...]] = {}
        for user_id in ids:
            entry = self.cache.date_index.peek(user_id)
            if entry is not None:
                index[user_id] = entry.value
        return index

    async def list_dates(self, user_id: str) -> tuple[str, ...]:
        """Single-user date lookup sharing the date-index cache."""
        cached = self.cache.date_index.get(user_id)
        if cached is not None:
            return cached

        def _start(keys: list[str]):
            epoch = self.cache.date_index.epoch(user_id)

            async def _run() -> None:
                dates = _normalize_dates(user_id, await self.source.list_dates(user_id))
                self.cache.date_index.put_if_current(user_id, dates, epoch)

            return _run()

        await self._fetch_deduplicated(self._inflight_index, [user_id], _start)
        entry = self.cache.date_index.peek(user_id)
        return entry.value if entry else ()

    def working_dates(self, user_ids: Iterable[str], window: DateWindow) -> list[str]:
        dates: set[str] = set()
        for user_id in user_ids:
            entry = self.cache.date_index.peek(user_id)
            if entry is None:
                continue
            dates.update(d for d in entry.value if window.contains(parse_date_key(d)))
        return sort_date_keys(dates)

    # ------------------------------------------------------------------
    # log tier
    # ------------------------------------------------------------------
    def _start_log_batch(self, keys: list[tuple[str, str]]):
        epochs = {key: self.cache.logs.epoch(key) for key in keys}
        return self._fetch_log_batch(keys, epochs)

    async def _fetch_log_batch(self, keys: list[tuple[str, str]], epochs: dict[tuple[str, str], int]) -> None:
        user_ids = _dedupe(user_id for user_id, _ in keys)
        dates = _dedupe(date_key for _, date_key in keys)
        logger.debug(f"Fetching {len(keys)} log(s) across {len(user_ids)} user(s) and {len(dates)} date(s)")
        payload = await self.source.fetch_logs_batch(user_ids, dates)
        if not isinstance(payload, dict):
            raise FetchError("Log batch response is not an object")

        parsed: dict[tuple[str, str], SymptomLog] = {}
        for user_id, date_key in keys:
            user_logs = payload.get(user_id)
            entry = user_logs.get(date_key) if isinstance(user_logs, dict) else None
            if not isinstance(entry, dict):
                raise FetchError(f"Log batch response has no entry for {user_id} on {date_key}")
            parsed[(user_id, date_key)] = SymptomLog.from_scores(entry.get("symptoms"))

        for key, log in parsed.items():
            if not self.cache.logs.put_if_current(key, log, epochs[key]):
                logger.debug(f"Dropped log {key}; invalidated while in flight")

    async def ensure_logs(self, user_ids: Iterable[str], dates: Iterable[str]) -> int:
        """Fetch the absent logs of the users x dates cross product; stale logs are kept."""
        ids = _dedupe(user_ids)
        date_keys = _dedupe(dates)
        keys = [(user_id, date_key) for user_id in ids for date_key in date_keys]
        missing = self.cache.logs.compute_missing(keys).missing
        if missing:
            await self._fetch_deduplicated(self._inflight_logs, missing, self._start_log_batch)
        return len(missing)

    def has_all_logs(self, user_ids: Iterable[str], dates: Iterable[str]) -> bool:
        date_keys = list(dates)
        return all((user_id, date_key) in self.cache.logs for user_id in user_ids for date_key in date_keys)

    # ------------------------------------------------------------------
    # single entry lookup
    # ------------------------------------------------------------------
    async def _cached_log(self, user_id: str, date_key: str):
        key = (user_id, date_key)
        entry = self.cache.logs.peek(key)
        if entry is not None:
            return entry.value

        def _start(_keys: list):
            epoch = self.cache.logs.epoch(key)

            async def _run() -> None:
                payload = await self.source.fetch_log(user_id, date_key)
                if payload is None:
                    value = NO_LOG
                elif isinstance(payload, dict):
                    value = SymptomLog.from_scores(payload.get("scores"))
                else:
                    raise FetchError(f"Log response for {user_id} on {date_key} is not an object")
                self.cache.logs.put_if_current(key, value, epoch)

            return _run()

        await self._fetch_deduplicated(self._inflight_logs, [key], _start)
        entry = self.cache.logs.peek(key)
        return entry.value if entry else NO_LOG

    async def entry_for_date(self, user_id: str, date: str) -> EntryView:
        """One user's entry for a date, merged onto the symptom catalog."""
        if not is_date_key(date):
            raise ValidationError("Date must be in MM-DD-YYYY format.")
        date_key = normalize_date_key(date)
        log = await self._cached_log(user_id, date_key)
        catalog = await self.symptoms()

        if log is NO_LOG:
            symptoms = [
                {"id": s.id, "name": s.name, "category": s.category, "defaultValue": s.default_value, "value": s.default_value}
                for s in catalog
            ]
            return EntryView(user_id=user_id, date=date_key, entry_already_saved=False, symptoms=symptoms)

        symptoms = []
        for s in catalog:
            saved = log.score_for(s.id)
            symptoms.append(
                {
                    "id": s.id,
                    "name": s.name,
                    "category": s.category,
                    "defaultValue": s.default_value,
                    "value": saved if saved is not None else s.default_value,
                }
            )
        known = {s.id for s in catalog}
        for score in log.scores:
            if score.symptom_id in known:
                continue
            symptoms.append(
                {
                    "id": score.symptom_id,
                    "name": _title_case_id(score.symptom_id),
                    "category": None,
                    "defaultValue": 0,
                    "value": score.score,
                }
            )

        if log.scores:
            saved_flag = True
        else:
            index_entry = self.cache.date_index.peek(user_id)
            saved_flag = index_entry is not None and date_key in index_entry.value
        return EntryView(user_id=user_id, date=date_key, entry_already_saved=saved_flag, symptoms=symptoms)

    # ------------------------------------------------------------------
    # invalidation
    # ------------------------------------------------------------------
    def invalidate(self, user_id: str, date: str) -> None:
        """Evict a written (user, date) log and the owner's date index."""
        date_key = normalize_date_key(date) if is_date_key(date) else date
        self.cache.invalidate_entry(user_id, date_key)
        logger.debug(f"Invalidated cached log {user_id}/{date_key} and its date index")

    def invalidate_catalogs(self) -> None:
        self.cache.symptoms.invalidate(CATALOG_KEY)
        self.cache.users.invalidate(CATALOG_KEY)
