from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path

import httpx
import pytest


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from analytics.errors import FetchError  # noqa: E402
from analytics.sources import HttpSymptomLogSource, get_source  # noqa: E402


def _source(handler, seen: list) -> HttpSymptomLogSource:
    def _record(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content) if request.content else None
        seen.append((request.method, request.url.path, dict(request.url.params), body))
        return handler(request)

    return HttpSymptomLogSource(base_url="http://symptoms.test/api/", transport=httpx.MockTransport(_record))


def test_catalog_and_batch_calls_hit_the_expected_endpoints():
    seen: list = []

    def handler(request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path == "/api/symptoms":
            return httpx.Response(200, json={"symptoms": [{"id": "fatigue", "name": "Fatigue"}]})
        if path == "/api/users":
            return httpx.Response(200, json={"users": [{"_id": "u1", "name": "Ann"}]})
        if path == "/api/symptom-logs/dates":
            return httpx.Response(200, json={"datesWithEntries": ["03-02-2026"]})
        if path == "/api/symptom-logs/dates/batch":
            return httpx.Response(200, json={"u1": ["03-02-2026"]})
        if path == "/api/symptom-logs/batch":
            return httpx.Response(200, json={"u1": {"03-02-2026": {"symptoms": []}}})
        return httpx.Response(500)

    source = _source(handler, seen)

    async def scenario():
        return (
            await source.list_symptoms(),
            await source.list_users(),
            await source.list_dates("u1"),
            await source.list_dates_batch(["u1"]),
            await source.fetch_logs_batch(["u1"], ["03-02-2026"]),
        )

    symptoms, users, dates, index, logs = asyncio.run(scenario())
    assert symptoms == [{"id": "fatigue", "name": "Fatigue"}]
    assert users == [{"_id": "u1", "name": "Ann"}]
    assert dates == ["03-02-2026"]
    assert index == {"u1": ["03-02-2026"]}
    assert logs == {"u1": {"03-02-2026": {"symptoms": []}}}
    assert seen[2] == ("GET", "/api/symptom-logs/dates", {"userId": "u1"}, None)
    assert seen[3] == ("POST", "/api/symptom-logs/dates/batch", {}, {"userIds": ["u1"]})
    assert seen[4] == ("POST", "/api/symptom-logs/batch", {}, {"userIds": ["u1"], "dates": ["03-02-2026"]})


def test_fetch_log_maps_not_found_to_none():
    seen: list = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.params.get("date") == "03-02-2026":
            return httpx.Response(200, json={"userId": "u1", "date": "03-02-2026", "scores": []})
        return httpx.Response(404, json={"message": "No entry found for selected date"})

    source = _source(handler, seen)
    assert asyncio.run(source.fetch_log("u1", "03-03-2026")) is None
    assert asyncio.run(source.fetch_log("u1", "03-02-2026"))["scores"] == []


def test_error_status_becomes_fetch_error_with_server_message():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"error": "userIds must be a non-empty array."})

    source = _source(handler, [])
    with pytest.raises(FetchError) as exc_info:
        asyncio.run(source.list_dates_batch([]))
    assert exc_info.value.status_code == 400
    assert "userIds must be a non-empty array." in str(exc_info.value)


def test_not_found_is_an_error_outside_single_log_lookup():
    source = _source(lambda request: httpx.Response(404, text="missing"), [])
    with pytest.raises(FetchError) as exc_info:
        asyncio.run(source.list_symptoms())
    assert exc_info.value.status_code == 404


def test_transport_failure_and_bad_payloads_become_fetch_errors():
    def refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(FetchError):
        asyncio.run(_source(refuse, []).list_users())

    with pytest.raises(FetchError):
        asyncio.run(_source(lambda request: httpx.Response(200, text="not json"), []).list_users())

    with pytest.raises(FetchError):
        asyncio.run(_source(lambda request: httpx.Response(200, json=["a"]), []).list_users())


def test_get_source_builds_known_kinds_only():
    source = get_source("http", base_url="http://symptoms.test/api")
    assert isinstance(source, HttpSymptomLogSource)
    assert source.base_url == "http://symptoms.test/api"
    with pytest.raises(ValueError):
        get_source("carrier-pigeon")
