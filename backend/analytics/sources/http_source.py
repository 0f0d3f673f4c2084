import logging

import httpx

from analytics.errors import FetchError
from analytics.sources.base import SymptomLogSource
from config import settings

logger = logging.getLogger(__name__)


class HttpSymptomLogSource(SymptomLogSource):
    """Symptom-log API reached over HTTP."""

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        headers: dict[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = (base_url or settings.SYMPTOM_API_BASE_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.SYMPTOM_API_TIMEOUT_SECONDS
        self._headers = {"accept": "application/json", **(headers or {})}
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            headers=self._headers,
            transport=self._transport,
        )

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict | None = None,
        json: dict | None = None,
        allow_not_found: bool = False,
    ) -> dict | None:
        try:
            async with self._client() as client:
                resp = await client.request(method, path, params=params, json=json)
        except httpx.HTTPError as e:
            logger.warning(f"Symptom API request failed: {method} {path}: {e}")
            raise FetchError(f"Symptom API request failed: {e}") from e

        if resp.status_code == 404 and allow_not_found:
            return None
        if resp.status_code != 200:
            raise FetchError(_error_detail(resp, path), status_code=resp.status_code)
        try:
            data = resp.json()
        except ValueError as e:
            raise FetchError(f"Symptom API returned invalid JSON for {path}", status_code=resp.status_code) from e
        if not isinstance(data, dict):
            raise FetchError(f"Symptom API returned an unexpected payload for {path}", status_code=resp.status_code)
        return data

    async def list_symptoms(self) -> list[dict]:
        data = await self._request("GET", "/symptoms")
        return list(data.get("symptoms") or [])

    async def list_users(self) -> list[dict]:
        data = await self._request("GET", "/users")
        return list(data.get("users") or [])

    async def list_dates(self, user_id: str) -> list[str]:
        data = await self._request("GET", "/symptom-logs/dates", params={"userId": user_id})
        return list(data.get("datesWithEntries") or [])

    async def list_dates_batch(self, user_ids: list[str]) -> dict[str, list[str]]:
        return await self._request("POST", "/symptom-logs/dates/batch", json={"userIds": list(user_ids)})

    async def fetch_logs_batch(self, user_ids: list[str], dates: list[str]) -> dict[str, dict[str, dict]]:
        return await self._request(
            "POST",
            "/symptom-logs/batch",
            json={"userIds": list(user_ids), "dates": list(dates)},
        )

    async def fetch_log(self, user_id: str, date: str) -> dict | None:
        return await self._request(
            "GET",
            "/symptom-logs/by-date",
            params={"userId": user_id, "date": date},
            allow_not_found=True,
        )


def _error_detail(resp: httpx.Response, path: str) -> str:
    try:
        body = resp.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        message = body.get("detail") or body.get("error") or body.get("message")
        if message:
            return f"Symptom API error for {path}: {message}"
    return f"Symptom API error for {path}: {resp.text[:200]}"
