from collections.abc import Callable

from sqlalchemy.orm import Session

from analytics.errors import FetchError
from analytics.sources.base import SymptomLogSource
from db.database import SessionLocal
from services import symptom_catalog_service, symptom_log_service
from services.symptom_log_service import SymptomLogServiceError


class DatabaseSymptomLogSource(SymptomLogSource):
    """In-process source backed by the service layer; used by the server-hosted analytics."""

    def __init__(self, session_factory: Callable[[], Session] | None = None):
        self._session_factory = session_factory or SessionLocal

    def _run(self, fn, *args):
        db = self._session_factory()
        try:
            return fn(db, *args)
        except SymptomLogServiceError as e:
            raise FetchError(e.message, status_code=e.status_code) from e
        finally:
            db.close()

    async def list_symptoms(self) -> list[dict]:
        return self._run(symptom_catalog_service.list_symptoms)

    async def list_users(self) -> list[dict]:
        return self._run(symptom_catalog_service.list_users)

    async def list_dates(self, user_id: str) -> list[str]:
        return self._run(symptom_log_service.list_dates_with_entries, user_id)

    async def list_dates_batch(self, user_ids: list[str]) -> dict[str, list[str]]:
        return self._run(symptom_log_service.list_dates_batch, list(user_ids))

    async def fetch_logs_batch(self, user_ids: list[str], dates: list[str]) -> dict[str, dict[str, dict]]:
        return self._run(symptom_log_service.fetch_logs_batch, list(user_ids), list(dates))

    async def fetch_log(self, user_id: str, date: str) -> dict | None:
        def _lookup(db: Session, uid: str, date_key: str) -> dict | None:
            row = symptom_log_service.get_symptom_log(db, uid, date_key)
            if row is None:
                return None
            return {"scores": symptom_log_service.parse_scores(row)}

        return self._run(_lookup, user_id, date)
