from __future__ import annotations

import json
import logging
from typing import Any

from sqlalchemy.orm import Session

from db.models import SymptomLog, User
from utils.datetime_utils import is_date_key, normalize_date_key, sort_date_keys

logger = logging.getLogger(__name__)

DATE_FORMAT_HINT = "MM-DD-YYYY"


class SymptomLogServiceError(Exception):
    """Raised for invalid symptom-log requests; carries the HTTP status to report."""

    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


def _require_date(date: str) -> str:
    if not is_date_key(date):
        raise SymptomLogServiceError(400, f"Date must be in {DATE_FORMAT_HINT} format.")
    return normalize_date_key(date)


def _require_id_list(values: Any, field: str) -> list[str]:
    if not isinstance(values, list) or not values:
        raise SymptomLogServiceError(400, f"{field} must be a non-empty array.")
    out: list[str] = []
    for value in values:
        text = str(value or "").strip()
        if text and text not in out:
            out.append(text)
    if not out:
        raise SymptomLogServiceError(400, f"{field} must be a non-empty array.")
    return out


def _clean_scores(scores: Any) -> list[dict[str, Any]]:
    if not isinstance(scores, list) or not scores:
        raise SymptomLogServiceError(400, "User ID, date, and scores are required.")
    cleaned: list[dict[str, Any]] = []
    seen: set[str] = set()
    for item in scores:
        if not isinstance(item, dict):
            raise SymptomLogServiceError(400, "Each score must be an object with symptomId and score.")
        symptom_id = str(item.get("symptomId") or "").strip().lower()
        if not symptom_id:
            raise SymptomLogServiceError(400, "Each score requires a symptomId.")
        if symptom_id in seen:
            raise SymptomLogServiceError(400, "Duplicate symptom IDs in scores.")
        seen.add(symptom_id)
        score = item.get("score")
        if score is not None and (isinstance(score, bool) or not isinstance(score, (int, float))):
            raise SymptomLogServiceError(400, f"Score for `{symptom_id}` must be a number or null.")
        cleaned.append({"symptomId": symptom_id, "score": score})
    return cleaned


def parse_scores(row: SymptomLog) -> list[dict[str, Any]]:
    try:
        parsed = json.loads(row.scores or "[]")
    except json.JSONDecodeError:
        logger.warning(f"Symptom log {row.id} has unreadable scores; treating as empty")
        return []
    return parsed if isinstance(parsed, list) else []


def serialize_symptom_log(row: SymptomLog) -> dict[str, Any]:
    return {
        "userId": row.user_id,
        "date": row.date,
        "scores": parse_scores(row),
        "updatedAt": row.updated_at.isoformat() if row.updated_at else None,
    }


def save_symptom_log(db: Session, user_id: str, date: str, scores: Any) -> SymptomLog:
    """Create or overwrite the single log for (user_id, date)."""
    if not user_id or not date:
        raise SymptomLogServiceError(400, "User ID, date, and scores are required.")
    date_key = _require_date(date)
    cleaned = _clean_scores(scores)
    if not db.get(User, user_id):
        raise SymptomLogServiceError(404, "User not found.")

    row = (
        db.query(SymptomLog)
        .filter(SymptomLog.user_id == user_id, SymptomLog.date == date_key)
        .first()
    )
    payload = json.dumps(cleaned, ensure_ascii=True)
    if row is None:
        row = SymptomLog(user_id=user_id, date=date_key, scores=payload)
        db.add(row)
    else:
        row.scores = payload
    db.commit()
    db.refresh(row)
    return row


def get_symptom_log(db: Session, user_id: str, date: str) -> SymptomLog | None:
    if not user_id or not date:
        raise SymptomLogServiceError(400, "userId and date are required")
    date_key = _require_date(date)
    return (
        db.query(SymptomLog)
        .filter(SymptomLog.user_id == user_id, SymptomLog.date == date_key)
        .first()
    )


def delete_symptom_log(db: Session, user_id: str, date: str) -> bool:
    if not user_id or not date:
        raise SymptomLogServiceError(400, "userId and date are required.")
    date_key = _require_date(date)
    deleted = (
        db.query(SymptomLog)
        .filter(SymptomLog.user_id == user_id, SymptomLog.date == date_key)
        .delete(synchronize_session=False)
    )
    db.commit()
    return bool(deleted)


def list_all_symptom_logs(db: Session) -> list[dict[str, Any]]:
    """Every saved log with its owner's name, grouped by user in save order."""
    rows = (
        db.query(SymptomLog, User.name)
        .outerjoin(User, SymptomLog.user_id == User.id)
        .order_by(SymptomLog.user_id.asc(), SymptomLog.id.asc())
        .all()
    )
    return [
        {"name": name or "Unknown", "date": row.date, "scores": parse_scores(row)}
        for row, name in rows
    ]


def list_dates_with_entries(db: Session, user_id: str) -> list[str]:
    """Unique dates with a saved log for one user, most recent first."""
    if not user_id:
        raise SymptomLogServiceError(400, "userId is required.")
    rows = db.query(SymptomLog.date).filter(SymptomLog.user_id == user_id).all()
    dates = {row[0] for row in rows if is_date_key(row[0])}
    return sort_date_keys(dates, reverse=True)


def list_dates_batch(db: Session, user_ids: Any) -> dict[str, list[str]]:
    ids = _require_id_list(user_ids, "userIds")
    result: dict[str, set[str]] = {user_id: set() for user_id in ids}
    rows = (
        db.query(SymptomLog.user_id, SymptomLog.date)
        .filter(SymptomLog.user_id.in_(ids))
        .all()
    )
    for user_id, date_key in rows:
        if is_date_key(date_key):
            result[user_id].add(date_key)
    return {user_id: sort_date_keys(dates, reverse=True) for user_id, dates in result.items()}


def fetch_logs_batch(db: Session, user_ids: Any, dates: Any) -> dict[str, dict[str, dict[str, Any]]]:
    """Shape ``{user_id: {date: {"symptoms": [...]}}}`` with an entry for every requested pair."""
    ids = _require_id_list(user_ids, "userIds")
    if not isinstance(dates, list) or not dates:
        raise SymptomLogServiceError(400, "dates must be a non-empty array.")
    invalid = [str(d) for d in dates if not is_date_key(d)]
    if invalid:
        joined = ", ".join(invalid)
        raise SymptomLogServiceError(400, f"Invalid date format(s): {joined}. Use {DATE_FORMAT_HINT}.")
    date_keys: list[str] = []
    for d in dates:
        key = normalize_date_key(d)
        if key not in date_keys:
            date_keys.append(key)

    result = {user_id: {date_key: {"symptoms": []} for date_key in date_keys} for user_id in ids}
    rows = (
        db.query(SymptomLog)
        .filter(SymptomLog.user_id.in_(ids), SymptomLog.date.in_(date_keys))
        .all()
    )
    for row in rows:
        if row.user_id in result and row.date in result[row.user_id]:
            result[row.user_id][row.date] = {"symptoms": parse_scores(row)}
    return result
