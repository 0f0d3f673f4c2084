from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from db.database import get_db
from services.analytics_service import invalidate_symptom_log
from services.symptom_log_service import (
    SymptomLogServiceError,
    delete_symptom_log,
    fetch_logs_batch,
    get_symptom_log,
    list_all_symptom_logs,
    list_dates_batch,
    list_dates_with_entries,
    parse_scores,
    save_symptom_log,
    serialize_symptom_log,
)

router = APIRouter(prefix="/symptom-logs", tags=["symptom-logs"])


# --- Pydantic Schemas ---

class ScoreItem(BaseModel):
    symptomId: str
    score: Optional[float] = None


class SymptomLogSave(BaseModel):
    userId: str
    date: str  # MM-DD-YYYY
    scores: list[ScoreItem] = Field(default_factory=list)


class DatesBatchRequest(BaseModel):
    userIds: list[str] = Field(default_factory=list)


class LogsBatchRequest(BaseModel):
    userIds: list[str] = Field(default_factory=list)
    dates: list[str] = Field(default_factory=list)


def _raise_service_error(e: SymptomLogServiceError):
    raise HTTPException(status_code=e.status_code, detail=e.message) from e


def _score_payload(item: ScoreItem) -> dict[str, Any]:
    score = item.score
    if score is not None and float(score).is_integer():
        score = int(score)
    return {"symptomId": item.symptomId, "score": score}


@router.post("")
def save_log(body: SymptomLogSave, db: Session = Depends(get_db)):
    try:
        row = save_symptom_log(db, body.userId, body.date, [_score_payload(item) for item in body.scores])
    except SymptomLogServiceError as e:
        _raise_service_error(e)
    invalidate_symptom_log(row.user_id, row.date)
    return {"message": "Symptom log saved successfully.", "symptomLog": serialize_symptom_log(row)}


@router.get("")
def get_all_logs(db: Session = Depends(get_db)):
    return {"message": "Fetched all symptom logs successfully.", "symptomLogs": list_all_symptom_logs(db)}


@router.delete("")
def delete_log(
    userId: str = Query(default=""),
    date: str = Query(default=""),
    db: Session = Depends(get_db),
):
    try:
        deleted = delete_symptom_log(db, userId, date)
    except SymptomLogServiceError as e:
        _raise_service_error(e)
    if not deleted:
        return JSONResponse(status_code=404, content={"message": "No symptom log found to delete."})
    invalidate_symptom_log(userId, date)
    return {"message": "Symptom log deleted successfully."}


@router.get("/by-date")
def get_log_by_date(
    userId: str = Query(default=""),
    date: str = Query(default=""),
    db: Session = Depends(get_db),
):
    try:
        row = get_symptom_log(db, userId, date)
    except SymptomLogServiceError as e:
        _raise_service_error(e)
    if row is None:
        return JSONResponse(status_code=404, content={"message": "No entry found for selected date"})
    return {"userId": row.user_id, "date": row.date, "scores": parse_scores(row)}


@router.get("/dates")
def get_dates(userId: str = Query(default=""), db: Session = Depends(get_db)):
    try:
        dates = list_dates_with_entries(db, userId)
    except SymptomLogServiceError as e:
        _raise_service_error(e)
    return {"datesWithEntries": dates}


@router.post("/dates/batch")
def get_dates_batch(body: DatesBatchRequest, db: Session = Depends(get_db)):
    try:
        return list_dates_batch(db, body.userIds)
    except SymptomLogServiceError as e:
        _raise_service_error(e)


@router.post("/batch")
def get_logs_batch(body: LogsBatchRequest, db: Session = Depends(get_db)):
    try:
        return fetch_logs_batch(db, body.userIds, body.dates)
    except SymptomLogServiceError as e:
        _raise_service_error(e)
