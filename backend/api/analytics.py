from typing import Optional

from fastapi import APIRouter, HTTPException, Query

from analytics.errors import FetchError, ValidationError
from analytics.ranges import RANGE_MONTH, RANGE_TOKENS
from analytics.session import FilterSession
from services.analytics_service import cache_stats, get_orchestrator, refresh_catalogs, run_analytics
from utils.datetime_utils import sort_date_keys

router = APIRouter(prefix="/analytics", tags=["analytics"])


@router.get("")
async def get_analytics(
    user: str = Query(default="all"),
    symptom: str = Query(default="all"),
    time_range: str = Query(default=RANGE_MONTH, alias="range"),
    startDate: Optional[str] = Query(default=None),
    endDate: Optional[str] = Query(default=None),
):
    try:
        return await run_analytics(
            user=user,
            symptom=symptom,
            time_range=time_range,
            start_date=startDate,
            end_date=endDate,
        )
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except FetchError as e:
        raise HTTPException(status_code=502, detail=f"Failed to load analytics data: {e}") from e


@router.get("/entry")
async def get_entry(userId: str = Query(...), date: str = Query(...)):
    try:
        view = await get_orchestrator().entry_for_date(userId, date)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except FetchError as e:
        raise HTTPException(status_code=502, detail=f"Failed to fetch entry for selected date: {e}") from e
    return {
        "userId": view.user_id,
        "date": view.date,
        "entryAlreadySaved": view.entry_already_saved,
        "symptoms": view.symptoms,
    }


@router.get("/options")
async def get_options():
    try:
        symptoms, users = await get_orchestrator().ensure_catalogs()
    except FetchError as e:
        raise HTTPException(status_code=502, detail=f"Failed to load filter options: {e}") from e
    return {
        "users": FilterSession.user_options(users),
        "symptoms": FilterSession.symptom_options(symptoms),
        "ranges": list(RANGE_TOKENS),
    }


@router.get("/cache")
def get_cache_stats():
    return cache_stats()


@router.delete("/cache/catalogs")
def clear_catalog_cache():
    refresh_catalogs()
    return {"message": "Symptom and user catalogs will be reloaded on the next request."}


@router.get("/dates")
async def get_user_dates(userId: str = Query(...)):
    try:
        dates = await get_orchestrator().list_dates(userId)
    except FetchError as e:
        raise HTTPException(status_code=502, detail=f"Failed to load dates with entries: {e}") from e
    return {"userId": userId, "datesWithEntries": sort_date_keys(dates, reverse=True)}
