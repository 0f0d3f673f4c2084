from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from db.database import get_db
from services.symptom_catalog_service import list_users

router = APIRouter(prefix="/users", tags=["admin"])


@router.get("")
def get_users(db: Session = Depends(get_db)):
    return {"users": list_users(db)}
