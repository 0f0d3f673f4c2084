from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from db.database import get_db
from services.symptom_catalog_service import list_symptoms

router = APIRouter(prefix="/symptoms", tags=["symptoms"])


@router.get("")
def get_symptoms(db: Session = Depends(get_db)):
    return {"symptoms": list_symptoms(db)}
