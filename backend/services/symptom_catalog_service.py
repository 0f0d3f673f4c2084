from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.orm import Session

from config import settings
from db.database import SessionLocal
from db.models import Symptom, User

logger = logging.getLogger(__name__)

DEFAULT_SYMPTOMS: tuple[dict[str, Any], ...] = (
    {"id": "fatigue", "name": "Fatigue", "category": "physical", "defaultValue": 0},
    {"id": "headache", "name": "Headache", "category": "physical", "defaultValue": 0},
    {"id": "joint_pain", "name": "Joint Pain", "category": "physical", "defaultValue": 0},
    {"id": "nausea", "name": "Nausea", "category": "physical", "defaultValue": 0, "optional": True},
    {"id": "sleep_quality", "name": "Sleep Quality", "category": "behavioral", "defaultValue": 0},
    {"id": "anxiety", "name": "Anxiety", "category": "behavioral", "defaultValue": 0},
    {"id": "irritability", "name": "Irritability", "category": "behavioral", "defaultValue": 0, "optional": True},
)


def _number(value: float | None) -> int | float:
    if value is None:
        return 0
    return int(value) if float(value).is_integer() else float(value)


def serialize_symptom(row: Symptom) -> dict[str, Any]:
    return {
        "id": row.id,
        "name": row.name,
        "category": row.category,
        "defaultValue": _number(row.default_value),
        "optional": bool(row.optional),
    }


def serialize_user(row: User) -> dict[str, Any]:
    return {"_id": row.id, "name": row.name, "email": row.email}


def list_symptoms(db: Session) -> list[dict[str, Any]]:
    rows = db.query(Symptom).order_by(Symptom.category.asc(), Symptom.name.asc()).all()
    return [serialize_symptom(row) for row in rows]


def list_users(db: Session) -> list[dict[str, Any]]:
    rows = db.query(User).filter(User.role == "user").order_by(User.name.asc(), User.id.asc()).all()
    return [serialize_user(row) for row in rows]


def seed_symptoms(db: Session, symptoms=DEFAULT_SYMPTOMS) -> int:
    """Insert catalog rows that do not exist yet; existing rows are left untouched."""
    existing = {row[0] for row in db.query(Symptom.id).all()}
    added = 0
    for item in symptoms:
        symptom_id = str(item["id"]).strip().lower()
        if symptom_id in existing:
            continue
        db.add(
            Symptom(
                id=symptom_id,
                name=item["name"],
                category=str(item.get("category") or "physical").lower(),
                default_value=float(item.get("defaultValue") or 0),
                optional=bool(item.get("optional", False)),
            )
        )
        existing.add(symptom_id)
        added += 1
    db.commit()
    return added


def ensure_default_symptoms() -> None:
    if not settings.SEED_DEFAULT_SYMPTOMS:
        return
    db = SessionLocal()
    try:
        added = seed_symptoms(db)
        if added:
            logger.info(f"Seeded {added} default symptom(s)")
    finally:
        db.close()
