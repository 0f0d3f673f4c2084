import uuid
from datetime import datetime
from sqlalchemy import (
    Column, Integer, Text, Float, Boolean, ForeignKey, Index,
    DateTime,
)
from sqlalchemy.orm import relationship
from db.database import Base


def _new_id() -> str:
    return uuid.uuid4().hex


class User(Base):
    __tablename__ = "users"

    id = Column(Text, primary_key=True, default=_new_id)
    name = Column(Text, nullable=False)
    email = Column(Text, unique=True, nullable=False)
    role = Column(Text, nullable=False, default="user")  # user | admin
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    symptom_logs = relationship("SymptomLog", back_populates="user", cascade="all, delete-orphan")


class Symptom(Base):
    __tablename__ = "symptoms"

    id = Column(Text, primary_key=True)  # lowercase stable key
    name = Column(Text, nullable=False)
    category = Column(Text, nullable=False, default="physical")  # behavioral | physical
    default_value = Column(Float, nullable=False, default=0)
    optional = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)


class SymptomLog(Base):
    __tablename__ = "symptom_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Text, ForeignKey("users.id"), nullable=False)
    date = Column(Text, nullable=False)  # MM-DD-YYYY
    scores = Column(Text, nullable=False, default="[]")  # JSON array of {symptomId, score}
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", back_populates="symptom_logs")


# Indexes
Index("idx_symptom_logs_user_date", SymptomLog.user_id, SymptomLog.date, unique=True)
Index("idx_symptom_logs_date", SymptomLog.date)
