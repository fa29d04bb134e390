from datetime import datetime
from sqlalchemy import Column, String, Integer, DateTime, JSON
from sqlalchemy.dialects.postgresql import JSONB
from career_quest.core.database import Base

JsonDocument = JSON().with_variant(JSONB(), "postgresql")


class DiagnosticSession(Base):
    """Diagnostic record owned by the assessment service; read-only here."""

    __tablename__ = "diagnostic_sessions"

    id = Column(String(64), primary_key=True)
    participant_email = Column(String(255), nullable=False, index=True)
    participant_full_name = Column(String(200), nullable=True)
    participant_first_name = Column(String(120), nullable=True)
    participant_whatsapp = Column(String(64), nullable=True)
    subscription_status = Column(String(32), nullable=False, default="pending")
    responses = Column(JsonDocument, nullable=True)
    submitted_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class CareerQuestProgress(Base):
    __tablename__ = "career_quest_progress"

    id = Column(Integer, primary_key=True, autoincrement=True)
    session_id = Column(String(64), unique=True, nullable=False, index=True)
    token_hash = Column(String(64), nullable=False)
    progress = Column(JsonDocument, nullable=False, default=dict)
    revision = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, nullable=False)
