from fastapi import Depends, Header, Request
from sqlalchemy.orm import Session

from career_quest.core.database import SessionLocal
from career_quest.core.ratelimit import login_rate_limiter, quest_rate_limiter
from career_quest.models.entities import CareerQuestProgress
from career_quest.services.auth import normalize_client_ip
from career_quest.services.progress import load_progress


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_client_ip(request: Request) -> str:
    return normalize_client_ip(request.client.host if request.client else None)


def limit_login(client_ip: str = Depends(get_client_ip)) -> None:
    login_rate_limiter.check(f"login:{client_ip}")


def limit_quest_request(client_ip: str = Depends(get_client_ip)) -> None:
    quest_rate_limiter.check(f"quest:{client_ip}")


def get_quest_progress(
    x_career_quest_session_id: str | None = Header(default=None),
    x_career_quest_token: str | None = Header(default=None),
    db: Session = Depends(get_db),
) -> CareerQuestProgress:
    return load_progress(db, x_career_quest_session_id, x_career_quest_token)
