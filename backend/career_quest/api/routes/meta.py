from fastapi import APIRouter
from sqlalchemy import text

from career_quest.core.database import engine
from career_quest.services.ai import (
    ai_is_configured,
    get_active_ai_model,
    get_active_ai_provider,
    vision_is_configured,
)
from career_quest.services.providers import ocr_provider_order

router = APIRouter(prefix="/meta")


@router.get("/ai")
def ai_meta():
    return {
        "ai_enabled": ai_is_configured(),
        "vision_enabled": vision_is_configured(),
        "model": get_active_ai_model(),
        "provider": get_active_ai_provider(),
        "ocr_providers": ocr_provider_order(),
    }


@router.get("/health")
def health_meta():
    db_ok = False
    db_error = None
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        db_ok = True
    except Exception as exc:
        db_error = str(exc)
    return {
        "ok": db_ok,
        "database": {"ok": db_ok, "error": db_error},
        "ai": {
            "enabled": ai_is_configured(),
            "vision_enabled": vision_is_configured(),
            "provider": get_active_ai_provider(),
            "model": get_active_ai_model(),
        },
        "ocr": {"providers": ocr_provider_order()},
    }
