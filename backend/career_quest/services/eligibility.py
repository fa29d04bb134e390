import logging
from typing import Any

from sqlalchemy import func
from sqlalchemy.orm import Session

from career_quest.core.config import settings
from career_quest.core.errors import InvalidCredentialsError, NotEligibleError, SessionNotFoundError
from career_quest.core.ratelimit import LoginLockout
from career_quest.models.entities import DiagnosticSession
from career_quest.services.auth import (
    create_session_token,
    hash_token,
    normalize_email,
    normalize_name,
    phone_matches,
)
from career_quest.services.progress import bind_session_token

logger = logging.getLogger(__name__)

FINAL_ACTIONS_LIMIT = 3
MICRO_ACTIONS_LIMIT = 8


def _as_dict(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


def _as_list(value: Any) -> list:
    return list(value) if isinstance(value, list) else []


def _text(value: Any, default: str = "") -> str:
    return str(value if value is not None else default).strip()


def diagnostic_phase5(session: DiagnosticSession) -> dict:
    responses = _as_dict(session.responses)
    return _as_dict(_as_dict(responses.get("service1")).get("phase5"))


def aggregated_profile(session: DiagnosticSession) -> dict:
    return _as_dict(diagnostic_phase5(session).get("aggregatedProfile"))


def is_eligible(session: DiagnosticSession) -> bool:
    active = (session.subscription_status or "pending") == "active"
    return active and bool(aggregated_profile(session))


def load_eligible_session(db: Session, session_id: str) -> DiagnosticSession:
    session = db.query(DiagnosticSession).filter(DiagnosticSession.id == session_id).one_or_none()
    if session is None:
        raise SessionNotFoundError()
    if not is_eligible(session):
        raise NotEligibleError()
    return session


def candidate_query(db: Session, email: str):
    # Unsubmitted diagnostics sort after submitted ones on every backend.
    return (
        db.query(DiagnosticSession)
        .filter(func.lower(DiagnosticSession.participant_email) == email)
        .order_by(
            DiagnosticSession.submitted_at.desc().nullslast(),
            DiagnosticSession.created_at.desc().nullslast(),
        )
        .limit(settings.quest_candidate_limit)
    )


def find_matching_session(
    db: Session,
    *,
    email: str,
    whatsapp: str,
    full_name: str,
) -> DiagnosticSession | None:
    candidates = candidate_query(db, email).all()
    wanted_name = normalize_name(full_name)
    for candidate in candidates:
        stored_name = normalize_name(
            candidate.participant_full_name or candidate.participant_first_name or ""
        )
        if not stored_name or stored_name != wanted_name:
            continue
        if phone_matches(candidate.participant_whatsapp, whatsapp):
            return candidate
    return None


def profile_snapshot(profile: dict) -> dict:
    return {
        "declared_role": _text(profile.get("declaredRole")),
        "real_role": _text(profile.get("realRole")),
        "maturity_level": _text(profile.get("maturityLevel")),
        "weaknesses": _as_list(profile.get("weaknesses")),
        "strengths": _as_list(profile.get("strengths")),
        "exclusions": _as_list(profile.get("exclusions")),
        "selected_path": profile.get("selectedPath") or None,
    }


def _action(raw: dict) -> dict:
    return {
        "id": _text(raw.get("id")),
        "title": _text(raw.get("title")),
        "description": _text(raw.get("description")),
        "pressure": _text(raw.get("pressure"), "medium") or "medium",
    }


def recommended_actions(phase5: dict) -> dict:
    final_actions = [
        action
        for action in (_action(_as_dict(item)) for item in _as_list(phase5.get("finalActions")))
        if action["id"] and action["title"] and action["description"]
    ][:FINAL_ACTIONS_LIMIT]

    selected = None
    raw_selected = phase5.get("selectedFinalAction")
    if isinstance(raw_selected, dict):
        selected = {**_action(raw_selected), "selected_at": _text(raw_selected.get("selectedAt"))}

    skill_gap = None
    raw_gap = phase5.get("skillGap")
    if isinstance(raw_gap, dict):
        micro_actions = [_text(item) for item in _as_list(raw_gap.get("microActions"))]
        skill_gap = {
            "skill_name": _text(raw_gap.get("skillName")),
            "current_level": _text(raw_gap.get("currentLevel")),
            "required_level": _text(raw_gap.get("requiredLevel")),
            "gap_description": _text(raw_gap.get("gapDescription")),
            "micro_actions": [item for item in micro_actions if item][:MICRO_ACTIONS_LIMIT],
            "expert_note": _text(raw_gap.get("expertNoteFR") or raw_gap.get("expertNote")),
            "at": _text(raw_gap.get("at")),
        }

    return {
        "final_actions": final_actions,
        "selected_final_action": selected,
        "skill_gap": skill_gap,
    }


def login_participant(
    db: Session,
    *,
    email: str,
    whatsapp: str,
    full_name: str,
    client_ip: str,
    lockout: LoginLockout,
) -> dict:
    normalized_email = normalize_email(email)
    lock_key = f"{client_ip}::{normalized_email}"
    lockout.check(lock_key)

    matched = find_matching_session(
        db,
        email=normalized_email,
        whatsapp=whatsapp,
        full_name=full_name,
    )
    if matched is None:
        if lockout.register_failure(lock_key):
            logger.warning("Career quest login locked for %s", lock_key)
        raise InvalidCredentialsError()

    lockout.clear(lock_key)
    if not is_eligible(matched):
        raise NotEligibleError()

    token = create_session_token()
    bind_session_token(db, matched.id, hash_token(token))
    phase5 = diagnostic_phase5(matched)
    logger.info("Career quest session issued for diagnostic %s", matched.id)
    return {
        "session_id": str(matched.id),
        "session_token": token,
        "profile_snapshot": profile_snapshot(aggregated_profile(matched)),
        "recommended_actions": recommended_actions(phase5),
    }
