"""Progress store guarded by the session credential and optimistic revisions."""

from datetime import datetime
from typing import Any

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from career_quest.core.errors import ForbiddenError, RevisionConflictError, UnauthorizedError
from career_quest.models.entities import CareerQuestProgress
from career_quest.services.auth import token_matches

RECENT_PROOFS_LIMIT = 3
RECENT_PROOF_TIPS_LIMIT = 6


def _as_document(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


def _updated_at(doc: CareerQuestProgress) -> str:
    client_stamp = _as_document(doc.progress).get("updated_at")
    if client_stamp:
        return str(client_stamp)
    return doc.updated_at.isoformat() if doc.updated_at else ""


def serialize_progress(doc: CareerQuestProgress) -> dict:
    return {
        "progress": _as_document(doc.progress),
        "revision": int(doc.revision or 0),
        "updated_at": _updated_at(doc),
    }


def bind_session_token(db: Session, session_id: str, token_hash: str) -> CareerQuestProgress:
    """Stores the credential hash, creating the progress row at revision 0 if needed."""
    now = datetime.utcnow()
    doc = (
        db.query(CareerQuestProgress)
        .filter(CareerQuestProgress.session_id == session_id)
        .one_or_none()
    )
    if doc is None:
        doc = CareerQuestProgress(
            session_id=session_id,
            token_hash=token_hash,
            progress={},
            revision=0,
            created_at=now,
            updated_at=now,
        )
        db.add(doc)
        try:
            db.commit()
            return doc
        except IntegrityError:
            # A concurrent login created the row first.
            db.rollback()
            doc = (
                db.query(CareerQuestProgress)
                .filter(CareerQuestProgress.session_id == session_id)
                .one()
            )
    doc.token_hash = token_hash
    db.commit()
    return doc


def load_progress(db: Session, session_id: str | None, token: str | None) -> CareerQuestProgress:
    sid = (session_id or "").strip()
    tok = (token or "").strip()
    if not sid or not tok:
        raise UnauthorizedError()
    doc = (
        db.query(CareerQuestProgress)
        .filter(CareerQuestProgress.session_id == sid)
        .one_or_none()
    )
    if doc is None:
        raise UnauthorizedError()
    if not token_matches(tok, doc.token_hash):
        raise ForbiddenError()
    return doc


def read_progress(doc: CareerQuestProgress) -> dict:
    return serialize_progress(doc)


def write_progress(
    db: Session,
    doc: CareerQuestProgress,
    progress: dict,
    expected_revision: int,
) -> dict:
    now = datetime.utcnow()
    result = db.execute(
        update(CareerQuestProgress)
        .where(CareerQuestProgress.session_id == doc.session_id)
        .where(CareerQuestProgress.revision == expected_revision)
        .values(progress=progress, revision=expected_revision + 1, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    db.refresh(doc)
    if result.rowcount != 1:
        raise RevisionConflictError(serialize_progress(doc))
    return {"revision": int(doc.revision), "updated_at": _updated_at(doc)}


def _score_or_none(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return value


def _int_or_default(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def build_progress_summary(progress: Any) -> dict:
    p = _as_document(progress)
    completed = p.get("completed_task_ids")
    proofs = _as_document(p.get("proofs"))

    recent: list[dict] = []
    for task_id, proof in proofs.items():
        if not task_id:
            continue
        proof = _as_document(proof)
        tips = proof.get("ai_tips") if isinstance(proof.get("ai_tips"), list) else []
        recent.append(
            {
                "task_id": str(task_id),
                "submitted_at": str(proof.get("submitted_at") or ""),
                "ai_score": _score_or_none(proof.get("ai_score")),
                "ai_label": str(proof.get("ai_label") or ""),
                "ai_tips": [str(tip) for tip in tips if tip][:RECENT_PROOF_TIPS_LIMIT],
            }
        )
    recent.sort(key=lambda item: item["submitted_at"], reverse=True)

    return {
        "level": _int_or_default(p.get("level"), 1),
        "xp": _int_or_default(p.get("xp"), 0),
        "completed_count": len(completed) if isinstance(completed, list) else 0,
        "recent_proofs": recent[:RECENT_PROOFS_LIMIT],
    }
