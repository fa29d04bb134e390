from fastapi import APIRouter, Depends, File, Form, UploadFile
from sqlalchemy.orm import Session

from career_quest.api.deps import (
    get_client_ip,
    get_db,
    get_quest_progress,
    limit_login,
    limit_quest_request,
)
from career_quest.core.config import settings
from career_quest.core.ratelimit import login_lockout
from career_quest.models.entities import CareerQuestProgress
from career_quest.schemas.api import (
    CoachIn,
    CoachOut,
    ProgressOut,
    ProgressPutIn,
    ProgressSavedOut,
    ProofScoreIn,
    ProofScoreOut,
    QuestLoginIn,
    QuestLoginOut,
)
from career_quest.services.coach import coach, mission_from_fields
from career_quest.services.eligibility import (
    aggregated_profile,
    load_eligible_session,
    login_participant,
)
from career_quest.services.link_proof import score_link
from career_quest.services.parsing import extract_json_array
from career_quest.services.progress import build_progress_summary, read_progress, write_progress
from career_quest.services.providers import MAX_MISSION_ACTIONS, MissionContext
from career_quest.services.screenshot_proof import score_screenshot

router = APIRouter(prefix="/career-quest")


@router.post("/login", response_model=QuestLoginOut, dependencies=[Depends(limit_login)])
def login(
    payload: QuestLoginIn,
    client_ip: str = Depends(get_client_ip),
    db: Session = Depends(get_db),
):
    return login_participant(
        db,
        email=payload.email,
        whatsapp=payload.whatsapp.strip(),
        full_name=payload.full_name.strip(),
        client_ip=client_ip,
        lockout=login_lockout,
    )


@router.get("/progress", response_model=ProgressOut, dependencies=[Depends(limit_quest_request)])
def get_progress(doc: CareerQuestProgress = Depends(get_quest_progress)):
    return read_progress(doc)


@router.put("/progress", response_model=ProgressSavedOut, dependencies=[Depends(limit_quest_request)])
def put_progress(
    payload: ProgressPutIn,
    doc: CareerQuestProgress = Depends(get_quest_progress),
    db: Session = Depends(get_db),
):
    # Only keys the client sent are stored; defaults stay implicit.
    progress = payload.progress.model_dump(mode="json", exclude_unset=True)
    return write_progress(db, doc, progress, payload.revision)


@router.post("/proof-score", response_model=ProofScoreOut, dependencies=[Depends(limit_quest_request)])
def proof_score(
    payload: ProofScoreIn,
    _doc: CareerQuestProgress = Depends(get_quest_progress),
):
    return score_link(payload.url.strip()).to_dict()


@router.post(
    "/proof-score-screenshot",
    response_model=ProofScoreOut,
    dependencies=[Depends(limit_quest_request)],
)
def proof_score_screenshot(
    image: UploadFile = File(...),
    screenshot_text: str = Form(default="", max_length=5000),
    phase_id: str = Form(default="", max_length=64),
    task_id: str = Form(default="", max_length=120),
    task_title: str = Form(default="", max_length=220),
    task_objective: str = Form(default="", max_length=800),
    task_actions: str = Form(default="", max_length=6000),
    _doc: CareerQuestProgress = Depends(get_quest_progress),
):
    content = image.file.read(settings.screenshot_max_bytes + 1)
    actions = extract_json_array(task_actions) or []
    mission = MissionContext(
        phase_id=phase_id.strip(),
        task_id=task_id.strip(),
        title=task_title.strip(),
        objective=task_objective.strip(),
        actions=[str(action) for action in actions if action][:MAX_MISSION_ACTIONS],
    )
    result = score_screenshot(
        content,
        (image.content_type or "").lower(),
        screenshot_text.strip(),
        mission,
    )
    return result.to_dict()


@router.post("/coach", response_model=CoachOut, dependencies=[Depends(limit_quest_request)])
def coach_advice(
    payload: CoachIn,
    doc: CareerQuestProgress = Depends(get_quest_progress),
    db: Session = Depends(get_db),
):
    # Profile data is live, so eligibility is checked on every call.
    session = load_eligible_session(db, doc.session_id)
    mission = mission_from_fields(**payload.model_dump())
    return coach(aggregated_profile(session), mission, build_progress_summary(doc.progress))
