import re
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class QuestLoginIn(BaseModel):
    email: str = Field(max_length=255)
    whatsapp: str = Field(min_length=3, max_length=64)
    full_name: str = Field(min_length=2, max_length=200)

    @field_validator("email")
    @classmethod
    def validate_email(cls, value: str) -> str:
        email = value.strip().lower()
        if not EMAIL_PATTERN.match(email):
            raise ValueError("Invalid email address")
        return email


class ProfileSnapshotOut(BaseModel):
    declared_role: str = ""
    real_role: str = ""
    maturity_level: str = ""
    weaknesses: List[Any] = []
    strengths: List[Any] = []
    exclusions: List[Any] = []
    selected_path: Optional[Any] = None


class FinalActionOut(BaseModel):
    id: str
    title: str
    description: str
    pressure: str = "medium"


class SelectedFinalActionOut(FinalActionOut):
    selected_at: str = ""


class SkillGapOut(BaseModel):
    skill_name: str = ""
    current_level: str = ""
    required_level: str = ""
    gap_description: str = ""
    micro_actions: List[str] = []
    expert_note: str = ""
    at: str = ""


class RecommendedActionsOut(BaseModel):
    final_actions: List[FinalActionOut] = []
    selected_final_action: Optional[SelectedFinalActionOut] = None
    skill_gap: Optional[SkillGapOut] = None


class QuestLoginOut(BaseModel):
    session_id: str
    session_token: str
    profile_snapshot: ProfileSnapshotOut
    recommended_actions: RecommendedActionsOut


class ProofRecordIn(BaseModel):
    model_config = ConfigDict(extra="allow")

    kind: Optional[str] = None
    url: Optional[str] = None
    submitted_at: Optional[str] = None
    ai_score: Optional[float] = Field(default=None, ge=0, le=100)
    ai_label: Optional[str] = None
    ai_tips: Optional[List[str]] = None


class ProgressDocumentIn(BaseModel):
    model_config = ConfigDict(extra="allow")

    level: int = Field(default=1, ge=1)
    xp: int = Field(default=0, ge=0)
    completed_task_ids: List[str] = []
    proofs: Dict[str, ProofRecordIn] = {}
    updated_at: Optional[str] = None

    @field_validator("completed_task_ids")
    @classmethod
    def dedupe_task_ids(cls, value: List[str]) -> List[str]:
        return list(dict.fromkeys(item for item in value if item))


class ProgressPutIn(BaseModel):
    progress: ProgressDocumentIn
    revision: int = Field(ge=0)


class ProgressOut(BaseModel):
    progress: Dict[str, Any]
    revision: int
    updated_at: str = ""


class ProgressSavedOut(BaseModel):
    revision: int
    updated_at: str = ""


class ProofScoreIn(BaseModel):
    url: str = Field(min_length=8, max_length=2048)


class ProofSignalOut(BaseModel):
    id: str
    title: str
    value: str


class ProofScoreOut(BaseModel):
    score: int = Field(ge=0, le=100)
    label: str
    tips: List[str] = []
    signals: List[ProofSignalOut] = []
    meta: Dict[str, Any] = {}


class CoachIn(BaseModel):
    phase_id: str = Field(default="", max_length=64)
    phase_title: str = Field(default="", max_length=120)
    mission_id: str = Field(default="", max_length=120)
    mission_title: str = Field(default="", max_length=180)
    mission_objective: str = Field(default="", max_length=500)
    mission_actions: List[str] = Field(default_factory=list, max_length=12)

    @field_validator("mission_actions")
    @classmethod
    def limit_action_length(cls, value: List[str]) -> List[str]:
        if any(len(item) > 220 for item in value):
            raise ValueError("Mission actions must be at most 220 characters")
        return value


class CoachCardOut(BaseModel):
    id: str
    title: str
    body: str
    items: List[str] = []


class CoachOut(BaseModel):
    engine: str
    cards: List[CoachCardOut]
    meta: Dict[str, Any] = {}
