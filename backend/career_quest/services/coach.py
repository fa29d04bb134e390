import json
import logging
from typing import Any

from career_quest.core.errors import ProviderError
from career_quest.services.ai import call_llm
from career_quest.services.parsing import extract_json_object

logger = logging.getLogger(__name__)

MAX_CARDS = 6
MAX_CARD_ITEMS = 8
MAX_CONTEXT_CHARS = 12000
COACH_ATTEMPTS = 2

COACH_SYSTEM_PROMPT = (
    "You are a strict but helpful career coach. Respond with valid JSON only, no surrounding text. "
    'Strict JSON shape: {"cards":[{"id":string,"title":string,"body":string,"items":string[]}]}'
)
COACH_INSTRUCTIONS = (
    "Goal: give actionable advice for the current mission and improve the quality of the proof. "
    "Ground the advice in the participant's weaknesses and strengths and in this specific mission. "
    "Return 3 to 6 cards. Explicitly name 1 main risk based on the weaknesses or recent proofs."
)

GENERIC_FOCUS_TIPS = [
    "Work on one mission at a time: proof, validation, then XP.",
    "Turn the mission into a simple plan: goal, steps, risks, KPI.",
    "Your proof should show: a date, the action, and a measurable result.",
]
PROOF_CHECKLIST = ["Readable screenshot", "Clear date", "Measurable result", "2-3 lines of context"]


def mission_from_fields(
    *,
    phase_id: str = "",
    phase_title: str = "",
    mission_id: str = "",
    mission_title: str = "",
    mission_objective: str = "",
    mission_actions: list[str] | None = None,
) -> dict:
    return {
        "phase_id": phase_id or "",
        "phase_title": phase_title or "",
        "mission_id": mission_id or "",
        "mission_title": mission_title or "",
        "mission_objective": mission_objective or "",
        "mission_actions": [str(action) for action in (mission_actions or [])][:12],
    }


def parse_cards(parsed: dict[str, Any] | None) -> list[dict]:
    raw_cards = parsed.get("cards") if isinstance(parsed, dict) else None
    if not isinstance(raw_cards, list):
        return []
    cards: list[dict] = []
    for idx, raw in enumerate(raw_cards):
        if not isinstance(raw, dict):
            continue
        items = raw.get("items") if isinstance(raw.get("items"), list) else []
        card = {
            "id": str(raw.get("id") or f"card_{idx + 1}"),
            "title": str(raw.get("title") or "").strip(),
            "body": str(raw.get("body") or "").strip(),
            "items": [str(item).strip() for item in items if str(item or "").strip()][:MAX_CARD_ITEMS],
        }
        if card["title"] and card["body"]:
            cards.append(card)
    return cards[:MAX_CARDS]


def _coach_with_ai(profile: dict, mission: dict, progress_summary: dict) -> list[dict]:
    payload = {
        "aggregated_profile": profile or {},
        "mission": mission or {},
        "progress_summary": progress_summary or {},
    }
    prompt = (
        "Context (JSON):\n"
        + json.dumps(payload, ensure_ascii=False, default=str)[:MAX_CONTEXT_CHARS]
        + "\n\n"
        + COACH_INSTRUCTIONS
    )
    raw = call_llm(COACH_SYSTEM_PROMPT, prompt, temperature=0.3, attempts=COACH_ATTEMPTS)
    cards = parse_cards(extract_json_object(raw))
    if not cards:
        raise ProviderError("AI coach returned no usable cards")
    return cards


def fallback_cards(profile: dict, mission: dict, progress_summary: dict) -> list[dict]:
    tips = list(GENERIC_FOCUS_TIPS)
    weaknesses = profile.get("weaknesses") if isinstance(profile.get("weaknesses"), list) else []
    if any("communication" in str(weakness).lower() for weakness in weaknesses):
        tips.append("Simplify your message: 5 lines max and one clear question.")

    recent = progress_summary.get("recent_proofs") or []
    latest_score = recent[0].get("ai_score") if recent else None
    if latest_score is not None:
        tips.append(
            f"Latest proof score: {latest_score}/100. Improve a single point, then resubmit."
        )

    phase = mission.get("phase_title") or "-"
    title = mission.get("mission_title") or "-"
    return [
        {
            "id": "focus",
            "title": "Current focus",
            "body": f"Phase: {phase} · Mission: {title}",
            "items": tips[:4],
        },
        {
            "id": "proof",
            "title": "Proof quality",
            "body": "A solid proof means more credibility and steady progress.",
            "items": list(PROOF_CHECKLIST),
        },
    ]


def coach(profile: dict, mission: dict, progress_summary: dict) -> dict:
    try:
        cards = _coach_with_ai(profile, mission, progress_summary)
        return {"engine": "ai", "cards": cards, "meta": {"ai": {"used": True, "engine": "ai_text"}}}
    except ProviderError as exc:
        logger.info("Coaching advice falling back to static cards: %s", exc)

    return {
        "engine": "fallback",
        "cards": fallback_cards(profile, mission, progress_summary),
        "meta": {"ai": {"used": False, "engine": "fallback"}},
    }
