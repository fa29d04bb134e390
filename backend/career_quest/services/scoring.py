from dataclasses import asdict, dataclass, field
import math
from typing import Any

from career_quest.core.errors import ProviderError

LABELS = ("Strong", "OK", "Weak")
STRONG_THRESHOLD = 80
OK_THRESHOLD = 60
MAX_AI_TIPS = 10
MAX_AI_SIGNALS = 10


@dataclass
class ProofScore:
    score: int
    label: str
    tips: list[str] = field(default_factory=list)
    signals: list[dict[str, str]] = field(default_factory=list)
    meta: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def clamp_score(value: float) -> int:
    return max(0, min(100, math.floor(value + 0.5)))


def label_for(score: int) -> str:
    if score >= STRONG_THRESHOLD:
        return "Strong"
    if score >= OK_THRESHOLD:
        return "OK"
    return "Weak"


def signal(signal_id: str, title: str, value: Any) -> dict[str, str]:
    return {"id": signal_id, "title": title, "value": str(value)}


def unique_tips(tips: list[str], limit: int) -> list[str]:
    seen: list[str] = []
    for tip in tips:
        if tip and tip not in seen:
            seen.append(tip)
    return seen[:limit]


def score_from_ai_payload(parsed: dict[str, Any] | None) -> ProofScore:
    """Validates an evaluator's `{score, label, tips, signals}` payload.

    Raises ProviderError when the payload is missing or the score is not numeric.
    """
    if not isinstance(parsed, dict):
        raise ProviderError("AI response is not a JSON object")
    raw_score = parsed.get("score")
    if isinstance(raw_score, bool):
        raise ProviderError("AI score is not numeric")
    try:
        numeric = float(raw_score)
    except (TypeError, ValueError) as exc:
        raise ProviderError("AI score is not numeric") from exc
    if not math.isfinite(numeric):
        raise ProviderError("AI score is not finite")

    score = clamp_score(numeric)
    label = str(parsed.get("label") or "")
    if label not in LABELS:
        label = label_for(score)

    raw_tips = parsed.get("tips") if isinstance(parsed.get("tips"), list) else []
    tips = [str(tip) for tip in raw_tips if tip]

    raw_signals = parsed.get("signals") if isinstance(parsed.get("signals"), list) else []
    signals = []
    for item in raw_signals:
        if not isinstance(item, dict):
            continue
        entry = signal(str(item.get("id") or ""), str(item.get("title") or ""), item.get("value") or "")
        if entry["id"] or entry["title"] or entry["value"]:
            signals.append(entry)

    return ProofScore(
        score=score,
        label=label,
        tips=tips[:MAX_AI_TIPS],
        signals=signals[:MAX_AI_SIGNALS],
    )
