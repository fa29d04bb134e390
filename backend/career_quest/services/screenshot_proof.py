"""Screenshot proof scoring: OCR, then AI scoring, always backed by a heuristic baseline."""

from __future__ import annotations

import logging
import re
from typing import Sequence

from career_quest.core.config import settings
from career_quest.core.errors import InvalidInputError, ProviderError
from career_quest.services.providers import (
    MIN_TEXT_FOR_TEXT_SCORING,
    MissionContext,
    OcrProvider,
    ProofEvaluator,
    ScreenshotSubmission,
    build_ocr_providers,
    build_text_evaluators,
    build_vision_evaluators,
)
from career_quest.services.scoring import LABELS, ProofScore, clamp_score, label_for, signal, unique_tips

logger = logging.getLogger(__name__)

DATE_PATTERN = re.compile(r"(\d{4}-\d{2}-\d{2})|(\d{1,2}/\d{1,2}/\d{2,4})")
DIGIT_PATTERN = re.compile(r"\d")
LINK_PATTERN = re.compile(r"https?://", re.IGNORECASE)
SMALL_IMAGE_BYTES = 6 * 1024
MAX_HEURISTIC_TIPS = 10


def heuristic_score(submission: ScreenshotSubmission) -> ProofScore:
    merged = submission.combined_text
    size = len(submission.image)
    text_len = len(merged)
    has_digits = bool(DIGIT_PATTERN.search(merged))
    has_date = bool(DATE_PATTERN.search(merged))
    has_link = bool(LINK_PATTERN.search(merged))

    score = 45
    tips: list[str] = []

    # An attached image is itself evidence.
    score += 18
    if size > 0:
        score += 6
    if 0 < size < SMALL_IMAGE_BYTES:
        score -= 3
        tips.append("The file is very small. If the result is not readable, take a sharper screenshot.")

    if text_len >= 120:
        score += 10
    else:
        tips.append("Add a short note: what you did, when, and the result.")
    if text_len >= 300:
        score += 8

    if has_digits:
        score += 6
    else:
        tips.append("Add a number: quantity, percentage, time spent, reach, replies...")

    if has_date:
        score += 5
    else:
        tips.append("Add a date (day or week) to give context.")

    if has_link:
        score += 4
        tips.append("If possible, add a public link to the proof (optional).")

    tips.append("Make sure the screenshot does not contain sensitive data.")

    score = clamp_score(score)
    return ProofScore(
        score=score,
        label=label_for(score),
        tips=unique_tips(tips, MAX_HEURISTIC_TIPS),
        signals=[
            signal("imageType", "Image Type", submission.mime),
            signal("imageSize", "Image Size (bytes)", size),
            signal("textLen", "Merged Text Length", text_len),
            signal("hasDigits", "Has Numbers", "yes" if has_digits else "no"),
            signal("hasDate", "Has Date", "yes" if has_date else "no"),
            signal("hasLink", "Has Link", "yes" if has_link else "no"),
        ],
        meta={
            "image": {"mime": submission.mime, "bytes": size},
            "text_stats": {
                "length": text_len,
                "has_digits": has_digits,
                "has_date": has_date,
                "has_link": has_link,
            },
            "ocr": {"used": bool(submission.ocr_text), "chars": len(submission.ocr_text)},
        },
    )


class ScreenshotProofPipeline:
    def __init__(
        self,
        *,
        ocr_providers: Sequence[OcrProvider],
        text_evaluators: Sequence[ProofEvaluator],
        vision_evaluators: Sequence[ProofEvaluator],
    ):
        self.ocr_providers = list(ocr_providers)
        self.text_evaluators = list(text_evaluators)
        self.vision_evaluators = list(vision_evaluators)

    def extract_text(self, image: bytes, mime: str) -> tuple[str, str]:
        for provider in self.ocr_providers:
            try:
                text = (provider.attempt(image, mime) or "").strip()
            except ProviderError as exc:
                logger.warning("OCR provider %s failed: %s", provider.name, exc)
                continue
            except Exception:
                logger.exception("OCR provider %s raised unexpectedly", provider.name)
                continue
            if text:
                return text, provider.name
        return "", "none"

    def _evaluate(
        self,
        evaluators: Sequence[ProofEvaluator],
        submission: ScreenshotSubmission,
    ) -> tuple[ProofScore, ProofEvaluator] | None:
        for evaluator in evaluators:
            try:
                return evaluator.attempt(submission), evaluator
            except ProviderError as exc:
                logger.warning("Proof evaluator %s failed: %s", evaluator.name, exc)
            except Exception:
                logger.exception("Proof evaluator %s raised unexpectedly", evaluator.name)
        return None

    def score(
        self,
        image: bytes,
        mime: str,
        hint_text: str = "",
        mission: MissionContext | None = None,
    ) -> ProofScore:
        mission = mission or MissionContext()
        ocr_text, ocr_provider = self.extract_text(image, mime)
        submission = ScreenshotSubmission(
            image=image,
            mime=mime,
            hint_text=hint_text or "",
            ocr_text=ocr_text,
            mission=mission,
        )

        evaluated = None
        if len(submission.combined_text) >= MIN_TEXT_FOR_TEXT_SCORING:
            evaluated = self._evaluate(self.text_evaluators, submission)
        if evaluated is None:
            evaluated = self._evaluate(self.vision_evaluators, submission)

        result = heuristic_score(submission)
        meta = dict(result.meta)
        meta["ocr"] = {**meta["ocr"], "provider": ocr_provider}
        meta["task"] = {"phase_id": mission.phase_id, "task_id": mission.task_id}

        if evaluated is None:
            meta["ai"] = {"used": False, "engine": "heuristic"}
            result.meta = meta
            return result

        ai_score, evaluator = evaluated
        meta["ai"] = {"used": True, "engine": evaluator.name, "provider": evaluator.provider}
        return ProofScore(
            score=clamp_score(ai_score.score),
            label=ai_score.label if ai_score.label in LABELS else label_for(ai_score.score),
            tips=ai_score.tips or result.tips,
            signals=ai_score.signals or result.signals,
            meta=meta,
        )


def build_screenshot_pipeline() -> ScreenshotProofPipeline:
    return ScreenshotProofPipeline(
        ocr_providers=build_ocr_providers(),
        text_evaluators=build_text_evaluators(),
        vision_evaluators=build_vision_evaluators(),
    )


def score_screenshot(
    image: bytes,
    mime: str,
    hint_text: str = "",
    mission: MissionContext | None = None,
) -> ProofScore:
    if not image:
        raise InvalidInputError("An image is required.", code="IMAGE_REQUIRED")
    if not (mime or "").lower().startswith("image/"):
        raise InvalidInputError("Unsupported image format.", code="UNSUPPORTED_IMAGE")
    if len(image) > settings.screenshot_max_bytes:
        raise InvalidInputError("The image exceeds the upload size limit.", code="IMAGE_TOO_LARGE")
    return build_screenshot_pipeline().score(image, mime.lower(), hint_text, mission)
