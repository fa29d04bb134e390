"""OCR and AI evaluator strategies for screenshot proofs.

Each strategy exposes `attempt(...)` and either returns its typed result or
raises ProviderError. Orchestrators walk an ordered list of strategies.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import json
from typing import Protocol

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
import httpx

from career_quest.core.config import settings
from career_quest.core.errors import ProviderError
from career_quest.services.ai import (
    ai_is_configured,
    call_llm,
    call_vision,
    get_active_ai_provider,
    image_data_url,
    vision_is_configured,
)
from career_quest.services.outbound import send_with_deadline
from career_quest.services.parsing import extract_json_object
from career_quest.services.scoring import ProofScore, score_from_ai_payload

SUPPORTED_OCR_PROVIDERS = ("ocrspace", "openai", "textract")
MAX_MISSION_CONTEXT_CHARS = 1800
MAX_MISSION_ACTIONS = 12
MIN_TEXT_FOR_TEXT_SCORING = 20

EVALUATOR_INSTRUCTIONS = (
    "You are a strict evaluator for a specific mission proof. "
    "Use the mission context to tailor feedback to this mission, not generic advice. "
    "Return a single JSON object with keys: score (0-100 number), label (Strong|OK|Weak), "
    "tips (array of strings), signals (array of {id,title,value}). "
    "Focus on clarity, measurability, date/context and proof completeness. "
    "Do not include any text outside the JSON."
)
OCR_INSTRUCTIONS = (
    "You extract (OCR) visible text from a screenshot image. "
    "Return only the extracted text. If there is no text, return an empty string."
)


@dataclass
class MissionContext:
    phase_id: str = ""
    task_id: str = ""
    title: str = ""
    objective: str = ""
    actions: list[str] = field(default_factory=list)

    def to_prompt_json(self) -> str:
        payload = {
            "phase_id": self.phase_id,
            "task_id": self.task_id,
            "title": self.title,
            "objective": self.objective,
            "actions": [str(action) for action in self.actions][:MAX_MISSION_ACTIONS],
        }
        return json.dumps(payload, ensure_ascii=False)[:MAX_MISSION_CONTEXT_CHARS]


@dataclass
class ScreenshotSubmission:
    image: bytes
    mime: str
    hint_text: str = ""
    ocr_text: str = ""
    mission: MissionContext = field(default_factory=MissionContext)

    @property
    def combined_text(self) -> str:
        return f"{self.hint_text.strip()}\n{self.ocr_text.strip()}".strip()


class OcrProvider(Protocol):
    name: str

    def attempt(self, image: bytes, mime: str) -> str: ...


class ProofEvaluator(Protocol):
    name: str
    provider: str

    def attempt(self, submission: ScreenshotSubmission) -> ProofScore: ...


class OcrSpaceProvider:
    name = "ocrspace"

    def attempt(self, image: bytes, mime: str) -> str:
        if not settings.ocr_space_api_key:
            raise ProviderError("OCR.space API key is not configured")
        url = f"{settings.ocr_space_api_base.rstrip('/')}/parse/image"
        form = {
            "base64Image": image_data_url(image, mime),
            "language": "eng",
            "isOverlayRequired": "false",
        }
        try:
            response = send_with_deadline(
                "POST",
                url,
                timeout=settings.ocr_timeout_seconds,
                headers={"apikey": settings.ocr_space_api_key},
                data=form,
            )
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise ProviderError(f"OCR.space request failed: {exc}") from exc

        results = data.get("ParsedResults") if isinstance(data, dict) else None
        first = results[0] if isinstance(results, list) and results else {}
        text = str((first or {}).get("ParsedText") or "").strip()
        if not text:
            raise ProviderError("OCR.space returned no text")
        return text


class OpenAiVisionOcrProvider:
    name = "openai"

    def attempt(self, image: bytes, mime: str) -> str:
        raw = call_vision(
            OCR_INSTRUCTIONS,
            "Extract the text from this screenshot.",
            image,
            mime,
            timeout=settings.ocr_timeout_seconds,
            temperature=0,
        )
        text = (raw or "").strip()
        if not text:
            raise ProviderError("Vision OCR returned no text")
        return text


class TextractOcrProvider:
    name = "textract"

    def _client(self):
        kwargs: dict = {
            "config": Config(
                connect_timeout=settings.ocr_timeout_seconds,
                read_timeout=settings.ocr_timeout_seconds,
                retries={"max_attempts": 1},
            )
        }
        if settings.textract_region:
            kwargs["region_name"] = settings.textract_region
        if settings.aws_access_key_id and settings.aws_secret_access_key:
            kwargs["aws_access_key_id"] = settings.aws_access_key_id
            kwargs["aws_secret_access_key"] = settings.aws_secret_access_key
            if settings.aws_session_token:
                kwargs["aws_session_token"] = settings.aws_session_token
        return boto3.client("textract", **kwargs)

    def attempt(self, image: bytes, mime: str) -> str:
        try:
            result = self._client().detect_document_text(Document={"Bytes": image})
        except (BotoCoreError, ClientError) as exc:
            raise ProviderError(f"Textract request failed: {exc}") from exc
        lines = [
            str(block.get("Text") or "")
            for block in result.get("Blocks", [])
            if block.get("BlockType") == "LINE"
        ]
        text = "\n".join(line for line in lines if line).strip()
        if not text:
            raise ProviderError("Textract returned no text")
        return text


class TextProofEvaluator:
    """Scores the hint and OCR text with the configured text model."""

    name = "ai_text"

    @property
    def provider(self) -> str:
        return get_active_ai_provider()

    def attempt(self, submission: ScreenshotSubmission) -> ProofScore:
        text = submission.combined_text
        if len(text) < MIN_TEXT_FOR_TEXT_SCORING:
            raise ProviderError("Not enough text to score without the image")
        prompt = (
            "MISSION CONTEXT (JSON):\n"
            + submission.mission.to_prompt_json()
            + "\n\nPROOF TEXT:\n"
            + text
        )
        raw = call_llm(EVALUATOR_INSTRUCTIONS, prompt)
        return score_from_ai_payload(extract_json_object(raw))


class VisionProofEvaluator:
    """Scores the raw screenshot with the vision model."""

    name = "openai_vision"
    provider = "openai"

    def attempt(self, submission: ScreenshotSubmission) -> ProofScore:
        prompt = (
            "Mission context (JSON):\n"
            + submission.mission.to_prompt_json()
            + "\n\nAnalyze this screenshot proof and give actionable feedback tailored to this mission. "
            "Use the optional hint text if provided. Hint text (may be empty):\n"
            + submission.combined_text
        )
        raw = call_vision(EVALUATOR_INSTRUCTIONS, prompt, submission.image, submission.mime)
        return score_from_ai_payload(extract_json_object(raw))


_OCR_FACTORIES = {
    "ocrspace": OcrSpaceProvider,
    "openai": OpenAiVisionOcrProvider,
    "textract": TextractOcrProvider,
}


def ocr_provider_order() -> list[str]:
    raw = (settings.ocr_provider or "").strip()
    order: list[str] = []
    for candidate in raw.split(","):
        provider = candidate.strip().lower()
        if provider in SUPPORTED_OCR_PROVIDERS and provider not in order:
            order.append(provider)
    return order


def build_ocr_providers() -> list[OcrProvider]:
    return [_OCR_FACTORIES[name]() for name in ocr_provider_order()]


def build_text_evaluators() -> list[ProofEvaluator]:
    return [TextProofEvaluator()] if ai_is_configured() else []


def build_vision_evaluators() -> list[ProofEvaluator]:
    return [VisionProofEvaluator()] if vision_is_configured() else []
