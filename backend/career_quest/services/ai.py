import base64
import time
from typing import Any

import httpx

from career_quest.core.config import settings
from career_quest.core.errors import ProviderError
from career_quest.services.outbound import send_with_deadline

SUPPORTED_LLM_PROVIDERS = {"groq", "openai"}
RETRYABLE_STATUSES = {429, 500, 502, 503, 504}
RETRY_DELAY_SECONDS = 1.0


def _normalize_provider() -> str:
    provider = (settings.llm_provider or "openai").strip().lower()
    if provider not in SUPPORTED_LLM_PROVIDERS:
        return "openai"
    return provider


def _provider_config() -> tuple[str, str | None, str, str]:
    provider = _normalize_provider()
    if provider == "groq":
        return (
            provider,
            settings.groq_api_key,
            settings.groq_model,
            settings.groq_api_base.rstrip("/"),
        )
    return (
        "openai",
        settings.openai_api_key,
        settings.openai_model,
        settings.openai_api_base.rstrip("/"),
    )


def ai_is_configured() -> bool:
    _, api_key, model, _ = _provider_config()
    return bool(settings.ai_enabled and api_key and model)


def vision_is_configured() -> bool:
    return bool(settings.ai_enabled and settings.openai_api_key and settings.openai_vision_model)


def get_active_ai_provider() -> str:
    return _provider_config()[0]


def get_active_ai_model() -> str:
    return _provider_config()[2]


def image_data_url(image: bytes, mime: str) -> str:
    return f"data:{mime};base64,{base64.b64encode(image).decode('ascii')}"


def _post_chat_completion(
    *,
    api_base: str,
    api_key: str,
    body: dict[str, Any],
    timeout: float,
    attempts: int,
) -> str:
    headers = {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
    }
    last_error: Exception | None = None
    for attempt in range(attempts):
        try:
            response = send_with_deadline(
                "POST",
                f"{api_base}/chat/completions",
                timeout=timeout,
                headers=headers,
                json=body,
            )
            response.raise_for_status()
            data = response.json()
            content = data["choices"][0]["message"]["content"]
            return content if isinstance(content, str) else ""
        except httpx.HTTPStatusError as exc:
            last_error = exc
            status = exc.response.status_code
            if status in RETRYABLE_STATUSES and attempt + 1 < attempts:
                time.sleep(RETRY_DELAY_SECONDS)
                continue
            raise ProviderError(f"LLM API error ({status}): {exc.response.text[:300]}") from exc
        except (httpx.HTTPError, ValueError, KeyError, IndexError, TypeError) as exc:
            last_error = exc
            if attempt + 1 < attempts:
                continue
            break

    raise ProviderError(f"LLM call failed: {last_error}")


def call_llm(
    system_prompt: str,
    user_payload: str,
    *,
    temperature: float = 0.2,
    attempts: int = 1,
) -> str:
    provider, api_key, model, api_base = _provider_config()
    if not settings.ai_enabled:
        raise ProviderError("AI is disabled")
    if not api_key:
        raise ProviderError(f"{provider} API key is not configured")
    if not model:
        raise ProviderError(f"No model configured for provider '{provider}'")

    body: dict[str, Any] = {
        "model": model,
        "messages": [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_payload},
        ],
        "temperature": temperature,
    }
    if provider == "openai":
        body["response_format"] = {"type": "json_object"}

    return _post_chat_completion(
        api_base=api_base,
        api_key=api_key,
        body=body,
        timeout=settings.ai_text_timeout_seconds,
        attempts=attempts,
    )


def call_vision(
    system_prompt: str,
    text: str,
    image: bytes,
    mime: str,
    *,
    timeout: float | None = None,
    temperature: float = 0.2,
) -> str:
    if not vision_is_configured():
        raise ProviderError("Vision model is not configured")
    body = {
        "model": settings.openai_vision_model,
        "messages": [
            {"role": "system", "content": system_prompt},
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": text},
                    {"type": "image_url", "image_url": {"url": image_data_url(image, mime)}},
                ],
            },
        ],
        "temperature": temperature,
    }
    return _post_chat_completion(
        api_base=settings.openai_api_base.rstrip("/"),
        api_key=settings.openai_api_key or "",
        body=body,
        timeout=timeout or settings.ai_vision_timeout_seconds,
        attempts=1,
    )
