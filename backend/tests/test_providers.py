from pathlib import Path
import json
import sys

import boto3
from botocore.stub import Stubber
import httpx
import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from career_quest.core.config import settings
from career_quest.core.errors import ProviderError
from career_quest.services import ai, providers
from career_quest.services.providers import (
    MissionContext,
    OcrSpaceProvider,
    OpenAiVisionOcrProvider,
    ScreenshotSubmission,
    TextractOcrProvider,
    VisionProofEvaluator,
)
from career_quest.services.screenshot_proof import score_screenshot

IMAGE = b"\x89PNG\r\n\x1a\n" + b"0" * 10_000


def _completion(content) -> httpx.Response:
    return httpx.Response(200, json={"choices": [{"message": {"content": content}}]})


@pytest.fixture
def openai_enabled(monkeypatch):
    monkeypatch.setattr(settings, "ai_enabled", True)
    monkeypatch.setattr(settings, "llm_provider", "openai")
    monkeypatch.setattr(settings, "openai_api_key", "sk-test")
    monkeypatch.setattr(settings, "openai_api_base", "https://llm.test/v1")


@pytest.fixture
def ocr_space_key(monkeypatch):
    monkeypatch.setattr(settings, "ocr_space_api_key", "ocr-key")
    monkeypatch.setattr(settings, "ocr_space_api_base", "https://ocr.test")


def test_ocr_space_returns_parsed_text(mock_http, ocr_space_key):
    seen = mock_http(
        lambda request: httpx.Response(200, json={"ParsedResults": [{"ParsedText": " Invoice 2026-10-02 \n"}]})
    )
    text = OcrSpaceProvider().attempt(IMAGE, "image/png")

    assert text == "Invoice 2026-10-02"
    request = seen[0]
    assert str(request.url) == "https://ocr.test/parse/image"
    assert request.headers["apikey"] == "ocr-key"
    assert b"base64Image=data%3Aimage%2Fpng%3Bbase64%2C" in request.content


@pytest.mark.parametrize(
    "handler",
    [
        lambda request: httpx.Response(503, text="busy"),
        lambda request: httpx.Response(200, json={"ParsedResults": []}),
        lambda request: httpx.Response(200, text="<html>not json</html>"),
    ],
)
def test_ocr_space_failures_raise_provider_error(mock_http, ocr_space_key, handler):
    mock_http(handler)
    with pytest.raises(ProviderError):
        OcrSpaceProvider().attempt(IMAGE, "image/png")


def test_ocr_space_timeout_raises_provider_error(mock_http, ocr_space_key):
    def _timeout(request):
        raise httpx.ReadTimeout("slow", request=request)

    mock_http(_timeout)
    with pytest.raises(ProviderError):
        OcrSpaceProvider().attempt(IMAGE, "image/png")


def test_ocr_space_without_key_makes_no_request(mock_http, monkeypatch):
    monkeypatch.setattr(settings, "ocr_space_api_key", None)
    seen = mock_http(lambda request: httpx.Response(200))
    with pytest.raises(ProviderError):
        OcrSpaceProvider().attempt(IMAGE, "image/png")
    assert seen == []


@pytest.fixture
def textract_stub(monkeypatch):
    client = boto3.client(
        "textract",
        region_name="eu-west-1",
        aws_access_key_id="testing",
        aws_secret_access_key="testing",
    )
    captured = {}

    def _client(service_name, **kwargs):
        captured["service"] = service_name
        captured["kwargs"] = kwargs
        return client

    monkeypatch.setattr(settings, "textract_region", "eu-west-1")
    monkeypatch.setattr(providers.boto3, "client", _client)
    with Stubber(client) as stubber:
        yield stubber, captured
        stubber.assert_no_pending_responses()


def test_textract_joins_line_blocks(textract_stub):
    stubber, captured = textract_stub
    stubber.add_response(
        "detect_document_text",
        {
            "Blocks": [
                {"BlockType": "PAGE", "Id": "p"},
                {"BlockType": "LINE", "Id": "l1", "Text": "Certificate of completion"},
                {"BlockType": "WORD", "Id": "w1", "Text": "Certificate"},
                {"BlockType": "LINE", "Id": "l2", "Text": "12/09/2026"},
            ]
        },
        {"Document": {"Bytes": IMAGE}},
    )

    text = TextractOcrProvider().attempt(IMAGE, "image/png")

    assert text == "Certificate of completion\n12/09/2026"
    assert captured["service"] == "textract"
    assert captured["kwargs"]["region_name"] == "eu-west-1"
    assert captured["kwargs"]["config"].read_timeout == settings.ocr_timeout_seconds


def test_textract_errors_and_empty_pages_raise_provider_error(textract_stub):
    stubber, _captured = textract_stub
    stubber.add_client_error("detect_document_text", service_error_code="InvalidParameterException")
    stubber.add_response("detect_document_text", {"Blocks": [{"BlockType": "PAGE", "Id": "p"}]})

    with pytest.raises(ProviderError):
        TextractOcrProvider().attempt(IMAGE, "image/png")
    with pytest.raises(ProviderError):
        TextractOcrProvider().attempt(IMAGE, "image/png")


def test_vision_ocr_strips_text_and_rejects_empty_output(mock_http, openai_enabled):
    replies = iter(["  Sent 40 invitations  ", "   "])
    seen = mock_http(lambda request: _completion(next(replies)))

    assert OpenAiVisionOcrProvider().attempt(IMAGE, "image/jpeg") == "Sent 40 invitations"
    with pytest.raises(ProviderError):
        OpenAiVisionOcrProvider().attempt(IMAGE, "image/jpeg")

    body = json.loads(seen[0].content)
    assert body["temperature"] == 0
    assert body["messages"][1]["content"][1]["image_url"]["url"].startswith("data:image/jpeg;base64,")


def test_vision_evaluator_scores_screenshot_with_mission_context(mock_http, openai_enabled):
    seen = mock_http(
        lambda request: _completion(
            'Sure! {"score": 83, "label": "Strong", "tips": ["Crop the sidebar"], '
            '"signals": [{"id": "date", "title": "Date visible", "value": "yes"}]}'
        )
    )
    submission = ScreenshotSubmission(
        image=IMAGE,
        mime="image/png",
        hint_text="weekly report",
        mission=MissionContext(phase_id="p3", task_id="p3-t1", title="Weekly report"),
    )

    result = VisionProofEvaluator().attempt(submission)

    assert (result.score, result.label) == (83, "Strong")
    assert result.tips == ["Crop the sidebar"]
    assert result.signals == [{"id": "date", "title": "Date visible", "value": "yes"}]
    body = json.loads(seen[0].content)
    assert body["model"] == settings.openai_vision_model
    assert "Weekly report" in body["messages"][1]["content"][0]["text"]


def test_vision_evaluator_requires_configuration(mock_http):
    seen = mock_http(lambda request: _completion("{}"))
    with pytest.raises(ProviderError):
        VisionProofEvaluator().attempt(ScreenshotSubmission(image=IMAGE, mime="image/png"))
    assert seen == []


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(200, json={"choices": []}),
        httpx.Response(200, json={"error": "nope"}),
        httpx.Response(200, text="not json"),
    ],
)
def test_malformed_chat_completion_raises_provider_error(mock_http, openai_enabled, response):
    mock_http(lambda request: response)
    with pytest.raises(ProviderError):
        ai.call_llm("system", "user")


def test_chat_completion_retries_transient_status(mock_http, openai_enabled, monkeypatch):
    monkeypatch.setattr(ai.time, "sleep", lambda _seconds: None)
    replies = iter([httpx.Response(503, text="overloaded"), _completion('{"ok": true}')])
    seen = mock_http(lambda request: next(replies))

    assert ai.call_llm("system", "user", attempts=2) == '{"ok": true}'
    assert len(seen) == 2
    body = json.loads(seen[0].content)
    assert body["response_format"] == {"type": "json_object"}
    assert seen[0].headers["authorization"] == "Bearer sk-test"


def test_chat_completion_does_not_retry_client_errors(mock_http, openai_enabled):
    seen = mock_http(lambda request: httpx.Response(401, text="bad key"))
    with pytest.raises(ProviderError, match="401"):
        ai.call_llm("system", "user", attempts=3)
    assert len(seen) == 1


def test_chat_completion_timeout_raises_provider_error(mock_http, openai_enabled):
    def _timeout(request):
        raise httpx.ReadTimeout("slow", request=request)

    mock_http(_timeout)
    with pytest.raises(ProviderError):
        ai.call_llm("system", "user")


def test_configured_pipeline_uses_ocr_then_text_scoring(mock_http, openai_enabled, ocr_space_key, monkeypatch):
    monkeypatch.setattr(settings, "ocr_provider", "ocrspace")

    def _route(request):
        if request.url.host == "ocr.test":
            return httpx.Response(
                200,
                json={"ParsedResults": [{"ParsedText": "Booked 3 discovery calls on 2026-10-14"}]},
            )
        return _completion('{"score": 77, "label": "OK", "tips": ["Name the companies"], "signals": []}')

    seen = mock_http(_route)
    result = score_screenshot(IMAGE, "image/png", "", MissionContext(phase_id="p2", task_id="p2-t4"))

    assert [request.url.host for request in seen] == ["ocr.test", "llm.test"]
    assert (result.score, result.label) == (77, "OK")
    assert result.meta["ocr"]["provider"] == "ocrspace"
    assert result.meta["ai"] == {"used": True, "engine": "ai_text", "provider": "openai"}
    assert "Booked 3 discovery calls" in json.loads(seen[1].content)["messages"][1]["content"]
