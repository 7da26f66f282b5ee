import asyncio
import json

import httpx
import pytest

from commentlens.exceptions import InvalidInputError, RetryableError
from commentlens.models.analysis import AnalyzerKind
from commentlens.services.generative import (
    COMMENT_SEPARATOR,
    GenerativeAnalysisClient,
    build_prompt,
    classify_status,
    extract_candidate_text,
)
from commentlens.services.sentiment import KeywordHeuristicAnalyzer
from commentlens.utils.backoff import ErrorClass

TEXTS = ["Video ini bagus sekali!", "Kamu bodoh banget anjing", "Biasa aja sih"]


def gemini_body(text: str) -> dict:
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


def model_payload(count: int) -> str:
    comments = [
        {
            "text": f"comment {index}",
            "sentiment": 0.5,
            "toxicity": {"overall": 0.05, "categories": {"insult": 0.01}, "confidence": 0.9},
            "categories": ["general"],
        }
        for index in range(count)
    ]
    return json.dumps(
        {
            "comments": comments,
            "topics": [{"name": "content quality", "count": count, "sentiment": 0.5}],
            "keywords": [{"word": "video", "count": 1, "sentiment": 0.5}],
        }
    )


class Recorder:
    """MockTransport handler returning queued responses and counting requests."""

    def __init__(self, *responses):
        self.requests = []
        self._responses = list(responses)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if len(self._responses) > 1:
            return self._responses.pop(0)
        return self._responses[0]


def make_client(settings, handler, delays=None, **kwargs):
    async def fake_sleep(seconds):
        if delays is not None:
            delays.append(seconds)

    return GenerativeAnalysisClient(
        settings,
        transport=httpx.MockTransport(handler),
        sleep=fake_sleep,
        jitter=lambda bound: 0.0,
        **kwargs,
    )


def test_persistent_overload_falls_back_after_max_retries(settings):
    handler = Recorder(httpx.Response(503, text="model overloaded"))
    delays = []
    client = make_client(settings, handler, delays)

    result = asyncio.run(client.analyze(TEXTS))
    expected = asyncio.run(KeywordHeuristicAnalyzer().analyze(TEXTS))

    assert len(handler.requests) == settings.max_retries
    assert delays == [6.0, 12.0]
    assert result.model_dump(exclude={"metadata"}) == expected.model_dump(exclude={"metadata"})
    assert result.metadata.analyzer is AnalyzerKind.LOCAL_FALLBACK
    assert result.metadata.model_version == "keyword-v1"
    assert result.metadata.attempts == 3
    assert "overloaded" in result.metadata.fallback_reason


def test_success_parses_wrapped_json(settings):
    text = "Here is the analysis:\n```json\n" + model_payload(3) + "\n```\nHope this helps!"
    handler = Recorder(httpx.Response(200, json=gemini_body(text)))
    client = make_client(settings, handler)

    result = asyncio.run(client.analyze(TEXTS))

    assert len(handler.requests) == 1
    assert [comment.text for comment in result.comments] == TEXTS
    assert all(comment.sentiment == 0.5 for comment in result.comments)
    assert result.overall_sentiment.distribution.positive == 3
    assert [topic.name for topic in result.topics] == ["content quality"]
    assert result.metadata.analyzer is AnalyzerKind.GENERATIVE
    assert result.metadata.model_version == settings.gemini_model
    assert result.metadata.attempts == 1


def test_rate_limit_then_success_backs_off_exponentially(settings):
    handler = Recorder(
        httpx.Response(429, text="quota"),
        httpx.Response(200, json=gemini_body(model_payload(3))),
    )
    delays = []
    client = make_client(settings, handler, delays)

    result = asyncio.run(client.analyze(TEXTS))

    assert len(handler.requests) == 2
    assert delays == [6.0]
    assert result.metadata.attempts == 2
    assert result.metadata.analyzer is AnalyzerKind.GENERATIVE


def test_malformed_success_body_is_retried(settings):
    handler = Recorder(
        httpx.Response(200, json={"candidates": []}),
        httpx.Response(200, json=gemini_body("The analysis shows mostly positive sentiment")),
        httpx.Response(200, json=gemini_body(model_payload(3))),
    )
    delays = []
    client = make_client(settings, handler, delays)

    result = asyncio.run(client.analyze(TEXTS))

    assert len(handler.requests) == 3
    assert delays == [2.0, 4.0]
    assert result.metadata.analyzer is AnalyzerKind.GENERATIVE


def test_server_error_uses_linear_backoff(settings):
    handler = Recorder(httpx.Response(500, text="boom"))
    delays = []
    client = make_client(settings, handler, delays)

    result = asyncio.run(client.analyze(TEXTS))

    assert len(handler.requests) == 3
    assert delays == [2.0, 4.0]
    assert result.metadata.analyzer is AnalyzerKind.LOCAL_FALLBACK


def test_transport_error_counts_as_attempt(settings):
    calls = []

    def handler(request):
        calls.append(request)
        raise httpx.ConnectError("connection refused", request=request)

    client = make_client(settings, handler)
    result = asyncio.run(client.analyze(TEXTS))

    assert len(calls) == 3
    assert result.metadata.analyzer is AnalyzerKind.LOCAL_FALLBACK
    assert "transport" in result.metadata.fallback_reason


def test_timeout_counts_as_transient_failure(settings):
    fast = settings.model_copy(update={"request_timeout_seconds": 0.05, "max_retries": 2})
    calls = []

    async def slow_handler(request):
        calls.append(request)
        await asyncio.sleep(1)
        return httpx.Response(200, json=gemini_body(model_payload(3)))

    delays = []
    client = make_client(fast, slow_handler, delays)
    result = asyncio.run(client.analyze(TEXTS))

    assert len(calls) == 2
    assert delays == [2.0]
    assert result.metadata.analyzer is AnalyzerKind.LOCAL_FALLBACK
    assert "timed out" in result.metadata.fallback_reason


def test_count_mismatch_is_padded(settings):
    handler = Recorder(httpx.Response(200, json=gemini_body(model_payload(1))))
    client = make_client(settings, handler)

    result = asyncio.run(client.analyze(TEXTS))

    assert len(result.comments) == 3
    assert result.comments[0].sentiment == 0.5
    assert result.comments[2].sentiment == 0.0
    assert result.metadata.analyzer is AnalyzerKind.GENERATIVE


def assert_fell_back(result, reason):
    expected = asyncio.run(KeywordHeuristicAnalyzer().analyze(TEXTS))
    assert result.model_dump(exclude={"metadata"}) == expected.model_dump(exclude={"metadata"})
    assert result.metadata.analyzer is AnalyzerKind.LOCAL_FALLBACK
    assert reason in result.metadata.fallback_reason


def test_empty_comment_list_is_retried_then_falls_back(settings):
    handler = Recorder(httpx.Response(200, json=gemini_body('{"comments": []}')))
    delays = []
    client = make_client(settings, handler, delays)

    result = asyncio.run(client.analyze(TEXTS))

    assert len(handler.requests) == 3
    assert delays == [2.0, 4.0]
    assert_fell_back(result, "no comment scores")


def test_non_utf8_success_body_falls_back(settings):
    handler = Recorder(httpx.Response(200, content=b'{"candidates": "\xff\xfe"}'))
    client = make_client(settings, handler)

    result = asyncio.run(client.analyze(TEXTS))

    assert len(handler.requests) == 3
    assert_fell_back(result, "not JSON")


def test_plain_text_success_body_falls_back(settings):
    handler = Recorder(httpx.Response(200, text="Service temporarily degraded"))
    client = make_client(settings, handler)

    result = asyncio.run(client.analyze(TEXTS))

    assert len(handler.requests) == 3
    assert_fell_back(result, "not JSON")


def test_deeply_nested_model_output_falls_back(settings):
    text = '{"comments": ' + "[" * 100000 + "]" * 100000 + "}"
    handler = Recorder(httpx.Response(200, json=gemini_body(text)))
    client = make_client(settings, handler)

    result = asyncio.run(client.analyze(TEXTS))

    assert len(handler.requests) == 3
    assert_fell_back(result, "Failed to parse")


def test_empty_input_is_rejected_without_calls(settings):
    handler = Recorder(httpx.Response(200, json=gemini_body(model_payload(1))))
    client = make_client(settings, handler)

    with pytest.raises(InvalidInputError):
        asyncio.run(client.analyze([]))
    assert handler.requests == []


def test_request_carries_key_and_generation_config(settings):
    handler = Recorder(httpx.Response(200, json=gemini_body(model_payload(3))))
    client = make_client(settings, handler)

    asyncio.run(client.analyze(TEXTS, analysis_prompt="music channel"))

    request = handler.requests[0]
    assert request.url.path.endswith("/models/gemini-2.0-flash-exp:generateContent")
    assert request.url.params["key"] == "test"
    body = json.loads(request.content)
    assert body["generationConfig"] == {
        "temperature": 0.3,
        "topK": 20,
        "topP": 0.8,
        "maxOutputTokens": 4096,
    }
    prompt = body["contents"][0]["parts"][0]["text"]
    assert "Additional context: music channel" in prompt
    assert COMMENT_SEPARATOR.join(TEXTS) in prompt


def test_build_prompt_separates_comments():
    prompt = build_prompt(["first", "second"])
    assert "first\n---COMMENT_SEPARATOR---\nsecond" in prompt
    assert '"comments"' in prompt


def test_extract_candidate_text_rejects_bad_shape():
    assert extract_candidate_text(gemini_body("ok")) == "ok"
    with pytest.raises(RetryableError) as excinfo:
        extract_candidate_text({"candidates": [{"content": {}}]})
    assert excinfo.value.error_class is ErrorClass.PARSE


@pytest.mark.parametrize(
    "status, expected",
    [(200, None), (429, ErrorClass.OVERLOADED), (503, ErrorClass.OVERLOADED), (500, ErrorClass.TRANSIENT), (400, ErrorClass.TRANSIENT)],
)
def test_classify_status(status, expected):
    assert classify_status(status) is expected
