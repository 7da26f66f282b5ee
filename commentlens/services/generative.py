"""Comment analysis through the Gemini generateContent API."""
from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Dict, Optional, Sequence

import httpx

from commentlens.config import Settings, get_settings
from commentlens.exceptions import InvalidInputError, RetryableError
from commentlens.logging import get_logger
from commentlens.models.analysis import AnalysisMetadata, AnalysisResult, AnalyzerKind
from commentlens.services.normalizer import normalize_result
from commentlens.services.sentiment import KeywordHeuristicAnalyzer, LocalAnalyzer
from commentlens.utils.backoff import BackoffPolicy, ErrorClass, RetryState, backoff_delay, next_state
from commentlens.utils.llm_json import ParseError
from commentlens.utils.response_parser import parse_model_text

logger = get_logger(__name__)

COMMENT_SEPARATOR = "\n---COMMENT_SEPARATOR---\n"
OVERLOAD_STATUSES = {429, 503}
LOG_PREVIEW_LENGTH = 300

RESPONSE_SCHEMA_EXAMPLE = """{
  "comments": [
    {
      "text": "exact comment text",
      "sentiment": number between -1 and 1,
      "toxicity": {
        "overall": number between 0 and 1,
        "categories": {
          "identity_attack": 0.1,
          "insult": 0.1,
          "obscene": 0.1,
          "severe_toxicity": 0.1,
          "sexual_explicit": 0.1,
          "threat": 0.1,
          "toxicity": 0.1
        },
        "confidence": 0.8
      },
      "categories": ["general"]
    }
  ],
  "overall_sentiment": {
    "score": 0,
    "distribution": { "very_negative": 0, "negative": 0, "neutral": 1, "positive": 0, "very_positive": 0 }
  },
  "toxicity_summary": {
    "average_score": 0.1,
    "distribution": { "low": 1, "medium": 0, "high": 0, "severe": 0 },
    "category_counts": { "identity_attack": 0, "insult": 0, "obscene": 0, "severe_toxicity": 0, "sexual_explicit": 0, "threat": 0 }
  },
  "topics": [{ "name": "general discussion", "count": 1, "sentiment": 0 }],
  "keywords": [{ "word": "comment", "count": 1, "sentiment": 0 }]
}"""


def build_prompt(texts: Sequence[str], analysis_prompt: str = "") -> str:
    """Embed the comment batch and the expected JSON shape in one prompt."""

    return (
        "Analyze these YouTube comments for sentiment and toxicity. Return valid JSON only.\n"
        "Return exactly one entry in \"comments\" per comment, in the same order.\n\n"
        f"{RESPONSE_SCHEMA_EXAMPLE}\n\n"
        f"Additional context: {analysis_prompt}\n\n"
        f"Comments:\n{COMMENT_SEPARATOR.join(texts)}\n"
    )


def extract_candidate_text(data: Any) -> str:
    """Return ``candidates[0].content.parts[0].text`` from a generateContent body."""

    try:
        text = data["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError) as exc:
        raise RetryableError(ErrorClass.PARSE, "Invalid response format from Gemini API") from exc
    if not isinstance(text, str):
        raise RetryableError(ErrorClass.PARSE, "Gemini candidate text is not a string")
    return text


def classify_status(status_code: int) -> Optional[ErrorClass]:
    """Failure class for an HTTP status, ``None`` for success."""

    if 200 <= status_code < 300:
        return None
    if status_code in OVERLOAD_STATUSES:
        return ErrorClass.OVERLOADED
    return ErrorClass.TRANSIENT


class GenerativeAnalysisClient:
    """Analyze comment batches with Gemini, retrying and falling back locally.

    Every transport, HTTP and parse failure counts against ``max_retries``.
    Once the retries are spent the fallback analyzer scores the same texts, so
    callers always receive a structurally valid result.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        fallback: Optional[LocalAnalyzer] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        jitter: Optional[Callable[[float], float]] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._fallback = fallback or KeywordHeuristicAnalyzer()
        self._transport = transport
        self._sleep = sleep
        self._jitter = jitter
        self._policy = BackoffPolicy(
            overload_factor=self._settings.overload_backoff_factor,
            overload_jitter=self._settings.overload_backoff_jitter,
            standard_factor=self._settings.standard_backoff_factor,
            standard_jitter=self._settings.standard_backoff_jitter,
        )

    @property
    def endpoint(self) -> str:
        base_url = self._settings.gemini_base_url.rstrip("/")
        return f"{base_url}/models/{self._settings.gemini_model}:generateContent"

    def _request_body(self, prompt: str) -> Dict[str, Any]:
        return {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": self._settings.temperature,
                "topK": self._settings.top_k,
                "topP": self._settings.top_p,
                "maxOutputTokens": self._settings.max_output_tokens,
            },
        }

    def _delay(self, attempt: int, error_class: ErrorClass) -> float:
        if self._jitter is None:
            return backoff_delay(attempt, error_class, self._policy)
        return backoff_delay(attempt, error_class, self._policy, jitter=self._jitter)

    async def _post(self, body: Dict[str, Any]) -> httpx.Response:
        async with httpx.AsyncClient(
            transport=self._transport,
            timeout=self._settings.request_timeout_seconds,
        ) as client:
            return await client.post(
                self.endpoint,
                params={"key": self._settings.gemini_api_key},
                json=body,
            )

    async def _attempt(self, texts: Sequence[str], prompt: str) -> AnalysisResult:
        try:
            response = await asyncio.wait_for(
                self._post(self._request_body(prompt)),
                timeout=self._settings.request_timeout_seconds,
            )
        except asyncio.TimeoutError as exc:
            raise RetryableError(ErrorClass.TRANSIENT, "Gemini request timed out") from exc
        except httpx.HTTPError as exc:
            raise RetryableError(ErrorClass.TRANSIENT, f"Gemini transport error: {exc}") from exc

        logger.info("Gemini response received", status=response.status_code)
        error_class = classify_status(response.status_code)
        if error_class is not None:
            logger.warning(
                "Gemini API returned an error",
                status=response.status_code,
                body=response.text[:LOG_PREVIEW_LENGTH],
            )
            raise RetryableError(error_class, f"Gemini API returned {response.status_code}")

        try:
            data = response.json()
        except ValueError as exc:
            raise RetryableError(ErrorClass.PARSE, "Gemini response body is not JSON") from exc

        text = extract_candidate_text(data)
        logger.debug("Raw Gemini response", preview=text[:LOG_PREVIEW_LENGTH])
        try:
            parsed = parse_model_text(text)
        except ParseError as exc:
            raise RetryableError(ErrorClass.PARSE, f"Failed to parse Gemini response: {exc}") from exc

        scores = parsed["scores"]
        if not scores:
            raise RetryableError(ErrorClass.PARSE, "Gemini returned no comment scores")
        if len(scores) != len(texts):
            logger.warning(
                "Gemini returned a different number of comments",
                expected=len(texts),
                received=len(scores),
            )
        return normalize_result(texts, scores, topics=parsed["topics"], keywords=parsed["keywords"])

    async def analyze(self, texts: Sequence[str], analysis_prompt: str = "") -> AnalysisResult:
        """Analyze sanitized ``texts``; never raises for a degraded remote service."""

        if not texts:
            raise InvalidInputError("texts must be a non-empty list of strings")

        prompt = build_prompt(texts, analysis_prompt)
        max_retries = max(1, self._settings.max_retries)
        state = RetryState.ATTEMPTING
        attempt = 0
        last_error: Optional[RetryableError] = None
        result: Optional[AnalysisResult] = None

        while True:
            if state is RetryState.ATTEMPTING:
                attempt += 1
                logger.info(
                    "Analyzing comments with Gemini",
                    comments=len(texts),
                    attempt=attempt,
                    max_retries=max_retries,
                )
                try:
                    result = await self._attempt(texts, prompt)
                except RetryableError as exc:
                    last_error = exc
                    logger.warning("Gemini attempt failed", attempt=attempt, error=str(exc))
                state = next_state(attempt, max_retries, succeeded=result is not None)
            elif state is RetryState.BACKOFF:
                delay = self._delay(attempt, last_error.error_class)
                logger.info("Backing off before retry", seconds=round(delay, 2))
                await self._sleep(delay)
                state = RetryState.ATTEMPTING
            elif state is RetryState.SUCCEEDED:
                logger.info("Gemini analysis succeeded", attempts=attempt)
                return result.model_copy(
                    update={
                        "metadata": AnalysisMetadata(
                            analyzer=AnalyzerKind.GENERATIVE,
                            model_version=self._settings.gemini_model,
                            attempts=attempt,
                        )
                    }
                )
            else:
                logger.warning("All Gemini retries failed; using fallback analysis", attempts=attempt)
                fallback = await self._fallback.analyze(texts)
                return fallback.model_copy(
                    update={
                        "metadata": AnalysisMetadata(
                            analyzer=AnalyzerKind.LOCAL_FALLBACK,
                            model_version=self._fallback.model_version,
                            attempts=attempt,
                            fallback_reason=str(last_error),
                        )
                    }
                )
