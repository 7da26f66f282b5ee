"""Local sentiment and toxicity analyzers."""
from __future__ import annotations

import asyncio
import re
from abc import ABC, abstractmethod
from functools import lru_cache
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

import backoff
from vaderSentiment.vaderSentiment import SentimentIntensityAnalyzer

from commentlens.config import Settings, get_settings
from commentlens.logging import get_logger
from commentlens.models.analysis import (
    DEFAULT_CATEGORY_SCORE,
    TOXICITY_CATEGORIES,
    AnalysisResult,
    CommentScore,
    ToxicityCategories,
    ToxicityScore,
)
from commentlens.services.normalizer import normalize_result
from commentlens.utils.response_parser import category_tags

logger = get_logger(__name__)

POSITIVE_KEYWORDS = (
    "good", "great", "awesome", "amazing", "love", "best", "fantastic", "excellent",
    "wonderful", "perfect", "bagus", "keren", "mantap", "hebat", "terbaik",
)
NEGATIVE_KEYWORDS = (
    "bad", "hate", "terrible", "awful", "worst", "horrible", "disgusting", "annoying",
    "boring", "jelek", "buruk", "gak suka", "kecewa", "membosankan",
)
TOXIC_KEYWORDS = (
    "bodoh", "goblok", "tolol", "idiot", "stupid", "hate", "kill", "die", "anjing",
    "bangsat", "trash", "sucks", "damn", "shit", "fuck",
)
OBSCENE_KEYWORDS = ("shit", "fuck", "bangsat")
THREAT_KEYWORDS = ("kill", "die", "bunuh")

SENTIMENT_STEP = 0.3
SENTIMENT_CAP = 0.8
TOXICITY_STEP = 0.4
TOXICITY_CAP = 0.9
OBSCENE_FLOOR = 0.6
THREAT_FLOOR = 0.5
# Per-category share of the overall score when no per-category classifier exists.
CATEGORY_FRACTIONS: Dict[str, float] = {
    "identity_attack": 0.3,
    "insult": 0.5,
    "obscene": 0.3,
    "severe_toxicity": 0.2,
    "sexual_explicit": 0.1,
    "threat": 0.2,
    "toxicity": 1.0,
}

NEUTRAL_PREDICTION = {"label": "NEUTRAL", "score": 0.5}
NEGATIVE_TOXICITY_WEIGHT = 0.4
MAX_MODEL_INPUT_CHARS = 512
TOXICITY_LABELS = {
    "toxic": "toxicity",
    "toxicity": "toxicity",
    "severe_toxic": "severe_toxicity",
    "severe_toxicity": "severe_toxicity",
    "obscene": "obscene",
    "threat": "threat",
    "insult": "insult",
    "identity_hate": "identity_attack",
    "identity_attack": "identity_attack",
    "sexual_explicit": "sexual_explicit",
}


def proportional_toxicity(
    overall: float, confidence: float, floors: Optional[Dict[str, float]] = None
) -> ToxicityScore:
    """Derive every category as a fixed fraction of ``overall``."""

    categories = {name: overall * CATEGORY_FRACTIONS[name] for name in TOXICITY_CATEGORIES}
    for name, floor in (floors or {}).items():
        categories[name] = max(categories[name], floor)
    return ToxicityScore(
        overall=overall,
        categories=ToxicityCategories(**categories),
        confidence=confidence,
    )


# Keywords shorter than this only match at the start of a word, so "kill"
# does not fire on "skills" nor "die" on "audience".
WORD_START_LENGTH = 5


@lru_cache(maxsize=None)
def _keyword_pattern(keyword: str) -> "re.Pattern[str]":
    prefix = r"\b" if len(keyword) < WORD_START_LENGTH else ""
    return re.compile(prefix + re.escape(keyword))


def _count_matches(lowered: str, keywords: Iterable[str]) -> int:
    return sum(1 for keyword in set(keywords) if _keyword_pattern(keyword).search(lowered))


class LocalAnalyzer(ABC):
    """Scores comments without leaving the process."""

    model_version: str = "local"

    @abstractmethod
    async def score(self, texts: Sequence[str]) -> List[CommentScore]:
        """Return one score per text, in order."""

    async def analyze(self, texts: Sequence[str]) -> AnalysisResult:
        scores = await self.score(texts)
        return normalize_result(texts, scores)


class KeywordHeuristicAnalyzer(LocalAnalyzer):
    """Deterministic keyword matching over English and Indonesian lexicons."""

    model_version = "keyword-v1"

    def __init__(
        self,
        positive_keywords: Iterable[str] = POSITIVE_KEYWORDS,
        negative_keywords: Iterable[str] = NEGATIVE_KEYWORDS,
        toxic_keywords: Iterable[str] = TOXIC_KEYWORDS,
    ) -> None:
        self._positive = tuple(positive_keywords)
        self._negative = tuple(negative_keywords)
        self._toxic = tuple(toxic_keywords)

    def sentiment_for(self, text: str) -> float:
        lowered = text.lower()
        difference = _count_matches(lowered, self._positive) - _count_matches(lowered, self._negative)
        return max(-SENTIMENT_CAP, min(SENTIMENT_CAP, SENTIMENT_STEP * difference))

    def toxicity_for(self, text: str, confidence: float) -> ToxicityScore:
        lowered = text.lower()
        overall = min(TOXICITY_STEP * _count_matches(lowered, self._toxic), TOXICITY_CAP)
        floors = {}
        if _count_matches(lowered, OBSCENE_KEYWORDS):
            floors["obscene"] = OBSCENE_FLOOR
        if _count_matches(lowered, THREAT_KEYWORDS):
            floors["threat"] = THREAT_FLOOR
        return proportional_toxicity(overall, confidence, floors)

    def score_text(self, text: str) -> CommentScore:
        sentiment = self.sentiment_for(text)
        toxicity = self.toxicity_for(text, confidence=abs(sentiment) or 0.5)
        return CommentScore(
            text=text,
            sentiment=sentiment,
            toxicity=toxicity,
            categories=category_tags(toxicity.overall),
        )

    async def score(self, texts: Sequence[str]) -> List[CommentScore]:
        return [self.score_text(text) for text in texts]


class VaderAnalyzer(LocalAnalyzer):
    """VADER compound sentiment with keyword toxicity."""

    model_version = "vader"

    def __init__(self, keywords: Optional[KeywordHeuristicAnalyzer] = None) -> None:
        self._analyzer = SentimentIntensityAnalyzer()
        self._keywords = keywords or KeywordHeuristicAnalyzer()

    def score_text(self, text: str) -> CommentScore:
        compound = self._analyzer.polarity_scores(text)["compound"]
        toxicity = self._keywords.toxicity_for(text, confidence=abs(compound))
        return CommentScore(
            text=text,
            sentiment=compound,
            toxicity=toxicity,
            categories=category_tags(toxicity.overall),
        )

    async def score(self, texts: Sequence[str]) -> List[CommentScore]:
        return [self.score_text(text) for text in texts]


def _transformers_pipeline(task: str, model: str, **kwargs: Any) -> Callable:
    from transformers import pipeline

    return pipeline(task, model=model, **kwargs)


def _first_prediction(result: Any) -> Dict[str, Any]:
    while isinstance(result, list):
        if not result:
            return dict(NEUTRAL_PREDICTION)
        result = result[0]
    if not isinstance(result, dict):
        return dict(NEUTRAL_PREDICTION)
    return result


def _all_predictions(result: Any) -> List[Dict[str, Any]]:
    if isinstance(result, dict):
        return [result]
    if isinstance(result, list) and result and isinstance(result[0], list):
        return result[0]
    return list(result or [])


def prediction_score(prediction: Dict[str, Any], default: float = 0.5) -> float:
    try:
        score = float(prediction.get("score", default))
    except (TypeError, ValueError):
        return default
    return max(0.0, min(1.0, score))


def map_sentiment(prediction: Dict[str, Any]) -> float:
    """Signed sentiment from a classifier ``{label, score}`` prediction."""

    label = str(prediction.get("label", "")).lower()
    score = prediction_score(prediction, default=0.0)
    if "positive" in label or label == "label_2":
        return score
    if "negative" in label or label == "label_0":
        return -score
    return 0.0


def proxy_toxicity(prediction: Dict[str, Any]) -> ToxicityScore:
    """Estimate toxicity from sentiment confidence when no toxicity model is loaded."""

    label = str(prediction.get("label", "")).lower()
    score = prediction_score(prediction)
    overall = score * NEGATIVE_TOXICITY_WEIGHT if "negative" in label else DEFAULT_CATEGORY_SCORE
    return proportional_toxicity(overall, confidence=score)


def classifier_toxicity(predictions: List[Dict[str, Any]], confidence: float) -> ToxicityScore:
    """Map multi-label toxicity classifier output onto the category schema."""

    categories: Dict[str, float] = {}
    for prediction in predictions:
        if not isinstance(prediction, dict):
            continue
        name = TOXICITY_LABELS.get(str(prediction.get("label", "")).lower())
        if name is not None:
            categories[name] = max(categories.get(name, 0.0), prediction_score(prediction, default=0.0))
    if not categories:
        return ToxicityScore(confidence=confidence)
    overall = categories.get("toxicity", max(categories.values()))
    return ToxicityScore(
        overall=overall,
        categories=ToxicityCategories(**categories),
        confidence=confidence,
    )


class LocalModelAnalyzer(LocalAnalyzer):
    """Transformer pipelines loaded once per analyzer instance.

    Concurrent first callers await the same load. When the sentiment model
    cannot be loaded the analyzer scores with keyword heuristics instead; when
    only the toxicity model is missing, toxicity is estimated from the
    sentiment model's negative confidence.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        pipeline_factory: Optional[Callable[..., Callable]] = None,
        fallback: Optional[LocalAnalyzer] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._pipeline_factory = pipeline_factory or _transformers_pipeline
        self._fallback = fallback or KeywordHeuristicAnalyzer()
        self._loads: Dict[str, asyncio.Future] = {}
        self._sentiment_available = True
        self._build = backoff.on_exception(
            backoff.expo, OSError, max_tries=max(1, self._settings.model_download_retries)
        )(self._build_pipeline)

    @property
    def model_version(self) -> str:  # type: ignore[override]
        if not self._sentiment_available:
            return self._fallback.model_version
        return self._settings.sentiment_model

    def _build_pipeline(self, task: str, model: str, **kwargs: Any) -> Callable:
        logger.info("Loading local model", task=task, model=model)
        return self._pipeline_factory(task, model, **kwargs)

    async def _load(self, task: str, model: str, **kwargs: Any) -> Optional[Callable]:
        try:
            return await asyncio.to_thread(self._build, task, model, **kwargs)
        except Exception as exc:
            logger.warning("Local model unavailable", task=task, model=model, error=str(exc))
            return None

    async def _get_pipeline(self, key: str, task: str, model: str, **kwargs: Any) -> Optional[Callable]:
        load = self._loads.get(key)
        if load is None:
            load = asyncio.ensure_future(self._load(task, model, **kwargs))
            self._loads[key] = load
        return await load

    async def _run(self, classifier: Callable, text: str, index: int) -> Any:
        try:
            return await asyncio.to_thread(classifier, text[:MAX_MODEL_INPUT_CHARS])
        except Exception as exc:
            logger.warning("Model inference failed; using neutral prediction", index=index, error=str(exc))
            return None

    async def score(self, texts: Sequence[str]) -> List[CommentScore]:
        sentiment_pipeline = await self._get_pipeline(
            "sentiment", "sentiment-analysis", self._settings.sentiment_model, truncation=True
        )
        if sentiment_pipeline is None:
            self._sentiment_available = False
            logger.warning("Sentiment model unavailable; scoring with keyword heuristics")
            return await self._fallback.score(texts)

        toxicity_pipeline = None
        if self._settings.toxicity_model:
            toxicity_pipeline = await self._get_pipeline(
                "toxicity", "text-classification", self._settings.toxicity_model, top_k=None, truncation=True
            )

        scores: List[CommentScore] = []
        for index, text in enumerate(texts):
            raw = await self._run(sentiment_pipeline, text, index)
            prediction = _first_prediction(raw) if raw is not None else dict(NEUTRAL_PREDICTION)
            confidence = prediction_score(prediction)
            toxicity = None
            if toxicity_pipeline is not None:
                labels = await self._run(toxicity_pipeline, text, index)
                if labels is not None:
                    toxicity = classifier_toxicity(_all_predictions(labels), confidence)
            if toxicity is None:
                toxicity = proxy_toxicity(prediction)
            scores.append(
                CommentScore(
                    text=text,
                    sentiment=map_sentiment(prediction),
                    toxicity=toxicity,
                    categories=category_tags(toxicity.overall),
                )
            )
        logger.info("Local model analysis completed", comments=len(texts))
        return scores


def build_local_analyzer(settings: Optional[Settings] = None) -> LocalAnalyzer:
    """Return the analyzer variant selected by ``settings.local_analyzer``."""

    settings = settings or get_settings()
    if settings.local_analyzer == "transformers":
        return LocalModelAnalyzer(settings)
    if settings.local_analyzer == "vader":
        return VaderAnalyzer()
    return KeywordHeuristicAnalyzer()
