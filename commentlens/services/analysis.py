"""Analysis pipeline entry point."""
from __future__ import annotations

import time
from typing import List, Optional, Sequence

from commentlens.config import Settings, get_settings
from commentlens.exceptions import InvalidInputError
from commentlens.logging import get_logger
from commentlens.models.analysis import (
    AnalysisMetadata,
    AnalysisMethod,
    AnalysisResult,
    AnalyzerKind,
    RawComment,
)
from commentlens.services.cache import ResultCache
from commentlens.services.generative import GenerativeAnalysisClient
from commentlens.services.normalizer import merge_raw_comments
from commentlens.services.sentiment import LocalAnalyzer, build_local_analyzer
from commentlens.utils.text import sanitize_text

logger = get_logger(__name__)


def validate_texts(texts: object) -> List[str]:
    if isinstance(texts, (str, bytes)) or not isinstance(texts, Sequence):
        raise InvalidInputError("texts must be a list of strings")
    if not texts:
        raise InvalidInputError("texts must not be empty")
    for index, text in enumerate(texts):
        if not isinstance(text, str):
            raise InvalidInputError(f"texts[{index}] is not a string")
    return list(texts)


class AnalysisService:
    """Sanitize comments, run the selected analyzer and attach run metadata."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        *,
        local: Optional[LocalAnalyzer] = None,
        generative: Optional[GenerativeAnalysisClient] = None,
        cache: Optional[ResultCache] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._local = local or build_local_analyzer(self._settings)
        self._generative = generative or GenerativeAnalysisClient(self._settings, fallback=self._local)
        self._cache = cache if cache is not None else ResultCache(self._settings.cache_max_entries)

    @property
    def cache(self) -> ResultCache:
        return self._cache

    async def analyze(
        self,
        texts: Optional[Sequence[str]] = None,
        analysis_prompt: str = "",
        method: AnalysisMethod = AnalysisMethod.GENERATIVE,
        comments: Optional[Sequence[RawComment]] = None,
        cache_key: Optional[str] = None,
    ) -> AnalysisResult:
        if texts is None and comments:
            texts = [comment.text for comment in comments]
        raw_texts = validate_texts(texts)
        try:
            method = AnalysisMethod(method)
        except ValueError as exc:
            raise InvalidInputError(f"Unknown analysis method: {method!r}") from exc

        started = time.perf_counter()
        sanitized = [sanitize_text(text) for text in raw_texts]
        logger.info("Starting analysis", comments=len(sanitized), method=method.value)

        if method is AnalysisMethod.LOCAL:
            result = await self._local.analyze(sanitized)
            metadata = AnalysisMetadata(
                analyzer=AnalyzerKind.LOCAL_SELECTED,
                model_version=self._local.model_version,
            )
        else:
            result = await self._generative.analyze(sanitized, analysis_prompt)
            metadata = result.metadata or AnalysisMetadata(
                analyzer=AnalyzerKind.GENERATIVE,
                model_version=self._settings.gemini_model,
            )

        processing_time_ms = (time.perf_counter() - started) * 1000
        metadata = metadata.model_copy(update={"processing_time_ms": processing_time_ms})
        result = result.model_copy(update={"metadata": metadata})
        if comments:
            result = merge_raw_comments(result, comments)

        logger.info(
            "Analysis completed",
            analyzer=metadata.analyzer.value,
            processing_time_ms=round(processing_time_ms, 1),
        )
        if cache_key:
            self._cache.set(cache_key, result)
        return result

    def cached(self, cache_key: str) -> Optional[AnalysisResult]:
        return self._cache.get(cache_key)
