"""Pydantic models for comment analysis."""
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field, model_validator

TOXICITY_CATEGORIES = (
    "identity_attack",
    "insult",
    "obscene",
    "severe_toxicity",
    "sexual_explicit",
    "threat",
    "toxicity",
)
DEFAULT_CATEGORY_SCORE = 0.1


class AnalysisMethod(str, Enum):
    GENERATIVE = "generative"
    LOCAL = "local"


class AnalyzerKind(str, Enum):
    GENERATIVE = "generative"
    LOCAL_FALLBACK = "local-fallback"
    LOCAL_SELECTED = "local-selected"


class RawComment(BaseModel):
    id: Optional[str] = None
    text: str
    author: Optional[str] = None
    published_at: Optional[datetime] = None
    like_count: int = 0
    reply_count: int = 0


class ToxicityCategories(BaseModel):
    identity_attack: float = Field(DEFAULT_CATEGORY_SCORE, ge=0, le=1)
    insult: float = Field(DEFAULT_CATEGORY_SCORE, ge=0, le=1)
    obscene: float = Field(DEFAULT_CATEGORY_SCORE, ge=0, le=1)
    severe_toxicity: float = Field(DEFAULT_CATEGORY_SCORE, ge=0, le=1)
    sexual_explicit: float = Field(DEFAULT_CATEGORY_SCORE, ge=0, le=1)
    threat: float = Field(DEFAULT_CATEGORY_SCORE, ge=0, le=1)
    toxicity: float = Field(DEFAULT_CATEGORY_SCORE, ge=0, le=1)


class ToxicityScore(BaseModel):
    overall: float = Field(DEFAULT_CATEGORY_SCORE, ge=0, le=1)
    categories: ToxicityCategories = Field(default_factory=ToxicityCategories)
    confidence: float = Field(0.5, ge=0, le=1)


class CommentScore(BaseModel):
    """Per-text output of an analyzer before normalization."""

    text: str = ""
    sentiment: float = Field(0.0, ge=-1, le=1)
    toxicity: ToxicityScore = Field(default_factory=ToxicityScore)
    categories: List[str] = Field(default_factory=lambda: ["general"])


class AnalyzedComment(BaseModel):
    id: Optional[str] = None
    text: str
    author: Optional[str] = None
    published_at: Optional[datetime] = None
    like_count: int = 0
    reply_count: int = 0
    sentiment: float = Field(..., ge=-1, le=1)
    label: Literal["positive", "neutral", "negative"]
    toxicity: ToxicityScore
    categories: List[str]


class SentimentDistribution(BaseModel):
    very_negative: int = 0
    negative: int = 0
    neutral: int = 0
    positive: int = 0
    very_positive: int = 0


class OverallSentiment(BaseModel):
    score: float = 0.0
    distribution: SentimentDistribution = Field(default_factory=SentimentDistribution)


class ToxicityDistribution(BaseModel):
    low: int = 0
    medium: int = 0
    high: int = 0
    severe: int = 0


class ToxicitySummary(BaseModel):
    average_score: float = 0.0
    distribution: ToxicityDistribution = Field(default_factory=ToxicityDistribution)
    category_counts: Dict[str, int] = Field(default_factory=dict)


class TopicEntry(BaseModel):
    name: str
    count: int = Field(..., ge=0)
    sentiment: float = 0.0


class KeywordEntry(BaseModel):
    word: str
    count: int = Field(..., ge=0)
    sentiment: float = 0.0


class AnalysisMetadata(BaseModel):
    analyzer: AnalyzerKind
    model_version: str
    attempts: int = 0
    processing_time_ms: float = 0.0
    fallback_reason: Optional[str] = None


class AnalysisResult(BaseModel):
    comments: List[AnalyzedComment]
    overall_sentiment: OverallSentiment
    toxicity_summary: ToxicitySummary
    topics: List[TopicEntry] = Field(default_factory=list)
    keywords: List[KeywordEntry] = Field(default_factory=list)
    metadata: Optional[AnalysisMetadata] = None


class AnalyzeRequest(BaseModel):
    texts: Optional[List[str]] = None
    comments: Optional[List[RawComment]] = None
    analysis_prompt: str = ""
    method: AnalysisMethod = AnalysisMethod.GENERATIVE
    cache_key: Optional[str] = None

    @model_validator(mode="after")
    def _require_one_source(self) -> "AnalyzeRequest":
        if bool(self.texts) == bool(self.comments):
            raise ValueError("Provide exactly one of texts or comments")
        return self
