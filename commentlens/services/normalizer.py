"""Aggregate per-comment scores into the canonical analysis result."""
from __future__ import annotations

from collections import Counter
from typing import Dict, Iterable, List, Optional, Sequence

from commentlens.models.analysis import (
    AnalysisResult,
    AnalyzedComment,
    CommentScore,
    KeywordEntry,
    OverallSentiment,
    RawComment,
    SentimentDistribution,
    TopicEntry,
    ToxicityDistribution,
    ToxicitySummary,
)
from commentlens.utils.text import tokenize

# A comment counts towards a category when its sub-score is strictly above the threshold.
CATEGORY_THRESHOLDS: Dict[str, float] = {
    "identity_attack": 0.3,
    "insult": 0.3,
    "obscene": 0.3,
    "severe_toxicity": 0.7,
    "sexual_explicit": 0.3,
    "threat": 0.5,
}

TOPIC_KEYWORDS: Dict[str, List[str]] = {
    "music": ["music", "musik", "song", "lagu", "beat", "lyrics", "lirik"],
    "gaming": ["game", "gaming", "gamer", "level", "player"],
    "content quality": ["video", "quality", "kualitas", "edit", "editing", "konten", "content"],
    "creator": ["channel", "creator", "youtuber", "subscribe", "subscriber"],
    "humor": ["lucu", "funny", "haha", "wkwk", "ngakak"],
    "politics": ["politik", "politics", "government", "pemerintah", "presiden", "president"],
}
GENERAL_TOPIC = "general discussion"

STOPWORDS = frozenset(
    {
        "this", "that", "with", "have", "from", "they", "what", "your", "just", "like",
        "will", "there", "their", "about", "would", "been", "were", "when", "which",
        "yang", "untuk", "dengan", "tidak", "juga", "sudah", "akan", "bisa", "atau",
        "karena", "dari", "saya", "kalau", "tapi", "lebih", "sama", "jadi", "masih",
    }
)
MIN_KEYWORD_LENGTH = 4
MAX_KEYWORDS = 10


def sentiment_label(score: float) -> str:
    if score > 0.2:
        return "positive"
    if score < -0.2:
        return "negative"
    return "neutral"


def sentiment_bucket(score: float) -> str:
    if score < -0.6:
        return "very_negative"
    if score < -0.2:
        return "negative"
    if score < 0.2:
        return "neutral"
    if score < 0.6:
        return "positive"
    return "very_positive"


def toxicity_bucket(score: float) -> str:
    if score < 0.2:
        return "low"
    if score < 0.5:
        return "medium"
    if score < 0.8:
        return "high"
    return "severe"


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def extract_topics(texts: Sequence[str], sentiments: Sequence[float]) -> List[TopicEntry]:
    """Match comments against a fixed topic lexicon."""

    if not texts:
        return []
    topics = [TopicEntry(name=GENERAL_TOPIC, count=len(texts), sentiment=_mean(sentiments))]
    lowered = [text.lower() for text in texts]
    for name, keywords in TOPIC_KEYWORDS.items():
        matched = [
            sentiments[index]
            for index, text in enumerate(lowered)
            if any(keyword in text for keyword in keywords)
        ]
        if matched:
            topics.append(TopicEntry(name=name, count=len(matched), sentiment=_mean(matched)))
    return topics


def extract_keywords(
    texts: Sequence[str], sentiments: Sequence[float], limit: int = MAX_KEYWORDS
) -> List[KeywordEntry]:
    """Most frequent words across all comments with their mean comment sentiment."""

    counts: Counter = Counter()
    comment_sentiments: Dict[str, List[float]] = {}
    for text, sentiment in zip(texts, sentiments):
        words = [w for w in tokenize(text) if len(w) >= MIN_KEYWORD_LENGTH and w not in STOPWORDS]
        counts.update(words)
        for word in set(words):
            comment_sentiments.setdefault(word, []).append(sentiment)
    return [
        KeywordEntry(word=word, count=count, sentiment=_mean(comment_sentiments[word]))
        for word, count in counts.most_common(limit)
    ]


def _aligned_scores(texts: Sequence[str], scores: Sequence[CommentScore]) -> List[CommentScore]:
    aligned = list(scores[: len(texts)])
    aligned.extend(CommentScore(text=text) for text in texts[len(aligned):])
    return aligned


def normalize_result(
    texts: Sequence[str],
    scores: Sequence[CommentScore],
    topics: Optional[Iterable[TopicEntry]] = None,
    keywords: Optional[Iterable[KeywordEntry]] = None,
) -> AnalysisResult:
    """Build an :class:`AnalysisResult` from whichever analyzer produced ``scores``.

    Scores are matched to ``texts`` by position; missing scores become neutral
    defaults and surplus scores are dropped, so the result always holds one
    comment per text. An empty batch yields a zeroed result.
    """

    aligned = _aligned_scores(texts, scores)
    sentiments = [score.sentiment for score in aligned]

    comments = [
        AnalyzedComment(
            text=text,
            sentiment=score.sentiment,
            label=sentiment_label(score.sentiment),
            toxicity=score.toxicity,
            categories=list(score.categories),
        )
        for text, score in zip(texts, aligned)
    ]

    sentiment_counts = Counter(sentiment_bucket(value) for value in sentiments)
    toxicity_counts = Counter(toxicity_bucket(score.toxicity.overall) for score in aligned)
    category_counts = {
        name: sum(
            1 for score in aligned if getattr(score.toxicity.categories, name) > threshold
        )
        for name, threshold in CATEGORY_THRESHOLDS.items()
    }

    return AnalysisResult(
        comments=comments,
        overall_sentiment=OverallSentiment(
            score=_mean(sentiments),
            distribution=SentimentDistribution(**sentiment_counts),
        ),
        toxicity_summary=ToxicitySummary(
            average_score=_mean([score.toxicity.overall for score in aligned]),
            distribution=ToxicityDistribution(**toxicity_counts),
            category_counts=category_counts,
        ),
        topics=list(topics) if topics is not None else extract_topics(texts, sentiments),
        keywords=list(keywords) if keywords is not None else extract_keywords(texts, sentiments),
    )


def merge_raw_comments(result: AnalysisResult, raw_comments: Sequence[RawComment]) -> AnalysisResult:
    """Copy the caller's comment metadata onto the analyzed comments by position."""

    comments = [
        analyzed.model_copy(update=raw.model_dump(exclude={"text"}))
        for analyzed, raw in zip(result.comments, raw_comments)
    ]
    comments.extend(result.comments[len(comments):])
    return result.model_copy(update={"comments": comments})
