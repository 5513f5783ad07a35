"""Local, dependency-free analyzer: word lists for sentiment and toxicity.

Always available, so the worker can run without an external model. Scores are
coarse; use it as a fallback rather than a primary signal.
"""

import re
from collections import Counter

from pulse_core.analysis.base import AnalysisResult, SentimentAnalyzer
from pulse_core.models.content import Sentiment

STOP_WORDS = frozenset({
    "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for",
    "of", "with", "by", "is", "are", "was", "were", "be", "been", "being",
    "have", "has", "had", "do", "does", "did", "will", "would", "could",
    "should", "may", "might", "must", "can", "this", "that", "these", "those",
})

POSITIVE_WORDS = frozenset({
    "good", "great", "love", "loved", "excellent", "amazing", "awesome", "best",
    "nice", "happy", "thanks", "thank", "wonderful", "fantastic", "perfect",
    "like", "beautiful", "helpful", "recommend", "enjoy", "enjoyed", "cool",
})

NEGATIVE_WORDS = frozenset({
    "bad", "terrible", "awful", "hate", "hated", "worst", "poor", "horrible",
    "disappointed", "disappointing", "broken", "useless", "angry", "sad",
    "scam", "waste", "slow", "rude", "refund", "problem", "wrong", "never",
})

TOXIC_WORDS = frozenset({
    "idiot", "stupid", "moron", "dumb", "loser", "trash", "shut", "kill",
    "hate", "pathetic", "disgusting", "garbage",
})

LANGUAGE_MARKERS = {
    "en": ("the", "and", "is", "in", "to", "of", "a", "that", "it", "with"),
    "es": ("el", "la", "de", "que", "y", "en", "un", "es", "se", "no"),
    "fr": ("le", "de", "et", "à", "un", "il", "être", "en", "avoir", "les"),
}

_NON_WORD = re.compile(r"[^\w\s]")


def tokenize(text: str) -> list[str]:
    return _NON_WORD.sub("", text.lower()).split()


def extract_keywords(text: str, limit: int = 5) -> list[str]:
    """Most frequent non-stop-words longer than two characters."""
    words = [w for w in tokenize(text) if len(w) > 2 and w not in STOP_WORDS]
    return [word for word, _ in Counter(words).most_common(limit)]


def detect_language(text: str) -> str:
    """Guess en/es/fr from marker-word overlap. Defaults to English."""
    words = set(tokenize(text))
    scores = {lang: sum(1 for m in markers if m in words) for lang, markers in LANGUAGE_MARKERS.items()}
    if scores["es"] > scores["en"] and scores["es"] > scores["fr"]:
        return "es"
    if scores["fr"] > scores["en"] and scores["fr"] > scores["es"]:
        return "fr"
    return "en"


class LexiconAnalyzer(SentimentAnalyzer):
    name = "lexicon"
    version = "1.0"

    async def analyze(self, text: str) -> AnalysisResult:
        words = tokenize(text)
        positive = sum(1 for w in words if w in POSITIVE_WORDS)
        negative = sum(1 for w in words if w in NEGATIVE_WORDS)
        toxic = sum(1 for w in words if w in TOXIC_WORDS)

        hits = positive + negative
        if positive > negative:
            label = Sentiment.POSITIVE
            score = 0.5 + 0.5 * positive / hits
        elif negative > positive:
            label = Sentiment.NEGATIVE
            score = 0.5 + 0.5 * negative / hits
        else:
            label = Sentiment.NEUTRAL
            score = 0.5

        toxicity = min(1.0, toxic / max(len(words), 1) * 5)

        return AnalysisResult(
            sentiment_label=label,
            sentiment_score=round(score, 4),
            toxicity_score=round(toxicity, 4),
            language=detect_language(text),
            keywords=extract_keywords(text),
            model_name=self.name,
            model_version=self.version,
        )
