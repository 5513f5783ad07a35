"""Pluggable sentiment / toxicity analysis."""

from pulse_core.analysis.base import AnalysisResult, SentimentAnalyzer
from pulse_core.analysis.engine import AnalysisEngine
from pulse_core.analysis.lexicon import LexiconAnalyzer
from pulse_core.analysis.openai_analyzer import OpenAIAnalyzer

__all__ = [
    "AnalysisEngine",
    "AnalysisResult",
    "LexiconAnalyzer",
    "OpenAIAnalyzer",
    "SentimentAnalyzer",
]
