"""AnalysisEngine — picks an available analyzer and runs it."""

import logging

from pulse_core.analysis.base import AnalysisResult, SentimentAnalyzer
from pulse_core.analysis.lexicon import LexiconAnalyzer
from pulse_core.analysis.openai_analyzer import OpenAIAnalyzer
from pulse_core.config.settings import Settings
from pulse_core.errors import AnalysisUnavailableError

logger = logging.getLogger(__name__)


class AnalysisEngine:
    """Holds analyzers in priority order.

    The preferred analyzer (matched by name substring) wins when it is
    available; otherwise the first available analyzer is used.
    """

    def __init__(
        self,
        analyzers: list[SentimentAnalyzer],
        preferred: str | None = None,
    ) -> None:
        self.analyzers = analyzers
        self.preferred = preferred

    @classmethod
    def from_settings(cls, settings: Settings) -> "AnalysisEngine":
        analyzers: list[SentimentAnalyzer] = []
        if settings.openai_api_key:
            analyzers.append(
                OpenAIAnalyzer(
                    api_key=settings.openai_api_key,
                    model=settings.openai_model,
                    base_url=settings.openai_base_url,
                )
            )
        analyzers.append(LexiconAnalyzer())
        return cls(analyzers, preferred=settings.preferred_analyzer)

    async def get_available(self) -> list[SentimentAnalyzer]:
        return [a for a in self.analyzers if await a.is_available()]

    async def select(self) -> SentimentAnalyzer:
        available = await self.get_available()
        if not available:
            raise AnalysisUnavailableError("No sentiment analyzers available")

        if self.preferred:
            wanted = self.preferred.lower()
            for analyzer in available:
                if wanted in analyzer.name.lower():
                    return analyzer
        return available[0]

    async def analyze(self, text: str) -> AnalysisResult:
        analyzer = await self.select()
        logger.debug("Using analyzer: %s", analyzer.name)
        return await analyzer.analyze(text)
