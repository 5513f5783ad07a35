"""Analyzer interface and result model."""

from abc import ABC, abstractmethod

from pydantic import BaseModel, Field

from pulse_core.models.content import Sentiment


class AnalysisResult(BaseModel):
    """Output of one analyzer run over one comment."""

    sentiment_label: Sentiment
    sentiment_score: float = Field(ge=0.0, le=1.0)
    toxicity_score: float = Field(default=0.0, ge=0.0, le=1.0)
    language: str | None = None
    keywords: list[str] = Field(default_factory=list)
    model_name: str
    model_version: str | None = None


class SentimentAnalyzer(ABC):
    """A pluggable sentiment/toxicity scorer."""

    name: str = ""

    @abstractmethod
    async def analyze(self, text: str) -> AnalysisResult:
        """Score ``text``."""

    async def is_available(self) -> bool:
        return True
