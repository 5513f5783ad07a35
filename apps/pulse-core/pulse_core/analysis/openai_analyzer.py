"""Sentiment analysis via an OpenAI-compatible chat completions endpoint."""

import json
import logging

from openai import AsyncOpenAI

from pulse_core.analysis.base import AnalysisResult, SentimentAnalyzer
from pulse_core.analysis.lexicon import detect_language, extract_keywords
from pulse_core.models.content import Sentiment

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """\
Analyze the sentiment and toxicity of the given social media comment, and \
extract keywords. Respond with a JSON object containing:
- sentiment: "POSITIVE", "NEGATIVE", or "NEUTRAL"
- confidence: number between 0 and 1
- toxicity: number between 0 and 1
- language: detected language code (e.g. "en", "es", "fr")
- keywords: array of up to 5 relevant keywords"""


def _clamp(value, default: float = 0.0) -> float:
    try:
        return max(0.0, min(1.0, float(value)))
    except (TypeError, ValueError):
        return default


class OpenAIAnalyzer(SentimentAnalyzer):
    """Available only when an API key is configured."""

    name = "openai"

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        base_url: str | None = None,
        client: AsyncOpenAI | None = None,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._base_url = base_url
        self._client = client

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = AsyncOpenAI(api_key=self._api_key, base_url=self._base_url)
        return self._client

    async def is_available(self) -> bool:
        return bool(self._api_key) or self._client is not None

    async def analyze(self, text: str) -> AnalysisResult:
        response = await self._get_client().chat.completions.create(
            model=self._model,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": text},
            ],
            response_format={"type": "json_object"},
            temperature=0.1,
            max_tokens=500,
        )
        raw = response.choices[0].message.content or "{}"
        data = json.loads(raw)

        try:
            label = Sentiment(str(data.get("sentiment", "NEUTRAL")).upper())
        except ValueError:
            logger.warning("Unexpected sentiment label from model: %r", data.get("sentiment"))
            label = Sentiment.NEUTRAL

        keywords = data.get("keywords")
        if not isinstance(keywords, list):
            keywords = extract_keywords(text)

        return AnalysisResult(
            sentiment_label=label,
            sentiment_score=_clamp(data.get("confidence"), 0.5),
            toxicity_score=_clamp(data.get("toxicity")),
            language=data.get("language") or detect_language(text),
            keywords=[str(k) for k in keywords][:5],
            model_name=f"openai-{self._model}",
            model_version=getattr(response, "model", None),
        )
