"""ANALYZE_SENTIMENT — score one comment, at most once.

Payload: ``{"comment_id": str}``
"""

import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from pulse_core.db import AnalysisRow, CommentRow
from pulse_core.errors import NotFoundError
from pulse_worker.context import HandlerContext
from pulse_worker.handlers.common import require

logger = logging.getLogger(__name__)


async def handle(payload: dict[str, Any], ctx: HandlerContext) -> dict[str, Any]:
    comment_id = require(payload, "comment_id")

    async with ctx.session_factory() as session:
        comment = await session.get(CommentRow, comment_id)
        if comment is None:
            raise NotFoundError(f"Comment not found: {comment_id}")

        existing = await session.scalar(
            select(AnalysisRow.id).where(AnalysisRow.comment_id == comment_id)
        )
        if existing is not None:
            logger.info("Analysis already exists for comment %s", comment_id)
            return {"skipped": True}
        text = comment.message

    result = await ctx.analysis.analyze(text)

    async with ctx.session_factory() as session:
        session.add(
            AnalysisRow(
                comment_id=comment_id,
                sentiment_label=result.sentiment_label.value,
                sentiment_score=result.sentiment_score,
                toxicity_score=result.toxicity_score,
                language=result.language,
                keywords=result.keywords,
                model_name=result.model_name,
                model_version=result.model_version,
                analyzed_at=ctx.clock.now(),
            )
        )
        try:
            await session.commit()
        except IntegrityError:
            # A concurrent run wrote the analysis between our check and insert
            await session.rollback()
            logger.info("Analysis for comment %s was written concurrently", comment_id)
            return {"skipped": True}

    logger.info(
        "Analyzed comment %s: %s (%.2f)",
        comment_id, result.sentiment_label.value, result.sentiment_score,
    )
    return {"sentiment": result.sentiment_label.value, "model": result.model_name}
