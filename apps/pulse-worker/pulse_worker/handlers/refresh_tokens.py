"""REFRESH_TOKENS — keep page credentials alive, retire the dead ones.

For every active page: validate the stored token. Invalid or undecryptable
tokens deactivate the page. Valid tokens expiring inside the refresh window are
exchanged for a long-lived token, from which a fresh page token is pulled and
re-encrypted. A failure on one page never aborts the sweep.
"""

import logging
from datetime import timedelta
from typing import Any

from sqlalchemy import select, update

from pulse_core.db import PageRow
from pulse_core.errors import DecryptionError
from pulse_worker.context import HandlerContext

logger = logging.getLogger(__name__)

VALID = "valid"
REFRESHED = "refreshed"
DEACTIVATED = "deactivated"
NOT_FOUND = "not_found"


async def _set_token(ctx: HandlerContext, page_id: str, **values: Any) -> None:
    async with ctx.session_factory() as session:
        await session.execute(update(PageRow).where(PageRow.id == page_id).values(**values))
        await session.commit()


async def _refresh_page(ctx: HandlerContext, page: PageRow) -> str:
    try:
        token = ctx.vault.decrypt(page.page_access_token)
    except DecryptionError as e:
        logger.warning("Credential for page %s cannot be decrypted, deactivating: %s", page.name, e)
        await _set_token(ctx, page.id, is_active=False)
        return DEACTIVATED

    async with ctx.client_factory(token) as api:
        if not await api.validate_token():
            logger.warning("Token for page %s is invalid, marking as inactive", page.name)
            await _set_token(ctx, page.id, is_active=False)
            return DEACTIVATED

        info = await api.get_token_info()
        horizon = ctx.clock.now() + timedelta(days=ctx.settings.token_refresh_window_days)
        if not info.expires_at or info.expires_at >= horizon.timestamp():
            return VALID

        logger.info("Token for page %s expires soon, refreshing", page.name)
        long_lived = await api.exchange_for_long_lived_token(
            ctx.settings.graph_app_id, ctx.settings.graph_app_secret
        )

    async with ctx.client_factory(long_lived) as api:
        accounts = await api.get_page_access_tokens()

    match = next((a for a in accounts if a.id == page.external_id), None)
    if match is None:
        logger.warning("Page %s missing from /me/accounts, token left unchanged", page.name)
        return NOT_FOUND

    await _set_token(ctx, page.id, page_access_token=ctx.vault.encrypt(match.access_token))
    logger.info("Refreshed token for page %s", page.name)
    return REFRESHED


async def handle(payload: dict[str, Any], ctx: HandlerContext) -> dict[str, Any]:
    async with ctx.session_factory() as session:
        pages = list(
            (await session.execute(select(PageRow).where(PageRow.is_active.is_(True)))).scalars().all()
        )

    counts = {VALID: 0, REFRESHED: 0, DEACTIVATED: 0, NOT_FOUND: 0, "errors": 0}
    for page in pages:
        try:
            outcome = await _refresh_page(ctx, page)
        except Exception as e:
            logger.error("Error refreshing token for page %s: %s", page.name, e, exc_info=True)
            counts["errors"] += 1
            continue
        counts[outcome] += 1

    logger.info(
        "Token refresh completed: %d checked, %d refreshed, %d deactivated, %d errors",
        len(pages), counts[REFRESHED], counts[DEACTIVATED], counts["errors"],
    )
    return {"checked": len(pages), **counts}
