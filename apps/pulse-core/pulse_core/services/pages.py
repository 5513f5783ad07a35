"""Page connection — stores a freshly issued page token in the vault envelope."""

import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from pulse_core.db.models import PageRow
from pulse_core.db.upsert import upsert
from pulse_core.errors import PageOwnershipError
from pulse_core.models.content import Platform
from pulse_core.vault.credentials import CredentialVault

logger = logging.getLogger(__name__)


async def connect_page(
    session: AsyncSession,
    vault: CredentialVault,
    *,
    owner_user_id: str,
    platform: Platform | str,
    external_id: str,
    name: str,
    access_token: str,
) -> str:
    """Create or re-activate a page with an encrypted token. Returns the page id.

    Reconnecting an existing ``(external_id, platform)`` replaces its token and
    marks it active again. Caller commits.

    Raises:
        PageOwnershipError: the page is already connected by another user; its
            stored token is left untouched.
    """
    platform = Platform(platform)
    now = datetime.now(timezone.utc)
    page_id = await upsert(
        session,
        PageRow,
        {
            "owner_user_id": owner_user_id,
            "platform": platform.value,
            "external_id": external_id,
            "name": name,
            "page_access_token": vault.encrypt(access_token),
            "is_active": True,
            "created_at": now,
            "updated_at": now,
        },
        update_fields=["name", "page_access_token", "is_active", "updated_at"],
        guard_fields=("owner_user_id",),
    )
    if page_id is None:
        logger.warning(
            "Rejected %s page %s: already connected by another user", platform.value, external_id
        )
        raise PageOwnershipError(platform.value, external_id)
    logger.info("Connected %s page %s (id=%s)", platform.value, external_id, page_id)
    return page_id


async def get_active_pages(
    session: AsyncSession,
    owner_user_id: str,
    page_ids: list[str] | None = None,
) -> list[PageRow]:
    """Active pages owned by ``owner_user_id``, optionally restricted to ``page_ids``."""
    stmt = select(PageRow).where(
        PageRow.owner_user_id == owner_user_id,
        PageRow.is_active.is_(True),
    )
    if page_ids is not None:
        stmt = stmt.where(PageRow.id.in_(page_ids))
    return list((await session.execute(stmt.order_by(PageRow.name))).scalars().all())
