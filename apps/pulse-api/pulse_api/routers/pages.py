"""Page connection endpoints. Access tokens go in, never come back out."""

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pulse_api.deps import get_db, get_vault
from pulse_core.db import PageRow
from pulse_core.errors import PageOwnershipError
from pulse_core.models import Platform
from pulse_core.services import connect_page
from pulse_core.vault import CredentialVault

router = APIRouter(tags=["pages"])


class PageConnect(BaseModel):
    owner_user_id: str
    platform: Platform
    external_id: str
    name: str
    access_token: str = Field(min_length=1)


class PageOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    owner_user_id: str
    platform: Platform
    external_id: str
    name: str
    is_active: bool
    last_fetched_at: datetime | None = None


@router.post("/pages", response_model=PageOut)
async def create_page(
    body: PageConnect,
    db: async_sessionmaker[AsyncSession] = Depends(get_db),
    vault: CredentialVault | None = Depends(get_vault),
) -> PageOut:
    if vault is None:
        raise HTTPException(status_code=503, detail="Credential vault is not configured")

    async with db() as session:
        try:
            page_id = await connect_page(
                session,
                vault,
                owner_user_id=body.owner_user_id,
                platform=body.platform,
                external_id=body.external_id,
                name=body.name,
                access_token=body.access_token,
            )
        except PageOwnershipError as e:
            raise HTTPException(status_code=409, detail=str(e)) from e
        await session.commit()
        page = await session.get(PageRow, page_id, populate_existing=True)
        return PageOut.model_validate(page)


@router.get("/pages", response_model=list[PageOut])
async def list_pages(
    owner_user_id: str,
    db: async_sessionmaker[AsyncSession] = Depends(get_db),
) -> list[PageOut]:
    async with db() as session:
        rows = (
            await session.execute(
                select(PageRow)
                .where(PageRow.owner_user_id == owner_user_id)
                .order_by(PageRow.created_at.desc())
            )
        ).scalars().all()
        return [PageOut.model_validate(row) for row in rows]
