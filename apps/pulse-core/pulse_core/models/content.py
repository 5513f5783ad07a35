"""Graph API payload models (Facebook Pages + Instagram Business)."""

import re
from datetime import datetime
from enum import Enum
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field

_COMPACT_OFFSET = re.compile(r"([+-]\d{2})(\d{2})$")


def _normalize_graph_time(value: Any) -> Any:
    """Graph returns ``2024-05-01T12:00:00+0000``; ISO 8601 wants ``+00:00``."""
    if isinstance(value, str):
        return _COMPACT_OFFSET.sub(r"\1:\2", value)
    return value


def _none_as_empty(value: Any) -> Any:
    return "" if value is None else value


GraphTime = Annotated[datetime | None, BeforeValidator(_normalize_graph_time)]

# Comment bodies come back as null for sticker/photo-only replies
GraphText = Annotated[str, BeforeValidator(_none_as_empty)]


class Platform(str, Enum):
    FACEBOOK = "FACEBOOK"
    INSTAGRAM = "INSTAGRAM"


class Sentiment(str, Enum):
    POSITIVE = "POSITIVE"
    NEGATIVE = "NEGATIVE"
    NEUTRAL = "NEUTRAL"


class _GraphModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


class _Summary(_GraphModel):
    total_count: int = 0


class _Counted(_GraphModel):
    summary: _Summary = Field(default_factory=_Summary)


class _Author(_GraphModel):
    id: str
    name: str | None = None


class _Ref(_GraphModel):
    id: str


class FacebookPost(_GraphModel):
    id: str
    message: str | None = None
    created_time: GraphTime = None
    permalink_url: str | None = None
    likes: _Counted | None = None
    comments: _Counted | None = None

    @property
    def like_count(self) -> int:
        return self.likes.summary.total_count if self.likes else 0

    @property
    def comment_count(self) -> int:
        return self.comments.summary.total_count if self.comments else 0


class InstagramPost(_GraphModel):
    id: str
    caption: str | None = None
    timestamp: GraphTime = None
    permalink: str | None = None
    like_count: int = 0
    comments_count: int = 0


class FacebookComment(_GraphModel):
    id: str
    message: GraphText = ""
    created_time: GraphTime = None
    like_count: int = 0
    author: _Author | None = Field(default=None, alias="from")
    parent: _Ref | None = None


class InstagramComment(_GraphModel):
    id: str
    text: GraphText = ""
    timestamp: GraphTime = None
    username: str | None = None
    like_count: int = 0


class InstagramAccount(_GraphModel):
    id: str
    username: str | None = None


class PageAccount(_GraphModel):
    """Entry of ``/me/accounts`` — a page and its page-scoped token."""

    id: str
    name: str = ""
    access_token: str


class TokenInfo(_GraphModel):
    """``/debug_token`` data. ``expires_at == 0`` means the token never expires."""

    is_valid: bool = True
    expires_at: int = 0
    app_id: str | None = None
    user_id: str | None = None
    scopes: list[str] = Field(default_factory=list)
