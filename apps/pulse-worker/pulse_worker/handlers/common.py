"""Helpers shared by the job handlers."""

from typing import Any

from pulse_core.db.models import PageRow
from pulse_core.errors import InvalidCredentialError


def require(payload: dict[str, Any], key: str) -> Any:
    """Fetch a mandatory payload field. Missing fields fail the job with a clear message."""
    value = payload.get(key)
    if value in (None, ""):
        raise ValueError(f"Job payload is missing '{key}'")
    return value


def ensure_active(page: PageRow) -> None:
    if not page.is_active:
        raise InvalidCredentialError(f"Page {page.name} is inactive and needs re-authentication")
