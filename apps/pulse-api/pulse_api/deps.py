"""Shared dependencies for API endpoints."""

import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pulse_core.config.settings import get_settings
from pulse_core.db import close_engine, create_tables, get_session_factory
from pulse_core.queue import JobStore
from pulse_core.vault import CredentialVault

logger = logging.getLogger(__name__)

_session_factory: async_sessionmaker[AsyncSession] | None = None
_store: JobStore | None = None
_vault: CredentialVault | None = None


async def init_deps() -> None:
    """Initialize shared dependencies (called on app startup)."""
    global _session_factory, _store, _vault
    settings = get_settings()

    # Create tables if they don't exist
    await create_tables()

    _session_factory = get_session_factory()
    _store = JobStore.from_settings(_session_factory, settings)
    if settings.encryption_key:
        _vault = CredentialVault.from_hex_key(settings.encryption_key)
    else:
        logger.warning("ENCRYPTION_KEY not set; page connection is disabled")


async def close_deps() -> None:
    """Close shared dependencies (called on app shutdown)."""
    global _session_factory, _store, _vault
    _session_factory = _store = _vault = None
    await close_engine()


def get_store() -> JobStore:
    """Get the shared JobStore."""
    assert _store is not None, "JobStore not initialized — call init_deps() first"
    return _store


def get_db() -> async_sessionmaker[AsyncSession]:
    """Get the shared session factory."""
    assert _session_factory is not None, "Database not initialized — call init_deps() first"
    return _session_factory


def get_vault() -> CredentialVault | None:
    """Get the credential vault, or None when no key is configured."""
    return _vault
