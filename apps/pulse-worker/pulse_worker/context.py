"""Dependencies handed to every job handler."""

from collections.abc import Callable
from dataclasses import dataclass
from functools import partial

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from pulse_core.analysis import AnalysisEngine
from pulse_core.config.settings import Settings
from pulse_core.graph import GraphApiClient, RateLimiterRegistry
from pulse_core.queue import JobStore
from pulse_core.utils.clock import Clock, system_clock
from pulse_core.vault import CredentialVault


@dataclass
class HandlerContext:
    session_factory: async_sessionmaker[AsyncSession]
    store: JobStore
    vault: CredentialVault
    client_factory: Callable[[str], GraphApiClient]
    analysis: AnalysisEngine
    settings: Settings
    clock: Clock = system_clock


def build_context(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    clock: Clock = system_clock,
) -> HandlerContext:
    """Wire the production dependencies from settings.

    One RateLimiterRegistry is shared by every client built here, so all jobs
    using the same page token draw from the same request window.

    Raises:
        ValueError: ``ENCRYPTION_KEY`` is missing or malformed.
    """
    limiters = RateLimiterRegistry(
        max_requests=settings.graph_rate_limit_requests,
        window_seconds=settings.graph_rate_limit_window_seconds,
        clock=clock,
    )
    return HandlerContext(
        session_factory=session_factory,
        store=JobStore.from_settings(session_factory, settings, clock=clock),
        vault=CredentialVault.from_hex_key(settings.encryption_key),
        client_factory=partial(
            GraphApiClient.from_settings, settings=settings, limiters=limiters, clock=clock
        ),
        analysis=AnalysisEngine.from_settings(settings),
        settings=settings,
        clock=clock,
    )
