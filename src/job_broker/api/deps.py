"""FastAPI dependency injection providers.

These are used with Depends() in route handlers to inject database sessions,
collaborators, services, and configuration.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from job_broker.config import Settings, get_settings
from job_broker.infrastructure.database.engine import get_async_session, get_session_factory
from job_broker.services import (
    AccountService,
    BidService,
    Collaborators,
    JobService,
    ReliabilityService,
    SettlementService,
    WalletService,
    build_collaborators,
)


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session for a request."""
    async for session in get_async_session():
        yield session


def get_sessionmaker() -> async_sessionmaker[AsyncSession]:
    return get_session_factory()


def get_app_settings() -> Settings:
    """Provide the application settings."""
    return get_settings()


def get_collaborators(request: Request) -> Collaborators:
    """Collaborators built at startup; logging-only ones if the lifespan did not run."""
    collaborators = getattr(request.app.state, "collaborators", None)
    if collaborators is None:
        collaborators = build_collaborators(get_settings())
        request.app.state.collaborators = collaborators
    return collaborators


async def get_job_service(
    session: AsyncSession = Depends(get_db_session),
    collaborators: Collaborators = Depends(get_collaborators),
    settings: Settings = Depends(get_app_settings),
) -> JobService:
    return JobService(session, collaborators, settings)


async def get_bid_service(
    session: AsyncSession = Depends(get_db_session),
    collaborators: Collaborators = Depends(get_collaborators),
    settings: Settings = Depends(get_app_settings),
) -> BidService:
    return BidService(session, collaborators, settings)


async def get_wallet_service(
    session: AsyncSession = Depends(get_db_session),
    collaborators: Collaborators = Depends(get_collaborators),
    settings: Settings = Depends(get_app_settings),
) -> WalletService:
    return WalletService(session, collaborators, settings)


async def get_reliability_service(
    session: AsyncSession = Depends(get_db_session),
    collaborators: Collaborators = Depends(get_collaborators),
    settings: Settings = Depends(get_app_settings),
) -> ReliabilityService:
    return ReliabilityService(session, collaborators, settings)


async def get_account_service(
    session: AsyncSession = Depends(get_db_session),
    collaborators: Collaborators = Depends(get_collaborators),
    settings: Settings = Depends(get_app_settings),
) -> AccountService:
    return AccountService(session, collaborators, settings)


def get_settlement_service(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_sessionmaker),
    collaborators: Collaborators = Depends(get_collaborators),
    settings: Settings = Depends(get_app_settings),
) -> SettlementService:
    return SettlementService(session_factory, collaborators, settings)
