"""Async engine and session factories."""

from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from promo_funnel.core.settings import settings


def create_engine(database_url: str, *, echo: bool = False) -> AsyncEngine:
    return create_async_engine(database_url, echo=echo, future=True)


engine = create_engine(settings.database_url, echo=settings.database_echo)
async_session = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


__all__ = ["async_session", "create_engine", "engine"]
