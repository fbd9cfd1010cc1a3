"""
Per-scope mutual exclusion backed by the sync_leases table
"""

from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import AsyncIterator
from sqlalchemy import delete, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from core.exceptions import LeaseHeldError
from models.lease import SyncLease
import logging

logger = logging.getLogger(__name__)


class LeaseManager:
    """
    Acquire and release (source, scope_key) leases.

    Acquire is a single upsert that only replaces an existing lease once it
    has expired; the holder read back afterwards decides who won.
    """

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    @staticmethod
    def _insert(session: AsyncSession):
        if session.get_bind().dialect.name == "sqlite":
            return sqlite_insert(SyncLease)
        return pg_insert(SyncLease)

    async def acquire(self, source: str, scope_key: str, holder: str, ttl_seconds: int):
        now = datetime.now(timezone.utc)

        async with self.session_factory() as session:
            stmt = self._insert(session).values(
                source=source,
                scope_key=scope_key,
                holder=holder,
                acquired_at=now,
                expires_at=now + timedelta(seconds=ttl_seconds),
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=["source", "scope_key"],
                set_={
                    "holder": stmt.excluded.holder,
                    "acquired_at": stmt.excluded.acquired_at,
                    "expires_at": stmt.excluded.expires_at,
                },
                where=SyncLease.expires_at < now,
            )
            await session.execute(stmt)
            await session.commit()

            current = await session.scalar(
                select(SyncLease.holder).where(
                    SyncLease.source == source,
                    SyncLease.scope_key == scope_key,
                )
            )

        if current != holder:
            raise LeaseHeldError(
                f"Lease for {source}/{scope_key} is held by another run",
                context={"source": source, "scope_key": scope_key, "holder": current}
            )
        logger.debug(f"Acquired lease {source}/{scope_key} for {holder}")

    async def release(self, source: str, scope_key: str, holder: str):
        """Drop the lease if still held by holder; expiry covers a failed release"""
        try:
            async with self.session_factory() as session:
                await session.execute(
                    delete(SyncLease).where(
                        SyncLease.source == source,
                        SyncLease.scope_key == scope_key,
                        SyncLease.holder == holder,
                    )
                )
                await session.commit()
        except Exception as e:
            logger.error(f"Failed to release lease {source}/{scope_key} held by {holder}: {e}")
            return
        logger.debug(f"Released lease {source}/{scope_key} for {holder}")

    @asynccontextmanager
    async def hold(
        self,
        source: str,
        scope_key: str,
        holder: str,
        ttl_seconds: int = 1800
    ) -> AsyncIterator[None]:
        """
        Hold the lease for the duration of the block.

        Raises:
            LeaseHeldError: another holder has a lease that has not expired
        """
        await self.acquire(source, scope_key, holder, ttl_seconds)
        try:
            yield
        finally:
            await self.release(source, scope_key, holder)
