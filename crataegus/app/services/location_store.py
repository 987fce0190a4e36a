"""
Location store service.

Durable per-user storage of location records in a SQLite database, keyed by
(username, time_utc). Inserts are serialized through a single writer; reads and
snapshots run in their own transactions and are never queued behind it.
"""

import asyncio
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import AsyncIterator, List, Optional

from sqlalchemy import delete, func, insert, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from crataegus.app.core.exceptions import (
    DuplicateRecordError,
    StorageIOError,
    UnknownUserError,
)
from crataegus.app.core.security import get_password_hash, verify_password
from crataegus.app.db.session import Base, create_session_factory, create_store_engine
from crataegus.app.models.location import Location
from crataegus.app.models.user import User
from crataegus.app.schemas.backup import BackupSnapshot

logger = logging.getLogger(__name__)


class LocationStore:
    """
    Async facade over the location database.

    Args:
        engine: engine bound to the SQLite file at `path`
        path: database file; snapshots are written next to it by default
    """

    def __init__(self, engine: AsyncEngine, path: Path):
        self.engine = engine
        self.path = Path(path)
        self._session_factory = create_session_factory(engine)
        self._write_lock = asyncio.Lock()

    @classmethod
    def from_path(cls, path: Path, **engine_kwargs) -> "LocationStore":
        return cls(create_store_engine(Path(path), **engine_kwargs), Path(path))

    async def initialize(self) -> None:
        """
        Open the database and create missing tables.

        Raises:
            StorageIOError: if the file cannot be opened or created
        """
        try:
            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except (SQLAlchemyError, OSError) as e:
            logger.error("Cannot open location store at %s: %s", self.path, e)
            raise StorageIOError(
                f"Cannot open location store at {self.path}",
                details={"path": str(self.path), "cause": str(e)}
            ) from e
        logger.info("Location store ready at %s", self.path)

    async def close(self) -> None:
        await self.engine.dispose()

    # Users

    async def add_user(self, username: str, password: str) -> User:
        """
        Create a user.

        Raises:
            IntegrityError: if the username is taken
            StorageIOError: if the database cannot be written
        """
        user = User(username=username, hashed_password=get_password_hash(password))
        async with self._write_lock:
            async with self._session_factory() as session:
                session.add(user)
                try:
                    await session.commit()
                except IntegrityError:
                    await session.rollback()
                    raise
                except SQLAlchemyError as e:
                    await session.rollback()
                    raise self._io_error("add user", e) from e
        logger.info("Added user %s", username)
        return user

    async def user_exists(self, username: str) -> bool:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(User.username).where(User.username == username)
                )
                return result.scalar_one_or_none() is not None
        except SQLAlchemyError as e:
            raise self._io_error("look up user", e) from e

    async def check_credentials(self, username: str, password: str) -> bool:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(User.hashed_password).where(User.username == username)
                )
                hashed = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise self._io_error("check credentials", e) from e
        return hashed is not None and verify_password(password, hashed)

    async def delete_user(self, username: str) -> int:
        """
        Remove a user account and every location recorded for it.

        Returns:
            Number of location records removed
        """
        async with self._write_lock:
            async with self._session_factory() as session:
                try:
                    result = await session.execute(
                        delete(Location).where(Location.username == username)
                    )
                    await session.execute(delete(User).where(User.username == username))
                    await session.commit()
                except SQLAlchemyError as e:
                    await session.rollback()
                    raise self._io_error("delete user", e) from e
        logger.info("Deleted user %s and %d locations", username, result.rowcount)
        return result.rowcount

    # Locations

    async def insert(self, record: Location, require_user: bool = False) -> None:
        """
        Commit one location record.

        The record is either fully durable when this returns or absent.

        Args:
            record: values to store; the object itself is never attached to a session
            require_user: re-check that the owner exists inside the write transaction

        Raises:
            DuplicateRecordError: if (username, time_utc) is already stored
            UnknownUserError: if require_user is set and the owner does not exist
            StorageIOError: if the database cannot be written
        """
        async with self._write_lock:
            async with self._session_factory() as session:
                try:
                    if require_user:
                        owner = await session.execute(
                            select(User.username).where(User.username == record.username)
                        )
                        if owner.scalar_one_or_none() is None:
                            raise UnknownUserError(record.username)
                    await session.execute(insert(Location).values(**self._row(record)))
                    await session.commit()
                except IntegrityError as e:
                    await session.rollback()
                    if "UNIQUE" not in str(e.orig):
                        raise self._io_error("insert location", e) from e
                    raise DuplicateRecordError(record.username, record.time_utc) from e
                except SQLAlchemyError as e:
                    await session.rollback()
                    raise self._io_error("insert location", e) from e

    async def get(self, username: str, time_utc: datetime) -> Optional[Location]:
        try:
            async with self._session_factory() as session:
                return await session.get(Location, (username, time_utc))
        except SQLAlchemyError as e:
            raise self._io_error("read location", e) from e

    async def delete(self, username: str, time_utc: datetime) -> bool:
        """Delete one record. Returns False if it did not exist."""
        async with self._write_lock:
            async with self._session_factory() as session:
                try:
                    result = await session.execute(
                        delete(Location).where(
                            Location.username == username,
                            Location.time_utc == time_utc
                        )
                    )
                    await session.commit()
                except SQLAlchemyError as e:
                    await session.rollback()
                    raise self._io_error("delete location", e) from e
        return result.rowcount > 0

    async def count(self, username: Optional[str] = None) -> int:
        query = select(func.count()).select_from(Location)
        if username is not None:
            query = query.where(Location.username == username)
        try:
            async with self._session_factory() as session:
                result = await session.execute(query)
                return result.scalar()
        except SQLAlchemyError as e:
            raise self._io_error("count locations", e) from e

    async def query_range(
        self,
        username: str,
        start: Optional[datetime] = None,
        stop: Optional[datetime] = None,
    ) -> AsyncIterator[Location]:
        """
        Stream a user's records with start <= time_utc < stop, oldest first.

        Either bound may be None for an open end. Each call runs a fresh query,
        so the same bounds yield the same records absent concurrent writes.
        """
        query = select(Location).where(Location.username == username)
        if start is not None:
            query = query.where(Location.time_utc >= start)
        if stop is not None:
            query = query.where(Location.time_utc < stop)
        query = query.order_by(Location.time_utc)

        try:
            async with self._session_factory() as session:
                result = await session.stream_scalars(query)
                async for location in result:
                    yield location
        except SQLAlchemyError as e:
            raise self._io_error("query locations", e) from e

    async def list_range(
        self,
        username: str,
        start: Optional[datetime] = None,
        stop: Optional[datetime] = None,
    ) -> List[Location]:
        return [location async for location in self.query_range(username, start, stop)]

    # Snapshots

    async def snapshot(
        self,
        directory: Optional[Path] = None,
        created_at: Optional[datetime] = None,
    ) -> BackupSnapshot:
        """
        Write a consistent point-in-time copy of the database.

        VACUUM INTO reads inside one transaction, so the copy holds exactly the
        records committed before it started while inserts keep going. The copy
        is written under a partial name and renamed once complete.

        Raises:
            StorageIOError: if the copy cannot be written
        """
        snapshot = BackupSnapshot.for_store(
            self.path.stem,
            Path(directory) if directory is not None else self.path.parent,
            created_at or datetime.now(timezone.utc),
        )
        partial = snapshot.partial_path
        target = str(partial).replace("'", "''")
        try:
            if partial.exists():
                partial.unlink()
            async with self.engine.connect() as conn:
                conn = await conn.execution_options(isolation_level="AUTOCOMMIT")
                await conn.exec_driver_sql(f"VACUUM INTO '{target}'")
            os.replace(partial, snapshot.path)
        except (SQLAlchemyError, OSError) as e:
            logger.error("Snapshot to %s failed: %s", snapshot.path, e)
            raise StorageIOError(
                f"Cannot write snapshot {snapshot.path}",
                details={"path": str(snapshot.path), "cause": str(e)}
            ) from e
        logger.info("Wrote snapshot %s", snapshot.path)
        return snapshot

    @staticmethod
    def _row(record: Location) -> dict:
        return {column.key: getattr(record, column.key) for column in Location.__table__.columns}

    def _io_error(self, action: str, cause: Exception) -> StorageIOError:
        logger.error("Location store failed to %s: %s", action, cause)
        return StorageIOError(
            f"Location store failed to {action}",
            details={"path": str(self.path), "cause": str(cause)}
        )
