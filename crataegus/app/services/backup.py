"""
Backup and retention service.

Takes periodic snapshots of the location store and prunes old ones. A failed
cycle is logged and reported; it never stops ingestion or the next cycle.
"""

import asyncio
import logging
import shutil
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List, Optional

from crataegus.app.core.config import Settings, settings
from crataegus.app.core.exceptions import BackupError, StorageIOError
from crataegus.app.schemas.backup import PARTIAL_SUFFIX, BackupCycleReport, BackupSnapshot
from crataegus.app.services.location_store import LocationStore

logger = logging.getLogger(__name__)


class RetentionPolicy:
    """
    Which snapshots to keep.

    A snapshot is expired if it is older than `max_age` or is not among the
    newest `max_count`. The newest snapshot is always kept.
    """

    def __init__(self, max_age: Optional[timedelta] = None, max_count: Optional[int] = None):
        if max_count is not None and max_count < 1:
            raise ValueError("max_count must be at least 1")
        if max_age is not None and max_age <= timedelta(0):
            raise ValueError("max_age must be positive")
        self.max_age = max_age
        self.max_count = max_count

    def expired(self, snapshots: List[BackupSnapshot], now: datetime) -> List[BackupSnapshot]:
        """Return the snapshots to delete, oldest first."""
        newest_first = sorted(snapshots, key=lambda s: s.created_at, reverse=True)
        expired = []
        for position, snapshot in enumerate(newest_first):
            if position == 0:
                continue
            too_many = self.max_count is not None and position >= self.max_count
            too_old = self.max_age is not None and now - snapshot.created_at > self.max_age
            if too_many or too_old:
                expired.append(snapshot)
        return list(reversed(expired))


class BackupManager:
    """
    Creates, lists, prunes and restores snapshots of one location store.

    Args:
        store: the live store
        policy: retention policy applied after each snapshot
        backup_dir: where snapshots live (default: next to the database)
    """

    def __init__(
        self,
        store: LocationStore,
        policy: RetentionPolicy,
        backup_dir: Optional[Path] = None,
    ):
        self.store = store
        self.policy = policy
        self.backup_dir = Path(backup_dir) if backup_dir is not None else store.path.parent

    @classmethod
    def from_settings(cls, store: LocationStore, config: Settings = settings) -> "BackupManager":
        max_age = (
            timedelta(days=config.backup_max_age_days)
            if config.backup_max_age_days else None
        )
        return cls(
            store,
            RetentionPolicy(max_age=max_age, max_count=config.backup_max_count),
            backup_dir=config.backup_dir,
        )

    async def list_snapshots(self) -> List[BackupSnapshot]:
        """Snapshots of this store, oldest first."""
        return await asyncio.to_thread(self._list_snapshots)

    def _list_snapshots(self) -> List[BackupSnapshot]:
        if not self.backup_dir.is_dir():
            return []
        snapshots = []
        for path in self.backup_dir.iterdir():
            snapshot = BackupSnapshot.from_path(path, self.store.path.stem)
            if snapshot is not None:
                snapshots.append(snapshot)
        return sorted(snapshots, key=lambda s: s.created_at)

    async def create_snapshot(self, created_at: Optional[datetime] = None) -> BackupSnapshot:
        """
        Raises:
            StorageIOError: if the snapshot cannot be written
        """
        self.backup_dir.mkdir(parents=True, exist_ok=True)
        return await self.store.snapshot(self.backup_dir, created_at)

    async def sweep(self, now: Optional[datetime] = None) -> BackupCycleReport:
        """
        Delete expired snapshots and leftovers of interrupted snapshots.

        Safe to repeat: a snapshot that could not be deleted, or a directory
        that could not be listed, is reported and picked up again by the next
        sweep.
        """
        return await asyncio.to_thread(self._sweep, now or datetime.now(timezone.utc))

    def _sweep(self, now: datetime) -> BackupCycleReport:
        report = BackupCycleReport()
        try:
            self._remove_partials()
            snapshots = self._list_snapshots()
        except OSError as e:
            logger.error("Cannot list backups in %s: %s", self.backup_dir, e)
            report.sweep_error = str(e)
            return report

        for snapshot in self.policy.expired(snapshots, now):
            try:
                snapshot.path.unlink()
            except FileNotFoundError:
                report.deleted.append(snapshot)
            except OSError as e:
                logger.error("Cannot delete expired snapshot %s: %s", snapshot.path, e)
                report.failed_deletions.append(snapshot)
            else:
                logger.info("Deleted expired snapshot %s", snapshot.path)
                report.deleted.append(snapshot)
        return report

    def _remove_partials(self) -> None:
        if not self.backup_dir.is_dir():
            return
        prefix = f"{self.store.path.stem}.backup."
        for leftover in list(self.backup_dir.glob(f"{prefix}*{PARTIAL_SUFFIX}")):
            try:
                leftover.unlink()
                logger.info("Removed incomplete snapshot %s", leftover)
            except OSError as e:
                logger.warning("Cannot remove incomplete snapshot %s: %s", leftover, e)

    async def run_backup_cycle(self, now: Optional[datetime] = None) -> BackupCycleReport:
        """Snapshot the store, then apply retention. Never raises on I/O failure."""
        now = now or datetime.now(timezone.utc)
        snapshot = None
        error = None
        try:
            snapshot = await self.create_snapshot(now)
        except (StorageIOError, OSError) as e:
            error = str(e)
            logger.error("Backup of %s failed: %s", self.store.path, e)

        report = await self.sweep(now)
        report.snapshot = snapshot
        report.error = error
        return report

    async def run_periodically(self, interval: timedelta) -> None:
        """Run a backup cycle every `interval` until cancelled; a failed cycle never ends the loop."""
        seconds = interval.total_seconds()
        if seconds <= 0:
            raise ValueError("interval must be positive")
        logger.info("Backups of %s every %s", self.store.path, interval)
        while True:
            await asyncio.sleep(seconds)
            try:
                report = await self.run_backup_cycle()
            except Exception:
                logger.exception("Backup cycle of %s crashed", self.store.path)
                continue
            if not report.succeeded:
                logger.warning(
                    "Backup cycle incomplete: error=%s, sweep error=%s, failed deletions=%d",
                    report.error, report.sweep_error, len(report.failed_deletions)
                )

    async def restore(self, snapshot: BackupSnapshot, destination: Path) -> Path:
        """
        Copy a snapshot to `destination`, a new database path.

        Raises:
            BackupError: if the destination exists or the copy fails
        """
        destination = Path(destination)
        if destination.exists():
            raise BackupError(
                f"Refusing to overwrite {destination}",
                details={"snapshot": str(snapshot.path), "destination": str(destination)}
            )
        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            await asyncio.to_thread(shutil.copy2, snapshot.path, destination)
        except OSError as e:
            raise BackupError(
                f"Cannot restore {snapshot.path}",
                details={"destination": str(destination), "cause": str(e)}
            ) from e
        logger.info("Restored %s to %s", snapshot.path, destination)
        return destination
