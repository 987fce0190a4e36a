"""
Backup snapshot schemas.

Snapshot files sit next to the live database and encode their creation time in
the file name, so they can be ordered by age without opening them:

    <db stem>.backup.<YYYYmmddTHHMMSSffffff>Z.sqlite
"""

import re
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel

SNAPSHOT_TIME_FORMAT = "%Y%m%dT%H%M%S%f"
PARTIAL_SUFFIX = ".partial"


class BackupSnapshot(BaseModel):
    """A point-in-time copy of the location store."""
    path: Path
    created_at: datetime

    @staticmethod
    def filename(stem: str, created_at: datetime) -> str:
        created_at = created_at.astimezone(timezone.utc)
        return f"{stem}.backup.{created_at.strftime(SNAPSHOT_TIME_FORMAT)}Z.sqlite"

    @classmethod
    def for_store(cls, stem: str, directory: Path, created_at: datetime) -> "BackupSnapshot":
        return cls(path=Path(directory) / cls.filename(stem, created_at), created_at=created_at)

    @classmethod
    def from_path(cls, path: Path, stem: str) -> Optional["BackupSnapshot"]:
        """Recognize a snapshot of the store named `stem`; None for any other file."""
        pattern = rf"{re.escape(stem)}\.backup\.(\d{{8}}T\d{{12}})Z\.sqlite"
        match = re.fullmatch(pattern, Path(path).name)
        if not match:
            return None
        created_at = datetime.strptime(match.group(1), SNAPSHOT_TIME_FORMAT).replace(tzinfo=timezone.utc)
        return cls(path=Path(path), created_at=created_at)

    @property
    def partial_path(self) -> Path:
        """Where the snapshot is written before it is renamed into place."""
        return self.path.with_name(self.path.name + PARTIAL_SUFFIX)


class BackupCycleReport(BaseModel):
    """Outcome of one snapshot + retention sweep."""
    snapshot: Optional[BackupSnapshot] = None
    error: Optional[str] = None
    sweep_error: Optional[str] = None
    deleted: List[BackupSnapshot] = []
    failed_deletions: List[BackupSnapshot] = []

    @property
    def succeeded(self) -> bool:
        return self.error is None and self.sweep_error is None and not self.failed_deletions
