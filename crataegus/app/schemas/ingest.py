"""
Ingestion and import result schemas.
"""

from pydantic import BaseModel

from crataegus.app.models.enums import IngestStatus
from crataegus.app.models.location import RecordId


class IngestResult(BaseModel):
    """Outcome of ingesting one reading. A duplicate is an expected outcome, not an error."""
    status: IngestStatus
    record_id: RecordId

    @property
    def duplicate(self) -> bool:
        return self.status == IngestStatus.DUPLICATE


class InvalidRow(BaseModel):
    """A source row that could not be turned into a reading."""
    line: int
    error: str


class ImportSummary(BaseModel):
    """Per-file tally of a bulk import; each record succeeds or fails on its own."""
    committed: int = 0
    duplicate: int = 0
    failed: int = 0

    @property
    def total(self) -> int:
        return self.committed + self.duplicate + self.failed


class GpsLoggerResponse(BaseModel):
    """Response after receiving a GPSLogger fix."""
    status: str  # accepted
    duplicate: bool
