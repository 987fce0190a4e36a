"""
Location database model.

Stores one GPS fix per (username, time_utc). Records are append-only: once
committed they are never updated, only deleted.
"""

from typing import NamedTuple
from datetime import datetime

from sqlalchemy import Column, Float, String, Enum, event
from crataegus.app.db.session import Base
from crataegus.app.db.types import UTCDateTime, OffsetDateTime
from crataegus.app.models.enums import Source


class RecordId(NamedTuple):
    """Logical identity of a location record."""
    username: str
    time_utc: datetime


class Location(Base):
    """
    Location model.

    The composite primary key is the deduplication key: a second insert with
    the same (username, time_utc) violates it and is rejected.
    """
    __tablename__ = "locations"

    username = Column(String(100), primary_key=True)
    time_utc = Column(UTCDateTime(), primary_key=True)
    time_local = Column(OffsetDateTime(), nullable=False)

    # Canonical frame: WGS84 degrees, WGS84 ellipsoidal height in metres
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    altitude = Column(Float, nullable=False)
    accuracy = Column(Float, nullable=True)  # metres, absent for some sources

    # Stored by value with room to grow, no CHECK constraint on members
    source = Column(
        Enum(Source, values_callable=lambda members: [m.value for m in members],
             native_enum=False, create_constraint=False, length=32),
        nullable=False,
    )

    @property
    def record_id(self) -> RecordId:
        return RecordId(self.username, self.time_utc)

    def __repr__(self):
        return (
            f"<Location(username='{self.username}', time_utc={self.time_utc}, "
            f"lat={self.latitude}, lon={self.longitude}, alt={self.altitude})>"
        )


@event.listens_for(Location, "before_update")
def refuse_location_update(mapper, connection, target):
    raise ValueError(
        f"Location {target.record_id} is immutable; delete and reinsert to correct it"
    )
