"""
GPSLogger schemas.

The GPSLogger Android app sends one fix per request when its custom URL is
configured with the `%ALL` template, e.g.

    lat=41.74108695983887&lon=-91.84490871429443&sat=0&desc=&alt=1387.0&acc=6.0
    &dir=170.8125&prov=gps&spd_kph=0.0&spd=0.0&timestamp=1736999691
    &timeoffset=2025-01-15T20:54:51.000-07:00&time=2025-01-16T03:54:51.000Z
    &starttimestamp=1737000139&date=2025-01-16&batt=27.0&ischarging=false
    &aid=4ca9e1da592aca9b&ser=4ca9e1da592aca9b&act=&filename=20250115
    &profile=Default+Profile&hdop=&vdop=&pdop=&dist=0

Parsing the default template means users only set `%ALL` and app-side field
additions are absorbed here. Its CSV export has the same fix under different
column names.
"""

from datetime import datetime
from typing import Annotated, Optional
from urllib.parse import parse_qsl

from pydantic import BaseModel, BeforeValidator, Field

from crataegus.app.models.enums import AltitudeFrame, Source
from crataegus.app.schemas.location import LocationReading


def blank_to_none(v):
    """GPSLogger leaves unknown numeric fields empty rather than omitting them."""
    if isinstance(v, str) and v.strip() == "":
        return None
    return v


BlankFloat = Annotated[Optional[float], BeforeValidator(blank_to_none)]
BlankInt = Annotated[Optional[int], BeforeValidator(blank_to_none)]
BlankBool = Annotated[Optional[bool], BeforeValidator(blank_to_none)]
BlankStr = Annotated[Optional[str], BeforeValidator(blank_to_none)]


class GpsLoggerPayload(BaseModel):
    """One fix from the GPSLogger `%ALL` URL template."""
    lat: float = Field(..., ge=-90, le=90)
    lon: float = Field(..., ge=-180, le=180)
    alt: float
    acc: BlankFloat = None  # horizontal accuracy, metres
    time: datetime  # UTC
    timeoffset: datetime  # same instant with the phone's local offset

    # Reported but not stored
    sat: BlankInt = None
    desc: Optional[str] = None
    dir: BlankFloat = None
    prov: Optional[str] = None
    spd_kph: BlankFloat = None
    spd: BlankFloat = None
    timestamp: BlankInt = None
    starttimestamp: BlankInt = None
    date: BlankStr = None
    batt: BlankFloat = None
    ischarging: BlankBool = None
    aid: Optional[str] = None
    ser: Optional[str] = None
    act: Optional[str] = None
    filename: Optional[str] = None
    profile: Optional[str] = None
    hdop: BlankFloat = None
    vdop: BlankFloat = None
    pdop: BlankFloat = None
    dist: BlankFloat = None

    class Config:
        extra = "ignore"

    @classmethod
    def from_http_body(cls, body: str) -> "GpsLoggerPayload":
        """
        Parse a urlencoded `%ALL` string, as GPSLogger sends it in HTTP body mode.

        Helper for callers holding the raw string; the HTTP endpoint binds the
        same fields from the query string instead.
        """
        return cls.model_validate(dict(parse_qsl(body, keep_blank_values=True)))

    def to_reading(self, altitude_frame: AltitudeFrame) -> LocationReading:
        return LocationReading(
            time_utc=self.time,
            time_local=self.timeoffset,
            latitude=self.lat,
            longitude=self.lon,
            altitude=self.alt,
            altitude_frame=altitude_frame,
            accuracy=self.acc,
            source=Source.GPS_LOGGER,
        )


class GpsLoggerCsvRow(BaseModel):
    """
    One row of a GPSLogger CSV export.

    Header:
        time,lat,lon,elevation,accuracy,bearing,speed,satellites,provider,hdop,vdop,
        pdop,geoidheight,ageofdgpsdata,dgpsid,activity,battery,annotation,
        timestamp_ms,time_offset,distance,starttimestamp_ms,profile_name,
        battery_charging
    """
    time: datetime
    lat: float = Field(..., ge=-90, le=90)
    lon: float = Field(..., ge=-180, le=180)
    elevation: float
    accuracy: BlankFloat = None
    time_offset: datetime

    bearing: BlankFloat = None
    speed: BlankFloat = None
    satellites: BlankInt = None
    provider: Optional[str] = None
    hdop: BlankFloat = None
    vdop: BlankFloat = None
    pdop: BlankFloat = None
    geoidheight: BlankFloat = None
    ageofdgpsdata: BlankFloat = None
    dgpsid: BlankInt = None
    activity: BlankStr = None
    battery: BlankFloat = None
    annotation: BlankStr = None
    timestamp_ms: BlankInt = None
    distance: BlankFloat = None
    starttimestamp_ms: BlankInt = None
    profile_name: Optional[str] = None
    battery_charging: BlankBool = None

    class Config:
        extra = "ignore"

    def to_reading(self, altitude_frame: AltitudeFrame) -> LocationReading:
        return LocationReading(
            time_utc=self.time,
            time_local=self.time_offset,
            latitude=self.lat,
            longitude=self.lon,
            altitude=self.elevation,
            altitude_frame=altitude_frame,
            accuracy=self.accuracy,
            source=Source.GPS_LOGGER,
        )
