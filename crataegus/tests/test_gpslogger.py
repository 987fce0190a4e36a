"""
GPSLogger Payload, CSV Reader and Import Tests.
"""

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from crataegus.app.core.exceptions import UnknownUserError
from crataegus.app.models.enums import AltitudeFrame, Source
from crataegus.app.schemas.gpslogger import GpsLoggerPayload
from crataegus.app.schemas.ingest import InvalidRow
from crataegus.app.schemas.location import LocationReading
from crataegus.app.services.gpslogger_csv import read_gpslogger_csv
from crataegus.app.services.importer import import_gpslogger_csv
from crataegus.tests.factories import UNDULATION, USERNAME

HTTP_BODY = (
    "lat=41.74108695983887&lon=-91.84490871429443&sat=0&desc=&alt=1387.0&acc=6.0"
    "&dir=170.8125&prov=gps&spd_kph=0.0&spd=0.0&timestamp=1736999691"
    "&timeoffset=2025-01-15T20:54:51.000-07:00&time=2025-01-16T03:54:51.000Z"
    "&starttimestamp=1737000139&date=2025-01-16&batt=27.0&ischarging=false"
    "&aid=4ca9e1da592aca9b&ser=4ca9e1da592aca9b&act=&filename=20250115"
    "&profile=Default+Profile&hdop=&vdop=&pdop=&dist=0"
)

CSV_DATA = """time,lat,lon,elevation,accuracy,bearing,speed,satellites,provider,hdop,vdop,pdop,geoidheight,ageofdgpsdata,dgpsid,activity,battery,annotation,timestamp_ms,time_offset,distance,starttimestamp_ms,profile_name,battery_charging
2025-01-24T07:02:29.168Z,24.240779519081116,-11.84485614299774,1476.0,48.0,,0.0,0,gps,,,,,,,,64,,1737702149168,2025-01-24T00:02:29.168-07:00,14780.376051140634,1737686054899,Default Profile,false
2025-01-24T07:23:55.551Z,24.241143584251404,-11.84490287303925,1411.0,48.0,,0.0,0,gps,,,,,,,,63,,1737703435551,2025-01-24T00:23:55.551-07:00,14821.04923758446,1737686054899,Default Profile,false
2025-01-24T07:30:20.375Z,24.241090416908264,-11.84478521347046,1355.0,48.0,,0.0,0,gps,,,,,,,,62,,1737703820375,2025-01-24T00:30:20.375-07:00,14832.590979680575,1737686054899,Default Profile,false
2025-01-24T07:36:54.148Z,24.24091112613678,-11.8446295261383,1414.0,48.0,,0.0,0,gps,,,,,,,,62,,1737704214148,2025-01-24T00:36:54.148-07:00,14856.455069256903,1737686054899,Default Profile,false
2025-01-24T07:40:35.889Z,24.2408287525177,-11.84476947784424,1472.0,48.0,,0.0,0,gps,,,,,,,,62,,1737704435889,2025-01-24T00:40:35.889-07:00,14871.385559872322,1737686054899,Default Profile,false
2025-01-25T07:34:09.909Z,24.7410617163024,-11.84486579207021,1378.333910142936,7.7476687,,,0,gps,,,,,,,,60,,1737790449909,2025-01-25T00:34:09.909-07:00,7081.54436921358,1737783655597,Default Profile,false
"""

FIRST_ROW_TIME = datetime(2025, 1, 24, 7, 2, 29, 168000, tzinfo=timezone.utc)


@pytest.fixture
def csv_file(tmp_path):
    path = tmp_path / "20250124.csv"
    path.write_text(CSV_DATA)
    return path


def test_payload_from_http_body():
    payload = GpsLoggerPayload.from_http_body(HTTP_BODY)

    assert payload.lat == 41.74108695983887
    assert payload.lon == -91.84490871429443
    assert payload.alt == 1387.0
    assert payload.acc == 6.0
    assert payload.time == datetime(2025, 1, 16, 3, 54, 51, tzinfo=timezone.utc)
    assert payload.timeoffset.utcoffset() == timedelta(hours=-7)
    assert payload.hdop is None
    assert payload.ischarging is False
    assert payload.profile == "Default Profile"


def test_payload_to_reading():
    reading = GpsLoggerPayload.from_http_body(HTTP_BODY).to_reading(AltitudeFrame.MSL)

    assert reading.time_utc == datetime(2025, 1, 16, 3, 54, 51, tzinfo=timezone.utc)
    assert reading.time_local == reading.time_utc
    assert reading.altitude_frame == AltitudeFrame.MSL
    assert reading.accuracy == 6.0
    assert reading.source == Source.GPS_LOGGER


def test_payload_blank_accuracy_is_absent():
    payload = GpsLoggerPayload.from_http_body(HTTP_BODY.replace("acc=6.0", "acc="))

    assert payload.acc is None
    assert payload.to_reading(AltitudeFrame.MSL).accuracy is None


def test_payload_missing_time_is_invalid():
    body = HTTP_BODY.replace("&time=2025-01-16T03:54:51.000Z", "")

    with pytest.raises(ValidationError):
        GpsLoggerPayload.from_http_body(body)


def test_payload_out_of_range_latitude_is_invalid():
    with pytest.raises(ValidationError):
        GpsLoggerPayload.from_http_body(HTTP_BODY.replace("lat=41.74108695983887", "lat=91.0"))


def test_read_csv(csv_file):
    readings = list(read_gpslogger_csv(csv_file, AltitudeFrame.MSL, chunk_size=4))

    assert len(readings) == 6
    assert all(isinstance(r, LocationReading) for r in readings)

    first = readings[0]
    assert first.time_utc == FIRST_ROW_TIME
    assert first.time_local.isoformat() == "2025-01-24T00:02:29.168000-07:00"
    assert first.latitude == 24.240779519081116
    assert first.longitude == -11.84485614299774
    assert first.altitude == 1476.0
    assert first.accuracy == 48.0
    assert first.source == Source.GPS_LOGGER

    last = readings[5]
    assert last.time_utc == datetime(2025, 1, 25, 7, 34, 9, 909000, tzinfo=timezone.utc)
    assert last.altitude == 1378.333910142936
    assert last.accuracy == 7.7476687


def test_read_csv_reports_invalid_rows(tmp_path):
    lines = CSV_DATA.splitlines()
    lines[2] = lines[2].replace("2025-01-24T07:23:55.551Z", "not a time")
    path = tmp_path / "broken.csv"
    path.write_text("\n".join(lines) + "\n")

    readings = list(read_gpslogger_csv(path, AltitudeFrame.MSL))

    assert isinstance(readings[1], InvalidRow)
    assert readings[1].line == 3
    assert sum(isinstance(r, LocationReading) for r in readings) == 5


def test_read_csv_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        list(read_gpslogger_csv(tmp_path / "missing.csv"))


async def test_import_counts_duplicates(service, store, csv_file):
    first = next(iter(read_gpslogger_csv(csv_file, AltitudeFrame.MSL)))
    await service.ingest(USERNAME, first)

    summary = await import_gpslogger_csv(service, csv_file, USERNAME, AltitudeFrame.MSL)

    assert summary.committed == 5
    assert summary.duplicate == 1
    assert summary.failed == 0
    assert await store.count(USERNAME) == 6

    stored = await store.get(USERNAME, FIRST_ROW_TIME)
    assert stored.altitude == pytest.approx(1476.0 + UNDULATION)


async def test_import_is_idempotent(service, store, csv_file):
    await import_gpslogger_csv(service, csv_file, USERNAME)
    summary = await import_gpslogger_csv(service, csv_file, USERNAME)

    assert summary.duplicate == 6
    assert summary.committed == 0
    assert await store.count(USERNAME) == 6


async def test_import_for_unknown_user_aborts(service, store, csv_file):
    with pytest.raises(UnknownUserError):
        await import_gpslogger_csv(service, csv_file, "ghost")
    assert await store.count() == 0
