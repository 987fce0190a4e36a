"""
Bulk Import Tests.
"""

from datetime import timedelta

from PIL import ExifTags, Image
from PIL.TiffImagePlugin import IFDRational

from crataegus.app.core.exceptions import StorageIOError
from crataegus.app.models.enums import AltitudeFrame, Source
from crataegus.app.schemas.ingest import InvalidRow
from crataegus.app.services.exif import GPS, reading_from_exif
from crataegus.app.services.importer import import_photos, import_readings
from crataegus.tests.factories import USERNAME, make_reading


async def test_import_tallies_outcomes(service, store):
    base = make_reading().time_utc
    readings = [
        make_reading(time_utc=base),
        InvalidRow(line=3, error="bad time"),
        make_reading(time_utc=base + timedelta(seconds=1)),
        make_reading(time_utc=base),
    ]

    summary = await import_readings(service, USERNAME, readings)

    assert (summary.committed, summary.duplicate, summary.failed) == (2, 1, 1)
    assert summary.total == 4
    assert await store.count(USERNAME) == 2


async def test_record_failure_does_not_abort_import(service, store, mocker):
    original = service.ingest
    failing_time = make_reading().time_utc + timedelta(seconds=1)

    async def flaky_ingest(username, reading):
        if reading.time_utc == failing_time:
            raise StorageIOError("disk full")
        return await original(username, reading)

    mocker.patch.object(service, "ingest", side_effect=flaky_ingest)
    base = make_reading().time_utc
    readings = [make_reading(time_utc=base + timedelta(seconds=i)) for i in range(3)]

    summary = await import_readings(service, USERNAME, readings)

    assert (summary.committed, summary.duplicate, summary.failed) == (2, 0, 1)


async def test_import_photos(service, store, tmp_path, mocker):
    photo_reading = make_reading(altitude_frame=AltitudeFrame.MSL, source=Source.PHOTO)
    mocker.patch(
        "crataegus.app.services.importer.find_photo_readings",
        return_value=iter([(tmp_path / "IMG_0001.jpg", photo_reading)]),
    )

    summary = await import_photos(service, tmp_path, USERNAME)

    assert summary.committed == 1
    stored = await store.get(USERNAME, photo_reading.time_utc)
    assert stored.source == Source.PHOTO


async def test_photo_with_bad_timestamp_is_skipped(service, store, tmp_path, mocker):
    good = make_reading(altitude_frame=AltitudeFrame.MSL, source=Source.PHOTO)
    photos = {"IMG_0001.jpg": None, "IMG_0002.jpg": good}
    for name in photos:
        Image.new("RGB", (8, 8)).save(tmp_path / name)

    def read_photo(path):
        if path.name == "IMG_0001.jpg":
            return reading_from_exif(
                {
                    GPS.GPSLatitudeRef: "N",
                    GPS.GPSLatitude: (IFDRational(40), IFDRational(44), IFDRational(27)),
                    GPS.GPSLongitudeRef: "W",
                    GPS.GPSLongitude: (IFDRational(111), IFDRational(50), IFDRational(41)),
                    GPS.GPSAltitude: IFDRational(1398),
                },
                {ExifTags.Base.DateTimeOriginal: "0000:00:00 00:00:00"},
            )
        return photos[path.name]

    mocker.patch("crataegus.app.services.exif.read_photo", side_effect=read_photo)

    summary = await import_photos(service, tmp_path, USERNAME)

    assert (summary.committed, summary.duplicate, summary.failed) == (1, 0, 0)
    assert await store.count(USERNAME) == 1
