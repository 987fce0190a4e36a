"""
GPSLogger CSV reader.

Reads the app's CSV export in chunks so large files are never fully loaded.
"""

import logging
from pathlib import Path
from typing import Iterator, Union

import pandas as pd
from pydantic import ValidationError

from crataegus.app.core.config import settings
from crataegus.app.models.enums import AltitudeFrame
from crataegus.app.schemas.gpslogger import GpsLoggerCsvRow
from crataegus.app.schemas.ingest import InvalidRow
from crataegus.app.schemas.location import LocationReading

logger = logging.getLogger(__name__)


def read_gpslogger_csv(
    path: Union[str, Path],
    altitude_frame: AltitudeFrame = settings.gpslogger_altitude_frame,
    chunk_size: int = settings.import_chunk_size,
) -> Iterator[Union[LocationReading, InvalidRow]]:
    """
    Yield one reading per CSV row, or an InvalidRow for rows that do not parse.

    Args:
        path: GPSLogger CSV export
        altitude_frame: frame of the `elevation` column (the app's MSL setting)
        chunk_size: rows read per pandas chunk

    Raises:
        FileNotFoundError: if the file does not exist
    """
    filepath = Path(path)
    if not filepath.is_file():
        raise FileNotFoundError(path)

    # Everything as text, empty cells as "": the row schema does the typing
    chunks = pd.read_csv(filepath, dtype=str, keep_default_na=False, chunksize=chunk_size)
    for chunk in chunks:
        for index, row in zip(chunk.index, chunk.to_dict(orient="records")):
            line = int(index) + 2  # 1-based, after the header
            try:
                yield GpsLoggerCsvRow.model_validate(row).to_reading(altitude_frame)
            except ValidationError as e:
                logger.debug("Skipping %s line %d: %s", filepath.name, line, e)
                yield InvalidRow(line=line, error=str(e))
