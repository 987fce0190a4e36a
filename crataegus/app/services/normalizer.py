"""
Altitude normalization service.

Every stored altitude is a WGS84 ellipsoidal height. Sources that report height
above mean sea level (GPSLogger with its MSL option, EXIF GPSAltitude) are
converted with a geoid model, which needs the full 3D position because the
geoid undulation varies with latitude and longitude.
"""

import logging
import math
import threading
from typing import Callable, Optional

from pyproj import CRS, Transformer
from pyproj import network as proj_network
from pyproj.exceptions import ProjError

from crataegus.app.core.config import settings
from crataegus.app.core.exceptions import TransformUnavailableError
from crataegus.app.models.enums import AltitudeFrame

logger = logging.getLogger(__name__)


class GeoidContext:
    """
    Owns the MSL -> ellipsoidal height transformer.

    The transformer is built on first use, exactly once, and is read-only
    afterwards so concurrent ingestion calls share it without locking.

    Args:
        source_crs: compound CRS of incoming MSL heights (default WGS 84 + EGM2008)
        target_crs: 3D geographic CRS of stored heights (default WGS 84 3D)
        network_enabled: allow PROJ to fetch geoid grids from its CDN
        transformer_factory: override how the transformer is built
    """

    def __init__(
        self,
        source_crs: str = settings.geoid_source_crs,
        target_crs: str = settings.geoid_target_crs,
        network_enabled: bool = settings.geoid_network_enabled,
        transformer_factory: Optional[Callable[[], Transformer]] = None,
    ):
        self.source_crs = source_crs
        self.target_crs = target_crs
        self.network_enabled = network_enabled
        self._transformer_factory = transformer_factory or self._build_transformer
        self._transformer = None
        self._lock = threading.Lock()

    def _build_transformer(self) -> Transformer:
        proj_network.set_network_enabled(active=self.network_enabled)
        # only_best: refuse to silently fall back to a ballpark (geoid-less) operation
        return Transformer.from_crs(
            CRS(self.source_crs),
            CRS(self.target_crs),
            always_xy=True,
            only_best=True,
        )

    @property
    def transformer(self) -> Transformer:
        if self._transformer is None:
            with self._lock:
                if self._transformer is None:
                    try:
                        self._transformer = self._transformer_factory()
                    except ProjError as e:
                        raise TransformUnavailableError(
                            f"Failed to build transform {self.source_crs} -> {self.target_crs}",
                            details={"cause": str(e)}
                        ) from e
                    logger.info("Geoid transform ready: %s -> %s", self.source_crs, self.target_crs)
        return self._transformer

    def ellipsoidal_height(self, latitude: float, longitude: float, msl_height: float) -> float:
        position = {"latitude": latitude, "longitude": longitude, "altitude": msl_height}
        if any(v is None or not math.isfinite(v) for v in position.values()):
            raise TransformUnavailableError("Position is incomplete", details=position)

        transformer = self.transformer
        try:
            _, _, height = transformer.transform(longitude, latitude, msl_height, errcheck=True)
        except ProjError as e:
            raise TransformUnavailableError(
                f"Failed to convert [lat={latitude} deg, lon={longitude} deg, msl={msl_height} m]",
                details={**position, "cause": str(e)}
            ) from e

        if not math.isfinite(height):
            raise TransformUnavailableError(
                f"Transform produced no height for [lat={latitude} deg, lon={longitude} deg]",
                details=position
            )
        return height


class CoordinateNormalizer:
    """Converts altitudes from a source's reference frame to the canonical frame."""

    def __init__(self, geoid: GeoidContext):
        self.geoid = geoid

    def normalize(
        self,
        latitude: float,
        longitude: float,
        altitude: float,
        frame: AltitudeFrame,
    ) -> float:
        """
        Return `altitude` as a WGS84 ellipsoidal height.

        Raises:
            TransformUnavailableError: if an MSL height cannot be converted
        """
        if frame == AltitudeFrame.WGS84_ELLIPSOID:
            return altitude
        if frame == AltitudeFrame.MSL:
            return self.geoid.ellipsoidal_height(latitude, longitude, altitude)
        raise TransformUnavailableError(f"Unsupported altitude frame {frame!r}")
