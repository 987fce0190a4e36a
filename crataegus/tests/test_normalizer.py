"""
Coordinate Normalizer Tests.
"""

import math

import pytest
from pyproj.exceptions import ProjError

from crataegus.app.core.exceptions import TransformUnavailableError
from crataegus.app.models.enums import AltitudeFrame
from crataegus.app.services.normalizer import CoordinateNormalizer, GeoidContext
from crataegus.tests.factories import UNDULATION, FakeTransformer


def test_ellipsoidal_altitude_passes_through(normalizer, fake_transformer):
    result = normalizer.normalize(40.741045, -111.844905, 1398.906, AltitudeFrame.WGS84_ELLIPSOID)

    assert result == 1398.906
    assert fake_transformer.calls == 0


def test_msl_altitude_is_converted(normalizer):
    result = normalizer.normalize(40.741045, -111.844905, 1398.906, AltitudeFrame.MSL)

    assert result == pytest.approx(1398.906 + UNDULATION)


def test_transformer_built_once():
    builds = []

    def factory():
        builds.append(1)
        return FakeTransformer()

    geoid = GeoidContext(transformer_factory=factory)
    normalizer = CoordinateNormalizer(geoid)
    for _ in range(3):
        normalizer.normalize(10.0, 20.0, 100.0, AltitudeFrame.MSL)

    assert len(builds) == 1


def test_build_failure_is_transform_unavailable():
    def factory():
        raise ProjError("no such CRS")

    normalizer = CoordinateNormalizer(GeoidContext(transformer_factory=factory))

    with pytest.raises(TransformUnavailableError) as exc_info:
        normalizer.normalize(10.0, 20.0, 100.0, AltitudeFrame.MSL)
    assert isinstance(exc_info.value.__cause__, ProjError)


def test_execution_failure_is_transform_unavailable():
    class FailingTransformer:
        def transform(self, xx, yy, zz, errcheck=False):
            raise ProjError("grid not found")

    normalizer = CoordinateNormalizer(GeoidContext(transformer_factory=FailingTransformer))

    with pytest.raises(TransformUnavailableError):
        normalizer.normalize(10.0, 20.0, 100.0, AltitudeFrame.MSL)


def test_non_finite_result_is_transform_unavailable():
    class InfTransformer:
        def transform(self, xx, yy, zz, errcheck=False):
            return xx, yy, math.inf

    normalizer = CoordinateNormalizer(GeoidContext(transformer_factory=InfTransformer))

    with pytest.raises(TransformUnavailableError):
        normalizer.normalize(10.0, 20.0, 100.0, AltitudeFrame.MSL)


@pytest.mark.parametrize("altitude", [math.nan, math.inf])
def test_non_finite_input_is_transform_unavailable(normalizer, altitude):
    with pytest.raises(TransformUnavailableError):
        normalizer.normalize(10.0, 20.0, altitude, AltitudeFrame.MSL)


def test_real_geoid_is_deterministic():
    """Uses the installed PROJ data; skipped when the EGM2008 grid is unavailable."""
    geoid = GeoidContext()
    try:
        first = geoid.ellipsoidal_height(40.741045, -111.844905, 1398.906)
    except TransformUnavailableError as e:
        pytest.skip(f"geoid grid unavailable: {e.message}")
    second = geoid.ellipsoidal_height(40.741045, -111.844905, 1398.906)

    assert first == second
    # Geoid undulation is within about +-110 m everywhere on Earth
    assert abs(first - 1398.906) < 110
