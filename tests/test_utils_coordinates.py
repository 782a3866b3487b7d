"""Tests for utils/coordinates.py."""

from datetime import UTC, datetime

import numpy as np
import pytest

from telescope_control.utils import coordinates
from telescope_control.utils.coordinates import (
    RaDec,
    format_dec_dms,
    format_ra_hms,
    j2000_to_jnow,
    jnow_to_j2000,
    radec_to_vector,
    vector_to_radec,
)

OBSTIME = datetime(2025, 1, 1, tzinfo=UTC)


class TestRaDec:
    def test_ra_is_normalized(self):
        assert RaDec(ra=370.0, dec=0.0).ra == pytest.approx(10.0)
        assert RaDec(ra=-15.0, dec=0.0).ra == pytest.approx(345.0)

    @pytest.mark.parametrize("dec", [-90.1, 90.5, 180.0])
    def test_declination_out_of_range(self, dec):
        with pytest.raises(ValueError, match="Declination"):
            RaDec(ra=0.0, dec=dec)

    def test_hours_conversion(self):
        coords = RaDec.from_hours(5.5, -5.0)
        assert coords.ra == pytest.approx(82.5)
        assert coords.ra_hours == pytest.approx(5.5)

    def test_to_dict(self):
        data = RaDec(ra=83.82, dec=-5.391).to_dict()
        assert data["ra_hms"] == "05h 35m 16.8s"
        assert data["dec_dms"].startswith("-05°")
        assert data["ra_hours"] == pytest.approx(83.82 / 15.0)


class TestPrecession:
    """Tests for J2000 <-> JNow conversion with astropy."""

    def test_j2000_to_jnow_moves_ra_forward(self):
        """Verifies precession over 25 years has the expected size.

        Arrangement:
        1. M42 in J2000 (RA 83.822, Dec -5.391).
        2. Fixed observation date 2025-01-01.

        Action:
        Precesses to the equinox of date.

        Assertion Strategy:
        General precession is about 50 arcsec/year, so RA grows by
        roughly 0.3 degrees at this declination while Dec changes by
        well under a tenth of a degree.
        """
        m42 = RaDec(ra=83.822, dec=-5.391)

        jnow = j2000_to_jnow(m42, OBSTIME)

        assert 0.25 < jnow.ra - m42.ra < 0.4
        assert abs(jnow.dec - m42.dec) < 0.1

    def test_round_trip(self):
        target = RaDec(ra=201.3, dec=-43.0)
        back = jnow_to_j2000(j2000_to_jnow(target, OBSTIME), OBSTIME)
        assert back.ra == pytest.approx(target.ra, abs=1e-6)
        assert back.dec == pytest.approx(target.dec, abs=1e-6)

    def test_default_obstime_is_now(self):
        jnow = j2000_to_jnow(RaDec(ra=10.0, dec=10.0))
        assert jnow != RaDec(ra=10.0, dec=10.0)


class TestVectors:
    def test_radec_to_vector_is_unit_length(self):
        vector = radec_to_vector(RaDec(ra=123.0, dec=45.0))
        assert np.linalg.norm(vector) == pytest.approx(1.0)

    @pytest.mark.parametrize(
        ("vector", "ra", "dec"),
        [
            ([1.0, 0.0, 0.0], 0.0, 0.0),
            ([0.0, 2.0, 0.0], 90.0, 0.0),
            ([0.0, 0.0, -5.0], 0.0, -90.0),
            ([-1.0, 0.0, 0.0], 180.0, 0.0),
        ],
    )
    def test_vector_to_radec(self, vector, ra, dec):
        coords = vector_to_radec(vector)
        assert coords.ra == pytest.approx(ra)
        assert coords.dec == pytest.approx(dec)

    def test_round_trip(self):
        coords = RaDec(ra=300.25, dec=-12.5)
        back = vector_to_radec(radec_to_vector(coords))
        assert back.ra == pytest.approx(coords.ra)
        assert back.dec == pytest.approx(coords.dec)

    @pytest.mark.parametrize("vector", [[0.0, 0.0, 0.0], [1.0, 0.0], [[1.0, 0.0, 0.0]]])
    def test_invalid_vectors(self, vector):
        with pytest.raises(ValueError):
            vector_to_radec(vector)


class TestFormatting:
    def test_format_ra_hms(self):
        assert format_ra_hms(0.0) == "00h 00m 00.0s"
        assert format_ra_hms(83.82) == "05h 35m 16.8s"

    def test_format_dec_dms(self):
        assert format_dec_dms(-5.391) == "-05° 23' 27.6\""
        assert format_dec_dms(45.5) == "+45° 30' 00.0\""

    def test_module_exports(self):
        for name in coordinates.__all__:
            assert hasattr(coordinates, name)
