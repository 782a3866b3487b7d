"""Equatorial coordinate helpers for telescope slews and position reports.

Telescopes are driven either in the J2000 frame or in the frame of the
current date (JNow). Goto targets arrive in J2000 and are precessed to
JNow with astropy's FK5 frame when a telescope's descriptor asks for it;
positions reported in JNow are converted back for display.

Direction vectors (unit vectors on the celestial sphere, as produced by
sky-view hosts) are converted with numpy.

Example:
    >>> from telescope_control.utils.coordinates import RaDec, j2000_to_jnow
    >>> m42 = RaDec(ra=83.822, dec=-5.391)
    >>> now = j2000_to_jnow(m42)
    >>> print(format_ra_hms(now.ra), format_dec_dms(now.dec))
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime

import numpy as np
from astropy import units as u
from astropy.coordinates import FK5, SkyCoord
from astropy.time import Time

__all__ = [
    "RaDec",
    "j2000_to_jnow",
    "jnow_to_j2000",
    "radec_to_vector",
    "vector_to_radec",
    "format_ra_hms",
    "format_dec_dms",
]


@dataclass(frozen=True)
class RaDec:
    """Equatorial coordinates in degrees.

    Attributes:
        ra: Right Ascension in degrees, normalized to [0, 360).
        dec: Declination in degrees, [-90, +90].
    """

    ra: float
    dec: float

    def __post_init__(self) -> None:
        if not -90.0 <= self.dec <= 90.0:
            raise ValueError(f"Declination must be in [-90, 90], got {self.dec}")
        object.__setattr__(self, "ra", self.ra % 360.0)

    @classmethod
    def from_hours(cls, ra_hours: float, dec: float) -> RaDec:
        """Build from RA in hours (0-24) and Dec in degrees."""
        return cls(ra=ra_hours * 15.0, dec=dec)

    @property
    def ra_hours(self) -> float:
        """Right Ascension in hours (0-24)."""
        return self.ra / 15.0

    def to_dict(self) -> dict[str, float | str]:
        """JSON-friendly representation with formatted strings."""
        return {
            "ra": self.ra,
            "dec": self.dec,
            "ra_hours": self.ra_hours,
            "ra_hms": format_ra_hms(self.ra),
            "dec_dms": format_dec_dms(self.dec),
        }


def _precess(coords: RaDec, source: Time, target: Time) -> RaDec:
    sky = SkyCoord(ra=coords.ra * u.deg, dec=coords.dec * u.deg, frame=FK5(equinox=source))
    moved = sky.transform_to(FK5(equinox=target))
    return RaDec(ra=float(moved.ra.deg), dec=float(moved.dec.deg))


def j2000_to_jnow(coords: RaDec, obstime: datetime | None = None) -> RaDec:
    """Precess J2000 coordinates to the equinox of ``obstime``.

    Args:
        coords: Coordinates in the J2000 frame.
        obstime: Date of the target equinox in UTC. Defaults to now.

    Returns:
        Coordinates referred to the mean equinox of date.

    Example:
        >>> jnow = j2000_to_jnow(RaDec(ra=83.822, dec=-5.391))
        >>> round(jnow.ra - 83.822, 1)  # roughly 0.3 deg after 25 years
        0.3
    """
    if obstime is None:
        obstime = datetime.now(UTC)
    return _precess(coords, Time("J2000"), Time(obstime))


def jnow_to_j2000(coords: RaDec, obstime: datetime | None = None) -> RaDec:
    """Inverse of j2000_to_jnow()."""
    if obstime is None:
        obstime = datetime.now(UTC)
    return _precess(coords, Time(obstime), Time("J2000"))


def radec_to_vector(coords: RaDec) -> np.ndarray:
    """Convert coordinates to a unit direction vector (x, y, z)."""
    ra = np.radians(coords.ra)
    dec = np.radians(coords.dec)
    return np.array(
        [np.cos(dec) * np.cos(ra), np.cos(dec) * np.sin(ra), np.sin(dec)]
    )


def vector_to_radec(vector: np.ndarray | list[float] | tuple[float, ...]) -> RaDec:
    """Convert a direction vector of any non-zero length to coordinates.

    Raises:
        ValueError: If the vector is not 3-dimensional or has zero length.

    Example:
        >>> vector_to_radec([0.0, 1.0, 0.0])
        RaDec(ra=90.0, dec=0.0)
    """
    xyz = np.asarray(vector, dtype=float)
    if xyz.shape != (3,):
        raise ValueError(f"Direction must have 3 components, got shape {xyz.shape}")
    norm = float(np.linalg.norm(xyz))
    if norm == 0.0:
        raise ValueError("Direction vector has zero length")
    x, y, z = xyz / norm
    ra = float(np.degrees(np.arctan2(y, x)))
    dec = float(np.degrees(np.arcsin(np.clip(z, -1.0, 1.0))))
    return RaDec(ra=ra, dec=dec)


def format_ra_hms(ra_degrees: float) -> str:
    """Format Right Ascension in hours:minutes:seconds notation.

    Example:
        >>> format_ra_hms(83.82)
        '05h 35m 16.8s'
    """
    hours_total = (ra_degrees % 360.0) / 15.0

    hours = int(hours_total)
    minutes_total = (hours_total - hours) * 60
    minutes = int(minutes_total)
    seconds = (minutes_total - minutes) * 60

    return f"{hours:02d}h {minutes:02d}m {seconds:04.1f}s"


def format_dec_dms(dec_degrees: float) -> str:
    """Format Declination in degrees:arcminutes:arcseconds with sign.

    Example:
        >>> format_dec_dms(-5.391)
        '-05° 23\\' 27.6"'
    """
    sign = "+" if dec_degrees >= 0 else "-"
    dec_abs = abs(dec_degrees)

    degrees = int(dec_abs)
    arcmin_total = (dec_abs - degrees) * 60
    arcmin = int(arcmin_total)
    arcsec = (arcmin_total - arcmin) * 60

    return f"{sign}{degrees:02d}° {arcmin:02d}' {arcsec:04.1f}\""
