"""Utility modules for telescope-control."""

from telescope_control.utils.coordinates import (
    RaDec,
    format_dec_dms,
    format_ra_hms,
    j2000_to_jnow,
    jnow_to_j2000,
    radec_to_vector,
    vector_to_radec,
)

__all__ = [
    "RaDec",
    "format_dec_dms",
    "format_ra_hms",
    "j2000_to_jnow",
    "jnow_to_j2000",
    "radec_to_vector",
    "vector_to_radec",
]
