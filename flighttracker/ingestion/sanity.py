"""
Sanity checks for decoded state vectors.

A report without a usable position is rejected outright. Implausible
altitude or velocity values are only nulled: the position is still worth
keeping, and a single glitching sensor should not drop the aircraft from
its session.
"""

import math
from typing import NamedTuple, Optional

MISSING_POSITION = 'missing_position'
NAN_OR_INF_POSITION = 'nan_or_inf_position'
POSITION_OUT_OF_RANGE = 'position_out_of_range'
ALTITUDE_OUTLIER = 'altitude_outlier'
VELOCITY_OUTLIER = 'velocity_outlier'

# Lowest plausible barometric altitude (Dead Sea is about -430m)
MIN_ALTITUDE_M = -500.0


class SanityResult(NamedTuple):
    is_valid: bool
    altitude: Optional[float]
    velocity: Optional[float]
    reason: Optional[str]


def validate_and_filter(
    latitude: Optional[float],
    longitude: Optional[float],
    altitude: Optional[float],
    velocity: Optional[float],
    max_altitude_m: float,
    max_velocity_mps: float,
) -> SanityResult:
    """
    Validate position and clamp telemetry outliers.

    Returns the verdict with possibly-nulled altitude and velocity. The
    reason is set for invalid reports and for valid ones that had a value
    nulled; an altitude reason takes precedence over a velocity reason.
    """
    if latitude is None or longitude is None:
        return SanityResult(False, altitude, velocity, MISSING_POSITION)
    if not math.isfinite(latitude) or not math.isfinite(longitude):
        return SanityResult(False, altitude, velocity, NAN_OR_INF_POSITION)
    if not (-90 <= latitude <= 90) or not (-180 <= longitude <= 180):
        return SanityResult(False, altitude, velocity, POSITION_OUT_OF_RANGE)

    reason = None

    if altitude is not None:
        if not math.isfinite(altitude) or altitude < MIN_ALTITUDE_M or altitude > max_altitude_m:
            altitude = None
            reason = ALTITUDE_OUTLIER

    if velocity is not None:
        if not math.isfinite(velocity) or velocity < 0 or velocity > max_velocity_mps:
            velocity = None
            reason = reason or VELOCITY_OUTLIER

    return SanityResult(True, altitude, velocity, reason)
