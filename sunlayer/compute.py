"""
Eclipse shadow geometry, solar position and per-sample obscuration.

Attribution: "Eclipse Predictions by Fred Espenak, NASA's GSFC"
Solar terms follow the truncated Fourier series of Carruthers et al.
"""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Optional, Sequence, Tuple

from .catalog import WINDOW_HOURS, select_dataset
from .models import (
    DISABLED_DELTAT,
    EclipseDataset,
    GeoSample,
    InterpolatedElements,
    Obscuration,
    SolarSituation,
)

RAD = math.pi / 180.0

SIDEREAL_RATIO = 1.002738
MAX_DECLINATION_DEG = 89.9

TWILIGHT_HALF_WIDTH = 0.018  # radians of solar altitude
OVERRIDE_CUTOFF = 0.95
CITY_LIGHTS_THRESHOLD = 0.90
CITY_LIGHTS_FLOOR = 0.1
DEFAULT_OBSCURE_FACTOR = 0.65

MS_PER_DAY = 86_400_000.0
MS_PER_HOUR = 3_600_000.0


def poly3(c0: float, c1: float, c2: float, c3: float, t: float) -> float:
    return ((c3 * t + c2) * t + c1) * t + c0


def evaluate_elements(
    ds: EclipseDataset, now: float, *, window_hours: float = WINDOW_HOURS
) -> InterpolatedElements:
    """Evaluate the dataset's polynomials at ``now`` (unix seconds).

    ``deltat`` is replaced by -1 when ``now`` lies outside the dataset's window,
    which disables the eclipse term downstream.
    """
    t = (now - ds.t0) / 3600.0
    deltat = ds.deltat
    if abs(now - ds.t0) > window_hours * 3600.0:
        deltat = DISABLED_DELTAT

    return InterpolatedElements(
        t0=ds.t0,
        x=poly3(*ds.x, t),
        y=poly3(*ds.y, t),
        d=poly3(*ds.d, t),
        l1=poly3(*ds.l1, t),
        l2=poly3(*ds.l2, t),
        mu=poly3(*ds.mu, t),
        deltat=deltat,
        tanf1=ds.tanf1,
        tanf2=ds.tanf2,
    )


def elements_at(
    datasets: Sequence[EclipseDataset],
    now: float,
    *,
    window_hours: float = WINDOW_HOURS,
) -> InterpolatedElements:
    ds = select_dataset(datasets, now, window_hours=window_hours)
    if ds is None:
        return InterpolatedElements.disabled()
    return evaluate_elements(ds, now, window_hours=window_hours)


def fmod(d: float, v: float) -> float:
    """Remainder with the sign of ``v`` (non-negative for positive ``v``)."""
    return d - math.floor(d / v) * v


def solar_situation(now: float) -> SolarSituation:
    """Approximate solar declination and equation of time at ``now`` (unix seconds).

    Leap years are ignored; the result is good to a few tenths of a degree,
    which is plenty for drawing a terminator.
    """
    now_ms = now * 1000.0
    year = datetime.fromtimestamp(now, tz=timezone.utc).year

    # Day of year, 1-Jan = 1.
    julian = 1.0 + now_ms / MS_PER_DAY - (year - 1970) * 365.25

    local_time = fmod(now_ms, MS_PER_DAY) / MS_PER_HOUR

    t = 2.0 * math.pi * fmod((julian - 1.0) / 365.0, 1.0)
    declination = (
        0.322003
        - 22.971 * math.cos(t)
        - 0.357898 * math.cos(2 * t)
        - 0.14398 * math.cos(3 * t)
        + 3.94638 * math.sin(t)
        + 0.019334 * math.sin(2 * t)
        + 0.05928 * math.sin(3 * t)
    )
    declination = max(-MAX_DECLINATION_DEG, min(MAX_DECLINATION_DEG, declination))

    t2 = fmod(279.134 + 0.985647 * julian, 360.0) * RAD
    equation = (
        5.0323
        - 100.976 * math.sin(t2)
        + 595.275 * math.sin(2 * t2)
        + 3.6858 * math.sin(3 * t2)
        - 12.47 * math.sin(4 * t2)
        - 430.847 * math.cos(t2)
        + 12.5024 * math.cos(2 * t2)
        + 18.25 * math.cos(3 * t2)
    )

    return SolarSituation(
        local_time=local_time,
        declination=declination * RAD,
        equation=equation / 3600.0,
    )


def solar_altitude(
    situation: SolarSituation, latitude_deg: float, longitude_deg: float
) -> float:
    """Altitude of the sun in radians at the given point."""
    # 4 minutes of time per degree of longitude.
    difference = longitude_deg * 4.0 / 60.0
    solar_time = situation.local_time + situation.equation + difference
    hour_angle = 15.0 * (solar_time - 12.0) * RAD

    lat = latitude_deg * RAD
    dec = situation.declination
    s = math.sin(dec) * math.sin(lat) + math.cos(dec) * math.cos(lat) * math.cos(
        hour_angle
    )
    # Rounding can push the argument just outside asin's domain.
    s = max(-1.0, min(1.0, s))
    return math.asin(s)


def shadow_coordinates(
    e: InterpolatedElements, latitude_deg: float, longitude_deg: float
) -> Tuple[float, float, float]:
    """Project a point on the (spherical) Earth onto the fundamental plane."""
    d = e.d * RAD
    H = (e.mu + longitude_deg + SIDEREAL_RATIO * 15.0 * e.deltat / 3600.0) * RAD
    phi = latitude_deg * RAD

    X = math.cos(phi) * math.sin(H)
    Y = math.sin(phi) * math.cos(d) - math.cos(phi) * math.sin(d) * math.cos(H)
    Z = math.sin(phi) * math.sin(d) + math.cos(phi) * math.cos(d) * math.cos(H)
    return X, Y, Z


def eclipse_obscuration(
    e: InterpolatedElements,
    sample: GeoSample,
    obscure_factor: float = DEFAULT_OBSCURE_FACTOR,
) -> Tuple[float, float]:
    """Return ``(obs, override)`` from the eclipse shadow alone.

    ``obs`` falls off linearly across the penumbra. ``override`` is a direct
    opacity used near and inside the umbra, ramping up to 1 above the cutoff.
    """
    if not e.eclipse_active:
        return 0.0, 0.0

    X, Y, Z = shadow_coordinates(e, sample.latitude_deg, sample.longitude_deg)
    dist = math.hypot(e.x - X, e.y - Y)
    L1 = e.l1 - Z * e.tanf1
    L2 = e.l2 - Z * e.tanf2

    if dist >= L1:
        return 0.0, 0.0

    override = 0.0
    if dist < abs(L2):
        dist = abs(L2)
        override = 1.0
    obs = (L1 - dist) / (L1 + L2)
    if obs > OVERRIDE_CUTOFF:
        override = (obs - OVERRIDE_CUTOFF) * (
            1.0 - OVERRIDE_CUTOFF * obscure_factor
        ) / (1.0 - OVERRIDE_CUTOFF) + OVERRIDE_CUTOFF * obscure_factor
    return obs, override


def twilight_blend(obs: float, altitude: float) -> float:
    """Darken ``obs`` towards night as the sun drops through the horizon band."""
    if altitude < -TWILIGHT_HALF_WIDTH:
        return 1.0
    if altitude < TWILIGHT_HALF_WIDTH:
        night = (TWILIGHT_HALF_WIDTH - altitude) / (2 * TWILIGHT_HALF_WIDTH)
        return 1.0 - (1.0 - obs) * (1.0 - night)
    return obs


def obscuration(
    elements: InterpolatedElements,
    situation: SolarSituation,
    sample: GeoSample,
    city_lights_enabled: bool = False,
    night_rgb: Optional[Tuple[float, float, float]] = None,
    *,
    obscure_factor: float = DEFAULT_OBSCURE_FACTOR,
) -> Obscuration:
    """Overlay opacity at one sample.

    Args:
        elements: Interpolated shadow geometry for the instant.
        situation: Solar situation for the same instant.
        sample: Geographic point to evaluate.
        city_lights_enabled: Whether night lights may be drawn.
        night_rgb: Night-lights raster colour at the sample, channels in [0, 1].
        obscure_factor: Maximum opacity of the night/penumbra shading.

    Returns:
        Obscuration with the opacity in [0, 1] and, where lights show, their
        luminance.
    """
    obs, override = eclipse_obscuration(elements, sample, obscure_factor)

    altitude = solar_altitude(situation, sample.latitude_deg, sample.longitude_deg)
    obs = twilight_blend(obs, altitude)
    if altitude < 0.0:
        override = 0.0
    obs = max(0.0, min(1.0, obs))

    opacity = max(0.0, min(1.0, max(override, obscure_factor * obs)))

    luminance = None
    if city_lights_enabled and night_rgb is not None and obs > CITY_LIGHTS_THRESHOLD:
        ramp = (obs - CITY_LIGHTS_THRESHOLD) / (1.0 - CITY_LIGHTS_THRESHOLD)
        mean = sum(night_rgb) / 3.0
        luminance = max(0.0, (mean - CITY_LIGHTS_FLOOR) * ramp)

    return Obscuration(opacity=opacity, luminance=luminance)
