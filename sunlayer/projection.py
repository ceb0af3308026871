"""
Map projection between geographic and world coordinates.

The overlay only consumes a projection; ``WebMercatorProjection`` is the
256-unit world square used by common slippy-map widgets.
"""

from __future__ import annotations

import math
from typing import Protocol, Tuple

WORLD_SIZE = 256.0


class Projection(Protocol):
    def to_world(self, lat: float, lng: float) -> Tuple[float, float]: ...

    def to_geo(self, x: float, y: float) -> Tuple[float, float]: ...

    def zoom_scale(self, zoom: int) -> float: ...


class WebMercatorProjection:
    """Spherical Mercator with the world spanning ``[0, 256)`` on both axes."""

    _origin = WORLD_SIZE / 2.0
    _px_per_deg = WORLD_SIZE / 360.0
    _px_per_rad = WORLD_SIZE / (2.0 * math.pi)

    def to_world(self, lat: float, lng: float) -> Tuple[float, float]:
        x = self._origin + lng * self._px_per_deg
        siny = math.sin(math.radians(lat))
        siny = max(-0.9999, min(0.9999, siny))
        y = self._origin - 0.5 * math.log((1 + siny) / (1 - siny)) * self._px_per_rad
        return x, y

    def to_geo(self, x: float, y: float) -> Tuple[float, float]:
        lng = (x - self._origin) / self._px_per_deg
        lat_rad = 2.0 * math.atan(math.exp((self._origin - y) / self._px_per_rad))
        return math.degrees(lat_rad - math.pi / 2.0), lng

    def zoom_scale(self, zoom: int) -> float:
        return float(2**zoom)
