"""
Data models for the solar illumination overlay.

Besselian elements are the NASA polynomial elements (Fred Espenak, NASA's GSFC)
re-expressed with a unix-seconds reference epoch.
"""

from __future__ import annotations

from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

Cubic = Tuple[float, float, float, float]
Pair = Tuple[float, float]

DISABLED_DELTAT = -1.0


class EclipseDataset(BaseModel):
    """Besselian elements for one eclipse, valid a few hours around ``t0``."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    t0: float
    deltat: float
    tanf1: float
    tanf2: float

    x: Cubic
    y: Cubic
    d: Cubic
    l1: Cubic
    l2: Cubic
    mu: Cubic

    def covers(self, now: float, window_hours: float = 4.0) -> bool:
        return abs(now - self.t0) <= window_hours * 3600.0


class InterpolatedElements(BaseModel):
    """Instantaneous shadow geometry. ``deltat == -1`` disables the eclipse term."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    t0: float
    x: float
    y: float
    d: float
    l1: float
    l2: float
    mu: float
    deltat: float
    tanf1: float
    tanf2: float

    @property
    def eclipse_active(self) -> bool:
        return self.deltat > 0

    @classmethod
    def disabled(cls, t0: float = 0.0) -> InterpolatedElements:
        return cls(
            t0=t0,
            x=0.0,
            y=0.0,
            d=0.0,
            l1=0.0,
            l2=0.0,
            mu=0.0,
            deltat=DISABLED_DELTAT,
            tanf1=0.0,
            tanf2=0.0,
        )


class SolarSituation(BaseModel):
    """Sun position summary for one instant."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    local_time: float  # hours within the UTC day
    declination: float  # radians
    equation: float  # hours


class GeoSample(BaseModel):
    """A geographic point with its world coordinate."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    latitude_deg: float
    longitude_deg: float
    world_x: float = 0.0
    world_y: float = 0.0


class SampleRow(BaseModel):
    """One raster row, described by its left and right endpoints."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    start: GeoSample
    end: GeoSample

    def at(self, fraction: float) -> GeoSample:
        """Linearly interpolate along the row (0 = left edge, 1 = right edge)."""
        a, b = self.start, self.end
        return GeoSample(
            latitude_deg=a.latitude_deg,
            longitude_deg=a.longitude_deg
            + (b.longitude_deg - a.longitude_deg) * fraction,
            world_x=a.world_x + (b.world_x - a.world_x) * fraction,
            world_y=a.world_y,
        )


class Viewport(BaseModel):
    """The visible map area: top-left corner, canvas size and zoom."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    top_left_lat: float = Field(..., ge=-90.0, le=90.0)
    top_left_lng: float = Field(..., ge=-180.0, le=180.0)
    width: int = Field(..., gt=0)
    height: int = Field(..., gt=0)
    zoom: int = Field(..., ge=0, le=30)
    resolution_scale: float = Field(default=1.0, gt=0.0)


class TextureInfo(BaseModel):
    """Placement of a composite raster: ``uv = tl_scale * (world - tl)``."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    tl: Pair
    tl_scale: Pair

    def uv(self, world_x: float, world_y: float) -> Pair:
        return (
            self.tl_scale[0] * (world_x - self.tl[0]),
            self.tl_scale[1] * (world_y - self.tl[1]),
        )


class TileFootprint(BaseModel):
    """Which tiles a viewport needs, and how the composite raster is placed."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    width: int
    height: int
    x_offset: int
    y_offset: int
    zoom: int

    tiles_x: int
    tiles_y: int
    texture_info: TextureInfo

    @property
    def key(self) -> tuple[int, int, int, int, int]:
        return (self.width, self.height, self.x_offset, self.y_offset, self.zoom)


class Obscuration(BaseModel):
    """Opacity of the overlay at one sample, plus city-light luminance if lit."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    opacity: float = Field(..., ge=0.0, le=1.0)
    luminance: Optional[float] = None


class FrameUniforms(BaseModel):
    """Everything the rasterizer needs for one frame."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    elements: InterpolatedElements
    situation: SolarSituation
    obscure_factor: float = Field(..., ge=0.0, le=1.0)
    city_lights_enabled: bool
    texture_info: Optional[TextureInfo] = None

    def as_uniforms(self) -> dict[str, float | Pair]:
        e = self.elements
        s = self.situation
        uniforms: dict[str, float | Pair] = {
            "u_x": e.x,
            "u_y": e.y,
            "u_d": e.d,
            "u_l1": e.l1,
            "u_l2": e.l2,
            "u_mu": e.mu,
            "u_deltat": e.deltat,
            "u_t0": e.t0,
            "u_tanf1": e.tanf1,
            "u_tanf2": e.tanf2,
            "u_fLocalTime": s.local_time,
            "u_fDeclination": s.declination,
            "u_fEquation": s.equation,
            "u_obscureFactor": self.obscure_factor,
            "u_cityLightsEnabled": 1.0 if self.city_lights_enabled else 0.0,
        }
        if self.texture_info is not None:
            uniforms["u_tl"] = self.texture_info.tl
            uniforms["u_tl_scale"] = self.texture_info.tl_scale
        return uniforms
