"""
Sample rows and night-lights tile footprint for a viewport.
"""

from __future__ import annotations

import math
from typing import Tuple

from .models import GeoSample, SampleRow, TextureInfo, TileFootprint, Viewport
from .projection import WORLD_SIZE, Projection

TILE_SIZE = 256
MIN_RASTER_SIZE = 128


def _world_corners(
    projection: Projection, viewport: Viewport
) -> Tuple[float, float, float, float]:
    """Top-left and bottom-right world coordinates of the viewport."""
    scale = projection.zoom_scale(viewport.zoom)
    rs = viewport.resolution_scale

    tl_x, tl_y = projection.to_world(viewport.top_left_lat, viewport.top_left_lng)
    br_x = tl_x + viewport.width / rs / scale
    br_y = tl_y + viewport.height / rs / scale

    # Keep off the pole singularity of the projection.
    if tl_y <= 0:
        tl_y = 0.05 / scale
    if br_y > WORLD_SIZE:
        br_y = WORLD_SIZE
    return tl_x, tl_y, br_x, br_y


def _pixel_centre(v: float, pixels_per_unit: float) -> float:
    return (math.floor(v * pixels_per_unit) + 0.5) / pixels_per_unit


def build_sample_rows(projection: Projection, viewport: Viewport) -> list[SampleRow]:
    """One row of samples per canvas pixel row, stopping at the bottom of the world.

    Latitude is constant along a row; longitude and world x vary linearly, so
    the endpoints are all a rasterizer needs.
    """
    scale = projection.zoom_scale(viewport.zoom)
    rs = viewport.resolution_scale
    tl_x, tl_y, br_x, _ = _world_corners(projection, viewport)

    # Sample at canvas pixel centres.
    pixels_per_unit = rs * scale
    tl_x = _pixel_centre(tl_x, pixels_per_unit)
    tl_y = _pixel_centre(tl_y, pixels_per_unit)
    br_x = _pixel_centre(br_x, pixels_per_unit)

    _, lng_left = projection.to_geo(tl_x, tl_y)
    lng_right = lng_left + viewport.width / rs / scale / WORLD_SIZE * 360.0

    rows: list[SampleRow] = []
    for i in range(viewport.height):
        y = tl_y + i / rs / scale
        if y >= WORLD_SIZE:
            break
        lat, _ = projection.to_geo(tl_x, y)
        rows.append(
            SampleRow(
                start=GeoSample(
                    latitude_deg=lat, longitude_deg=lng_left, world_x=tl_x, world_y=y
                ),
                end=GeoSample(
                    latitude_deg=lat, longitude_deg=lng_right, world_x=br_x, world_y=y
                ),
            )
        )
    return rows


def raster_size(pixels: float) -> int:
    """Smallest power-of-two size (at least 128) covering ``pixels`` plus a tile."""
    size = MIN_RASTER_SIZE
    while size < pixels + TILE_SIZE - 1:
        size *= 2
    return size


def tile_footprint(projection: Projection, viewport: Viewport) -> TileFootprint:
    scale = projection.zoom_scale(viewport.zoom)
    rs = viewport.resolution_scale
    tl_x, tl_y, _, _ = _world_corners(projection, viewport)

    css_width = viewport.width / rs
    css_height = viewport.height / rs
    width = raster_size(css_width) * 2
    height = raster_size(css_height) * 2

    x_offset = math.floor(tl_x * scale / TILE_SIZE)
    y_offset = math.floor(tl_y * scale / TILE_SIZE)

    info = TextureInfo(
        tl=(TILE_SIZE * x_offset / scale, TILE_SIZE * y_offset / scale),
        tl_scale=(scale / width, scale / height),
    )
    return TileFootprint(
        width=width,
        height=height,
        x_offset=x_offset,
        y_offset=y_offset,
        zoom=viewport.zoom,
        tiles_x=math.ceil((css_width + TILE_SIZE - 1) / TILE_SIZE),
        tiles_y=math.ceil((css_height + TILE_SIZE - 1) / TILE_SIZE),
        texture_info=info,
    )


def tile_url(base_url: str, zoom: int, tile_x: int, tile_y: int) -> str:
    """URL of a night-lights tile; the tile server counts rows from the bottom."""
    n = 2**zoom
    return f"{base_url.rstrip('/')}/nighttile/{zoom}/{tile_x % n}/{n - 1 - tile_y % n}.png"
