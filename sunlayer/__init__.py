"""
Sunlayer - day/night terminator and solar eclipse shadow overlay for tiled maps.

Attribution: "Eclipse Predictions by Fred Espenak, NASA's GSFC"
Data source: https://eclipse.gsfc.nasa.gov/eclipse_besselian_from_mysqldump2.csv

Example usage:
    from sunlayer import opacity_at

    result = opacity_at(40.7128, -74.0060)
    print(f"Overlay opacity over New York: {result.opacity:.2f}")
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from astropy.time import Time

from .catalog import load_datasets, select_dataset
from .compute import (
    elements_at,
    evaluate_elements,
    obscuration,
    solar_altitude,
    solar_situation,
)
from .config import LayerSettings
from .layer import Frame, SunLayer
from .models import (
    EclipseDataset,
    GeoSample,
    InterpolatedElements,
    Obscuration,
    SolarSituation,
    Viewport,
)
from .projection import WebMercatorProjection
from .tiles import HttpxTileFetcher, RenderContext, TileCacheManager

__all__ = [
    "EclipseDataset",
    "InterpolatedElements",
    "SolarSituation",
    "GeoSample",
    "Obscuration",
    "Viewport",
    "LayerSettings",
    "SunLayer",
    "Frame",
    "WebMercatorProjection",
    "HttpxTileFetcher",
    "RenderContext",
    "TileCacheManager",
    "load_datasets",
    "select_dataset",
    "evaluate_elements",
    "elements_at",
    "solar_situation",
    "solar_altitude",
    "obscuration",
    "opacity_at",
]


def opacity_at(
    latitude_deg: float,
    longitude_deg: float,
    *,
    at: Optional[datetime] = None,
    csv_path: Optional[str] = None,
    obscure_factor: float = 0.65,
) -> Obscuration:
    """Overlay opacity at a single point.

    Args:
        latitude_deg: Latitude in degrees (north positive).
        longitude_deg: Longitude in degrees east.
        at: Instant to evaluate (default: now).
        csv_path: Path to a dataset CSV (default: bundled table).
        obscure_factor: Maximum opacity of night and penumbral shading.

    Returns:
        Obscuration for the point, without city lights.
    """
    now = (Time(at) if at else Time.now()).unix
    elements = elements_at(load_datasets(csv_path), now)
    sample = GeoSample(latitude_deg=latitude_deg, longitude_deg=longitude_deg)
    return obscuration(
        elements, solar_situation(now), sample, obscure_factor=obscure_factor
    )
