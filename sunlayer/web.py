"""
Web API for the overlay computations.

Attribution: "Eclipse Predictions by Fred Espenak, NASA's GSFC"
"""

from __future__ import annotations

import io
import logging
import math
from typing import Optional

from astropy.time import Time
from fastapi import FastAPI, HTTPException, Query
from fastapi.responses import Response
from pydantic import BaseModel, ValidationError

from .catalog import load_datasets
from .compute import elements_at, obscuration, solar_altitude, solar_situation
from .config import LayerSettings
from .layer import SunLayer
from .models import FrameUniforms, GeoSample, Viewport
from .projection import WebMercatorProjection
from .render import render_frame

logger = logging.getLogger(__name__)

app = FastAPI(title="Sun Layer")

DATASETS = load_datasets()
SETTINGS = LayerSettings.from_env()
MAX_OVERLAY_PIXELS = 512


class NoTiles:
    """Fetcher for server-side renders, which never draw city lights."""

    def fetch(self, url, callback) -> None:
        callback(None)


def _now(ref_utc: Optional[str]) -> tuple[float, str]:
    if not ref_utc:
        t = Time.now()
    else:
        try:
            t = Time(ref_utc, scale="utc")
        except ValueError as exc:
            raise HTTPException(status_code=422, detail=f"Invalid ref_utc: {exc}")
    return t.unix, t.iso


class FrameResponse(BaseModel):
    ref_time_utc: str
    eclipse_active: bool
    uniforms: dict[str, float]


class ObscurationResponse(BaseModel):
    lat: float
    lon: float
    ref_time_utc: str
    altitude_deg: float
    opacity: float


@app.get("/api/frame")
def get_frame(ref_utc: Optional[str] = None) -> FrameResponse:
    now, iso = _now(ref_utc)
    elements = elements_at(DATASETS, now, window_hours=SETTINGS.window_hours)
    situation = solar_situation(now)
    uniforms = FrameUniforms(
        elements=elements,
        situation=situation,
        obscure_factor=SETTINGS.obscure_factor,
        city_lights_enabled=False,
    )
    return FrameResponse(
        ref_time_utc=iso,
        eclipse_active=elements.eclipse_active,
        uniforms=uniforms.as_uniforms(),
    )


@app.get("/api/obscuration")
def get_obscuration(
    lat: float = Query(..., ge=-90.0, le=90.0),
    lon: float = Query(..., ge=-180.0, le=180.0),
    ref_utc: Optional[str] = None,
) -> ObscurationResponse:
    now, iso = _now(ref_utc)
    elements = elements_at(DATASETS, now, window_hours=SETTINGS.window_hours)
    situation = solar_situation(now)
    result = obscuration(
        elements,
        situation,
        GeoSample(latitude_deg=lat, longitude_deg=lon),
        obscure_factor=SETTINGS.obscure_factor,
    )
    return ObscurationResponse(
        lat=lat,
        lon=lon,
        ref_time_utc=iso,
        altitude_deg=math.degrees(solar_altitude(situation, lat, lon)),
        opacity=result.opacity,
    )


@app.get("/api/overlay.png")
def get_overlay(
    lat: float,
    lon: float,
    zoom: int = Query(1, ge=0, le=20),
    width: int = Query(256, gt=0, le=MAX_OVERLAY_PIXELS),
    height: int = Query(256, gt=0, le=MAX_OVERLAY_PIXELS),
    ref_utc: Optional[str] = None,
) -> Response:
    now, _ = _now(ref_utc)
    try:
        viewport = Viewport(
            top_left_lat=lat, top_left_lng=lon, width=width, height=height, zoom=zoom
        )
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc))

    layer = SunLayer(
        WebMercatorProjection(),
        NoTiles(),
        settings=SETTINGS.model_copy(update={"city_lights": False}),
        datasets=DATASETS,
        clock=lambda: now,
    )
    layer.set_viewport(viewport)
    frame = layer.update()
    if frame is None:
        raise HTTPException(status_code=500, detail="Overlay frame unavailable")

    buf = io.BytesIO()
    render_frame(frame).save(buf, format="PNG")
    logger.debug("Rendered %dx%d overlay at zoom %d", width, height, zoom)
    return Response(content=buf.getvalue(), media_type="image/png")


def run():
    import uvicorn

    uvicorn.run("sunlayer.web:app", host="127.0.0.1", port=8000, reload=True)
