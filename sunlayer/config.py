"""
Layer configuration.
"""

from __future__ import annotations

import os
from typing import Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

ENV_PREFIX = "SUNLAYER_"


class LayerSettings(BaseModel):
    """Tunables for the overlay and its night-lights tile source."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    tile_base_url: str = "https://pskreporter.info"
    obscure_factor: float = Field(default=0.65, ge=0.0, le=1.0)
    city_lights: bool = True
    max_lights_zoom: int = Field(default=8, ge=0)
    update_interval: float = Field(default=1.0, gt=0.0)
    window_hours: float = Field(default=4.0, gt=0.0)
    tile_size: int = Field(default=256, gt=0)
    request_timeout: float = Field(default=30.0, gt=0.0)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> LayerSettings:
        """Build settings from ``SUNLAYER_*`` variables, e.g. ``SUNLAYER_OBSCURE_FACTOR``.

        Unset or blank variables keep their defaults; invalid values raise
        ``pydantic.ValidationError``.
        """
        env = os.environ if environ is None else environ
        values: dict[str, str] = {}
        for name in cls.model_fields:
            raw = env.get(ENV_PREFIX + name.upper(), "").strip()
            if raw:
                values[name] = raw
        return cls.model_validate(values)
