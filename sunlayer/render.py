"""
CPU rasterization of a frame's opacity field.

Produces the same RGBA the fragment program would: grey city lights where it is
dark enough, black elsewhere, alpha from the obscuration.
"""

from __future__ import annotations

from typing import Optional

from PIL import Image

from .compute import obscuration
from .layer import Frame


def _to_byte(value: float) -> int:
    return max(0, min(255, int(round(value * 255.0))))


def render_frame(frame: Frame, width: Optional[int] = None) -> Image.Image:
    """Render ``frame`` to an RGBA image, one image row per sample row.

    Args:
        frame: Frame from ``SunLayer.update``.
        width: Output width in pixels; defaults to the viewport width.
    """
    width = width or frame.viewport.width
    u = frame.uniforms
    texture = frame.texture if u.city_lights_enabled else None

    image = Image.new("RGBA", (width, frame.viewport.height))
    pixels = image.load()
    for py, row in enumerate(frame.rows):
        for px in range(width):
            sample = row.at((px + 0.5) / width)
            night_rgb = None
            if texture is not None:
                night_rgb = texture.sample(sample.world_x, sample.world_y)
            result = obscuration(
                u.elements,
                u.situation,
                sample,
                u.city_lights_enabled,
                night_rgb,
                obscure_factor=u.obscure_factor,
            )
            lum = _to_byte(result.luminance or 0.0)
            pixels[px, py] = (lum, lum, lum, _to_byte(result.opacity))
    return image
