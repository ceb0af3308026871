"""
Frame orchestration: ties the clock, the viewport and the tile cache together.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from .catalog import load_datasets
from .compute import elements_at, solar_situation
from .config import LayerSettings
from .grid import build_sample_rows, tile_footprint
from .models import EclipseDataset, FrameUniforms, SampleRow, Viewport
from .projection import Projection
from .tiles import BoundTexture, RenderContext, TileCacheManager, TileFetcher

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


def system_clock() -> float:
    return time.time()


@dataclass(frozen=True)
class Frame:
    """What the rasterizer draws for one tick."""

    now: float
    viewport: Viewport
    uniforms: FrameUniforms
    rows: Sequence[SampleRow]
    texture: Optional[BoundTexture]


class SunLayer:
    """Day/night and eclipse overlay for a tiled map.

    The host calls ``set_viewport`` whenever the map moves and ``update`` once
    per tick (``run`` does the ticking on an asyncio loop).
    """

    def __init__(
        self,
        projection: Projection,
        fetcher: TileFetcher,
        *,
        settings: Optional[LayerSettings] = None,
        datasets: Optional[Sequence[EclipseDataset]] = None,
        clock: Clock = system_clock,
    ) -> None:
        self.settings = settings or LayerSettings()
        self.projection = projection
        self.datasets = list(datasets) if datasets is not None else load_datasets()
        self.clock = clock
        self.context = RenderContext()
        self.tiles = TileCacheManager(
            fetcher,
            self.context,
            base_url=self.settings.tile_base_url,
            tile_size=self.settings.tile_size,
        )

        self.city_lights = self.settings.city_lights
        self.viewport: Optional[Viewport] = None
        self.rows: list[SampleRow] = []
        self._loaded_viewport: Optional[Viewport] = None
        self._lost = False

    # City lights

    def set_city_lights(self, state: bool) -> None:
        self.city_lights = bool(state)

    def show_lights(self) -> None:
        self.city_lights = True

    def hide_lights(self) -> None:
        self.city_lights = False

    @property
    def lights_hidden(self) -> bool:
        return not self.city_lights

    def set_clock(self, clock: Clock) -> None:
        self.clock = clock

    def set_viewport(self, viewport: Viewport) -> None:
        self.viewport = viewport

    # Renderer lifecycle

    def context_lost(self) -> None:
        """The renderer dropped its state; every in-flight tile becomes inert."""
        self._lost = True
        generation = self.tiles.invalidate()
        logger.info("Render context lost, generation %d", generation)

    def context_restored(self) -> None:
        self._lost = False
        self._loaded_viewport = None
        logger.info("Render context restored")

    # Per-tick work

    def _load_data(self) -> None:
        viewport = self.viewport
        if viewport is None:
            return
        self.rows = build_sample_rows(self.projection, viewport)
        if viewport.zoom <= self.settings.max_lights_zoom:
            # A deferred reload re-reads the viewport current at that time.
            self.tiles.load(tile_footprint(self.projection, viewport), self._load_data)

    def update(self) -> Optional[Frame]:
        """Compute one frame, or None with no viewport or a lost renderer."""
        if self._lost or self.viewport is None:
            return None

        self.tiles.apply_pending_bind()

        now = self.clock()
        elements = elements_at(
            self.datasets, now, window_hours=self.settings.window_hours
        )
        situation = solar_situation(now)

        viewport = self.viewport
        if viewport != self._loaded_viewport:
            self._load_data()
            self._loaded_viewport = viewport

        texture = self.tiles.texture
        uniforms = FrameUniforms(
            elements=elements,
            situation=situation,
            obscure_factor=self.settings.obscure_factor,
            city_lights_enabled=self.city_lights
            and viewport.zoom <= self.settings.max_lights_zoom,
            texture_info=texture.texture_info if texture is not None else None,
        )
        return Frame(
            now=now,
            viewport=viewport,
            uniforms=uniforms,
            rows=self.rows,
            texture=texture,
        )

    async def run(
        self,
        sink: Callable[[Frame], object],
        stop: Optional[asyncio.Event] = None,
    ) -> None:
        """Call ``update`` every ``update_interval`` seconds until ``stop`` is set."""
        stop = stop or asyncio.Event()
        while not stop.is_set():
            frame = self.update()
            if frame is not None:
                sink(frame)
            try:
                await asyncio.wait_for(stop.wait(), timeout=self.settings.update_interval)
            except asyncio.TimeoutError:
                pass
