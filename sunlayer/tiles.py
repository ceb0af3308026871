"""
Night-lights tile cache.

A composite raster is assembled from 256 px tiles fetched asynchronously. Tile
completions arrive in any order and may outlive the raster they were issued
for, so every completion is checked against the active raster and the render
context's generation before it touches anything.
"""

from __future__ import annotations

import asyncio
import io
import logging
from dataclasses import dataclass
from functools import partial
from typing import Callable, Optional, Protocol, Tuple

import httpx
from PIL import Image

from .config import LayerSettings
from .grid import TILE_SIZE, tile_url
from .models import TextureInfo, TileFootprint

logger = logging.getLogger(__name__)

DEFAULT_TILE_BASE_URL = "https://pskreporter.info"

TileCallback = Callable[[Optional[Image.Image]], None]


class TileFetcher(Protocol):
    def fetch(self, url: str, callback: TileCallback) -> None:
        """Start fetching ``url``; call ``callback`` later with the image or None."""
        ...


class RenderContext:
    """Owns the generation token. Bumped whenever the renderer loses its state."""

    def __init__(self) -> None:
        self.generation = 0

    def reset(self) -> int:
        self.generation += 1
        return self.generation

    def is_current(self, generation: int) -> bool:
        return generation == self.generation


@dataclass(eq=False)
class NightTileCache:
    """A composite raster being assembled (or already assembled) for a footprint."""

    footprint: TileFootprint
    image: Image.Image
    generation: int
    pending: int = 0
    # Latest deferred reload request; older ones are overwritten.
    once_loaded: Optional[Callable[[], object]] = None

    @property
    def key(self) -> tuple[int, int, int, int, int]:
        return self.footprint.key

    @property
    def texture_info(self) -> TextureInfo:
        return self.footprint.texture_info


@dataclass(frozen=True)
class BoundTexture:
    """Read-only snapshot of a composite raster, as handed to the rasterizer."""

    image: Image.Image
    texture_info: TextureInfo

    def sample(self, world_x: float, world_y: float) -> Optional[Tuple[float, float, float]]:
        """Nearest-pixel RGB in [0, 1] at a world coordinate, or None off the raster."""
        u, v = self.texture_info.uv(world_x, world_y)
        if not (0.0 <= u < 1.0 and 0.0 <= v < 1.0):
            return None
        px = int(u * self.image.width)
        py = int(v * self.image.height)
        r, g, b, _ = self.image.getpixel((px, py))
        return r / 255.0, g / 255.0, b / 255.0


class TileCacheManager:
    """Loads composite rasters for viewport footprints, one at a time.

    - A footprint equal to the active one is a no-op, and discards any
      deferred request.
    - While a raster is loading, a new footprint is deferred: the reload is
      stored as the raster's ``once_loaded`` and runs once all tiles resolved.
      Only the most recent deferred request survives.
    - A finished raster is queued and bound by ``apply_pending_bind``.
    """

    def __init__(
        self,
        fetcher: TileFetcher,
        context: Optional[RenderContext] = None,
        *,
        base_url: str = DEFAULT_TILE_BASE_URL,
        tile_size: int = TILE_SIZE,
    ) -> None:
        self.fetcher = fetcher
        self.context = context if context is not None else RenderContext()
        self.base_url = base_url
        self.tile_size = tile_size

        self.loaded: Optional[NightTileCache] = None
        self.texture: Optional[BoundTexture] = None
        self._texture_update: Optional[NightTileCache] = None

    @property
    def loading(self) -> bool:
        return self.loaded is not None and self.loaded.pending > 0

    def can_skip_load(self, footprint: TileFootprint) -> bool:
        return self.loaded is not None and self.loaded.key == footprint.key

    def load(
        self,
        footprint: TileFootprint,
        retry: Optional[Callable[[], object]] = None,
    ) -> Optional[NightTileCache]:
        """Start assembling the raster for ``footprint``.

        Args:
            footprint: Tiles required by the current viewport.
            retry: Continuation to run if the load has to be deferred. Defaults
                to loading this same footprint again.

        Returns:
            The new cache entry, or None if the load was skipped or deferred.
        """
        active = self.loaded
        if active is not None:
            if self.can_skip_load(footprint):
                # The raster in progress is wanted again; drop any queued request.
                active.once_loaded = None
                return None
            if active.pending > 0:
                active.once_loaded = retry if retry is not None else partial(
                    self.load, footprint
                )
                logger.debug("Load in progress, deferring %s", footprint.key)
                return None

        cache = NightTileCache(
            footprint=footprint,
            image=Image.new("RGBA", (footprint.width, footprint.height)),
            generation=self.context.generation,
            pending=footprint.tiles_x * footprint.tiles_y,
        )
        self.loaded = cache
        logger.info(
            "Loading %d night tiles for %s (generation %d)",
            cache.pending,
            footprint.key,
            cache.generation,
        )

        for col in range(footprint.tiles_x):
            for row in range(footprint.tiles_y):
                url = tile_url(
                    self.base_url,
                    footprint.zoom,
                    col + footprint.x_offset,
                    row + footprint.y_offset,
                )
                self.fetcher.fetch(url, self._make_callback(cache, col, row))

        if self.texture is None:
            # Always have something bound, even before any tile arrived.
            self._bind(cache)
        return cache

    def _make_callback(self, cache: NightTileCache, col: int, row: int) -> TileCallback:
        generation = cache.generation

        def on_tile(image: Optional[Image.Image]) -> None:
            cache.pending -= 1
            if cache is not self.loaded or not self.context.is_current(generation):
                logger.debug(
                    "Ignoring stale tile %d,%d for %s (generation %d)",
                    col,
                    row,
                    cache.key,
                    generation,
                )
                return

            if image is not None:
                cache.image.paste(image, (col * self.tile_size, row * self.tile_size))

            if cache.pending <= 0:
                self._texture_update = cache
                continuation, cache.once_loaded = cache.once_loaded, None
                if continuation is not None:
                    continuation()

        return on_tile

    def apply_pending_bind(self) -> bool:
        """Bind a raster whose tiles have all resolved. Returns True if one was bound."""
        cache = self._texture_update
        if cache is None:
            return False
        return self._bind(cache)

    def _bind(self, cache: NightTileCache) -> bool:
        self._texture_update = None
        if cache is not self.loaded:
            logger.debug("Dropping superseded night raster %s", cache.key)
            return False
        self.texture = BoundTexture(cache.image.copy(), cache.texture_info)
        logger.info("Bound night raster %s", cache.key)
        return True

    def invalidate(self) -> int:
        """Forget all rasters and make every in-flight completion inert."""
        generation = self.context.reset()
        self.loaded = None
        self.texture = None
        self._texture_update = None
        logger.debug("Tile cache invalidated, generation now %d", generation)
        return generation


class HttpxTileFetcher:
    """Fetches tiles as asyncio tasks on an ``httpx.AsyncClient``.

    Must be used from a running event loop. Any HTTP, transport or decode
    failure is logged and reported as a missing tile; nothing is retried.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        *,
        timeout: float = 30.0,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout))
        self._tasks: set[asyncio.Task] = set()

    @classmethod
    def from_settings(cls, settings: LayerSettings) -> HttpxTileFetcher:
        return cls(timeout=settings.request_timeout)

    def fetch(self, url: str, callback: TileCallback) -> None:
        task = asyncio.get_running_loop().create_task(self._fetch(url, callback))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _fetch(self, url: str, callback: TileCallback) -> None:
        image: Optional[Image.Image] = None
        try:
            response = await self._client.get(url)
            response.raise_for_status()
            decoded = Image.open(io.BytesIO(response.content))
            decoded.load()
            image = decoded.convert("RGBA")
        except httpx.HTTPError as exc:
            logger.warning("Night tile request failed for %s: %s", url, exc)
        except (OSError, Image.DecompressionBombError) as exc:
            logger.warning("Unable to decode night tile %s: %s", url, exc)
        finally:
            # Every request settles its slot, or the raster never completes.
            callback(image)

    async def drain(self) -> None:
        """Wait for every fetch started so far (including ones they trigger)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    async def aclose(self) -> None:
        await self.drain()
        if self._owns_client:
            await self._client.aclose()
