# dynmap_exporter/core/compositor.py
# -*- coding: utf-8 -*-

"""Compose tiles into one RGBA raster.

Tiles are fetched and drawn strictly one after another, in list order, so
the result is deterministic for a fixed tile list and set of loadable tiles.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional, Sequence

import numpy as np

from .errors import TileLoadError
from .models import BoundingBox, CompositePlan, TileRecord

log = logging.getLogger(__name__)

ProgressCallback = Callable[[int, str, dict[str, Any]], None]
TileLoader = Callable[[str], Optional[np.ndarray]]


@dataclass(frozen=True)
class DrawStats:
    drawn: int
    failed: int
    skipped: int


def vertical_remap(min_y: int, max_y: int) -> dict[int, int]:
    """Pair ``[min_y, max_y]`` ascending with the same range descending.

    Tile Y grows upwards, canvas Y grows downwards.
    """
    ascending = list(range(min_y, max_y + 1))
    return dict(zip(ascending, reversed(ascending)))


def plan_composite(tiles: Sequence[TileRecord], bbox: BoundingBox, tile_size: int) -> CompositePlan:
    """Derive canvas size and vertical remap from the bounding box."""
    return CompositePlan(
        canvas_width=(bbox.max_x - bbox.min_x) * tile_size,
        canvas_height=(bbox.max_y - bbox.min_y) * tile_size,
        tile_size=tile_size,
        bbox=bbox,
        tiles=tuple(tiles),
        y_remap=vertical_remap(bbox.min_y, bbox.max_y),
    )


def tile_offset(plan: CompositePlan, tile: TileRecord) -> tuple[int, int]:
    """Pixel offset of ``tile``'s top-left corner on the canvas."""
    tile_x, tile_y = tile.tile_pos
    remapped_y = plan.y_remap[tile_y]
    return (
        (tile_x - plan.bbox.min_x) * plan.tile_size,
        (remapped_y - plan.bbox.min_y) * plan.tile_size,
    )


class Compositor:
    """Draw the tiles of a ``CompositePlan`` onto a filled canvas.

    Args:
        loader: Returns an (H, W, 4) uint8 array for a tile path, ``None``
            or ``TileLoadError`` when the tile cannot be loaded.
        progress_cb: Callback(percent, message_key, message_args).
    """

    def __init__(self, loader: TileLoader, *, progress_cb: Optional[ProgressCallback] = None) -> None:
        self.loader = loader
        self.progress_cb = progress_cb

    def allocate(self, plan: CompositePlan, fill_rgba: tuple[int, int, int, int]) -> np.ndarray:
        raster = np.empty((plan.canvas_height, plan.canvas_width, 4), dtype=np.uint8)
        raster[:, :] = np.asarray(fill_rgba, dtype=np.uint8)
        return raster

    def draw(
        self,
        plan: CompositePlan,
        raster: np.ndarray,
        *,
        max_tiles: Optional[int] = None,
    ) -> DrawStats:
        """Fetch and draw tiles in order; at most ``max_tiles`` are drawn.

        A tile that fails to load is logged and left as background.
        """
        total = len(plan.tiles)
        limit = total if max_tiles is None else min(total, int(max_tiles))
        drawn = 0
        failed = 0

        for i, tile in enumerate(plan.tiles[:limit]):
            x, y = tile_offset(plan, tile)

            try:
                image = self.loader(tile.file_path)
            except TileLoadError as ex:
                log.warning("Tile load failed (%s): %s", tile.file_path, ex.details or ex.code)
                image = None

            if image is None:
                failed += 1
                self._report(
                    15 + int(((i + 1) / float(limit)) * 75),
                    "WARN_TILE_FAILED",
                    {"path": tile.file_path},
                )
                continue

            paste_rgba(raster, image, x, y)
            drawn += 1
            self._report(
                15 + int(((i + 1) / float(limit)) * 75),
                "STEP_DRAW",
                {"done": i + 1, "total": limit},
            )

        return DrawStats(drawn=drawn, failed=failed, skipped=total - limit)

    def _report(self, percent: int, key: str, args: dict[str, Any]) -> None:
        if self.progress_cb is not None:
            self.progress_cb(int(percent), key, args)


def paste_rgba(raster: np.ndarray, image: np.ndarray, x: int, y: int) -> None:
    """Alpha-composite ``image`` over ``raster`` at ``(x, y)``, clipped to the canvas."""
    if image.ndim != 3 or image.shape[2] != 4:
        raise ValueError("Expected RGBA array (H, W, 4)")

    canvas_h, canvas_w = raster.shape[:2]
    img_h, img_w = image.shape[:2]

    x0, y0 = max(x, 0), max(y, 0)
    x1, y1 = min(x + img_w, canvas_w), min(y + img_h, canvas_h)
    if x0 >= x1 or y0 >= y1:
        return

    src = image[y0 - y:y1 - y, x0 - x:x1 - x].astype(np.float32)
    dst = raster[y0:y1, x0:x1].astype(np.float32)

    a = src[:, :, 3:4] / 255.0
    out_a = a + (dst[:, :, 3:4] / 255.0) * (1.0 - a)
    rgb = src[:, :, :3] * a + dst[:, :, :3] * (dst[:, :, 3:4] / 255.0) * (1.0 - a)
    rgb = np.divide(rgb, out_a, out=np.zeros_like(rgb), where=out_a > 0)

    raster[y0:y1, x0:x1, :3] = np.clip(np.rint(rgb), 0.0, 255.0).astype(np.uint8)
    raster[y0:y1, x0:x1, 3:4] = np.clip(np.rint(out_a * 255.0), 0.0, 255.0).astype(np.uint8)
