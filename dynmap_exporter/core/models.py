# dynmap_exporter/core/models.py
# -*- coding: utf-8 -*-

"""Data models used across front-end and exporter.

This module is intentionally small and UI-agnostic.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from .constants import DEFAULT_FILL_COLOR, DEFAULT_TIMEOUT_S, MODE_VIEWED


@dataclass(frozen=True)
class ProviderDescriptor:
    """Validated view of the map provider (Dynmap client state).

    Args:
        current_zoom: Viewport zoom index (0 = most zoomed out).
        zoom_in_range: ``mapzoomin`` of the active map.
        zoom_out_range: ``mapzoomout`` of the active map.
        tile_size: Edge length of one tile in pixels.
        map_prefix: Folder name of the active map (e.g. ``flat``).
        world_name: Name of the active world.
        tiles_base_dir: Tiles URL prefix (default ``tiles/``).
        tile_registry: Opaque key -> tile path, in registration order.
        image_format: Optional tile file extension used for synthesized names.
    """

    current_zoom: int
    zoom_in_range: int
    zoom_out_range: int
    tile_size: int
    map_prefix: str
    world_name: str
    tiles_base_dir: str
    tile_registry: Mapping[str, str]
    image_format: Optional[str] = None


@dataclass(frozen=True)
class ExportOptions:
    """All parameters required to compose and export one map image.

    Args:
        provider: Raw provider object or mapping; validated at export time.
        auto_start: Skip the confirmation gate.
        calc_only: Stop after computing the composite plan.
        fill_color: Background colour (``#rgb``, ``#rrggbb`` or ``#rrggbbaa``).
        max_tiles: Optional cap on the number of tiles drawn.
        mode: ``viewed`` (registered tiles) or ``corner`` (dense grid).
        timeout_s: Seconds to wait for confirmation.
        output_path: Optional file the encoded image is written to.
        tiles_root: Directory or http(s) URL registry paths are relative to.
    """

    provider: Any
    auto_start: bool = False
    calc_only: bool = False
    fill_color: str = DEFAULT_FILL_COLOR
    max_tiles: Optional[int] = None
    mode: str = MODE_VIEWED
    timeout_s: float = DEFAULT_TIMEOUT_S
    output_path: Optional[str] = None
    tiles_root: Optional[str] = None


@dataclass(frozen=True)
class TileRecord:
    """One tile to draw; ``tile_pos`` is in grid units (raw / 2**level)."""

    file_path: str
    tile_pos: tuple[int, int]
    tile_level: int = 0
    world_name: str = ""
    map_name: str = ""


@dataclass
class BoundingBox:
    """Grid extent of all accepted tiles. Starts at the origin and only grows."""

    min_x: int = 0
    max_x: int = 0
    min_y: int = 0
    max_y: int = 0

    def include(self, x: int, y: int) -> None:
        """Widen the box so that it contains ``(x, y)``."""
        if x < self.min_x:
            self.min_x = x
        if x > self.max_x:
            self.max_x = x
        if y < self.min_y:
            self.min_y = y
        if y > self.max_y:
            self.max_y = y


@dataclass(frozen=True)
class CompositePlan:
    """Canvas geometry and draw list derived from a scan."""

    canvas_width: int
    canvas_height: int
    tile_size: int
    bbox: BoundingBox
    tiles: tuple[TileRecord, ...]
    y_remap: Mapping[int, int]


@dataclass(frozen=True)
class ExportResult:
    """Outcome of one export.

    ``ok`` is ``True`` for completed exports, including "nothing to export",
    calculation-only runs and a declined confirmation. ``code`` is a stable key
    for the front-end (``STEP_DONE``, ``INFO_*`` or an ``ERR_*`` code).
    """

    ok: bool
    code: str
    details: str = ""
    plan: Optional[CompositePlan] = None
    image: Optional[bytes] = None
    url: Optional[str] = None
    output_path: Optional[str] = None
    tiles_drawn: int = 0
    tiles_failed: int = 0

    def __bool__(self) -> bool:
        return self.ok


@dataclass
class DecisionToken:
    """One-shot confirm/cancel channel shared between front-end and gate.

    The token only accepts a decision while the gate holds it open; the first
    decision wins and the handles go inert once the gate resolves.
    """

    decision: Optional[bool] = None
    active: bool = field(default=False)

    def open(self) -> None:
        self.active = True

    def close(self) -> None:
        """Tear down the confirm/cancel handles."""
        self.active = False

    def confirm(self) -> Optional[str]:
        """Confirm the pending export."""
        if not self.active or self.decision is not None:
            return None
        self.decision = True
        return "CONFIRMED"

    def cancel(self) -> Optional[str]:
        """Cancel the pending export."""
        if not self.active or self.decision is not None:
            return None
        self.decision = False
        return "CANCELLED"
