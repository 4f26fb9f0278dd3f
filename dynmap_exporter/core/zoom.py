# dynmap_exporter/core/zoom.py
# -*- coding: utf-8 -*-

"""Viewport zoom -> tile level mapping."""

from __future__ import annotations

from .errors import ValidationError


def build_tile_levels(zoom_in_range: int, zoom_out_range: int) -> tuple[int, ...]:
    """Build the tile level table indexed by viewport zoom.

    Index 0 is the most zoomed-out viewport level and maps to the highest
    tile level; the ``zoom_in_range`` deepest zoom indices all map to level 0.

    Example:
        ``build_tile_levels(2, 3) == (3, 2, 1, 0, 0, 0)``
    """
    levels: list[int] = []
    for i in range(-zoom_in_range, zoom_out_range + 1):
        levels.insert(0, i if i >= 0 else 0)
    return tuple(levels)


def tile_level_for_zoom(levels: tuple[int, ...], zoom: int) -> int:
    """Return the tile level for ``zoom``.

    Raises:
        ValidationError: If ``zoom`` is outside the table.
    """
    if zoom < 0 or zoom >= len(levels):
        raise ValidationError(
            "ERR_VALIDATION_ZOOM_OUT_OF_RANGE",
            f"Zoom {zoom} outside of 0..{len(levels) - 1}",
        )
    return levels[zoom]
