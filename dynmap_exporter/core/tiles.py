# dynmap_exporter/core/tiles.py
# -*- coding: utf-8 -*-

"""Tile registry scanning and grid reconstruction.

Tile paths follow the Dynmap storage layout::

    <tiles>/<world>/<map>/<folder>/<name>
    tiles/world/flat/0_0/zz_-32_64.png

Filename grammar: an optional run of ``z`` markers whose length is the tile
level, followed by exactly two signed integers (raw file coordinates).
Raw coordinates are multiples of ``2**level``; folders bucket raw
coordinates by 32.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Mapping, Optional

from .constants import TILE_FOLDER_BUCKET, TILE_LEVEL_MARKER, TILE_PATH_MIN_SEGMENTS
from .errors import MalformedFilenameError, MalformedPathError
from .models import BoundingBox, TileRecord

log = logging.getLogger(__name__)

_MARKER_RE = re.compile(re.escape(TILE_LEVEL_MARKER) + "+")
_COORD_RE = re.compile(r"-?[0-9]+")


@dataclass(frozen=True)
class TileName:
    """Parsed tile filename."""

    level: int
    x: int
    y: int


@dataclass(frozen=True)
class ScanResult:
    """Accepted records (registry order) and their bounding box."""

    records: tuple[TileRecord, ...]
    bbox: BoundingBox
    scanned: int


def parse_tile_name(file_name: str) -> TileName:
    """Parse a tile filename such as ``zz_-32_64.png``.

    Raises:
        MalformedFilenameError: If the name does not carry exactly two integers.
    """
    marker = _MARKER_RE.search(file_name)
    level = len(marker.group(0)) if marker else 0

    coords = _COORD_RE.findall(file_name)
    if len(coords) != 2:
        raise MalformedFilenameError(
            "ERR_TILE_FILENAME",
            f"Expected two coordinates in tile name '{file_name}', found {len(coords)}.",
        )
    return TileName(level=level, x=int(coords[0]), y=int(coords[1]))


def format_tile_name(level: int, file_x: int, file_y: int, image_format: Optional[str] = None) -> str:
    """Inverse of ``parse_tile_name`` for synthesized tiles."""
    prefix = TILE_LEVEL_MARKER * level + "_" if level > 0 else ""
    name = f"{prefix}{file_x}_{file_y}"
    if image_format:
        name += "." + image_format.lstrip(".")
    return name


def scan_registry(
    registry: Mapping[str, str],
    *,
    tile_level: int,
    world_name: str,
    map_name: str,
) -> ScanResult:
    """Filter the tile registry to one world/map/level.

    Args:
        registry: Opaque key -> tile path, iterated in insertion order.
        tile_level: Active tile level.
        world_name: Active world.
        map_name: Active map folder (``maptype.options.prefix``).

    Returns:
        Accepted records with grid positions (raw / ``2**tile_level``) and the
        bounding box over them.

    Raises:
        MalformedPathError: On a non-string path or one with fewer than five segments.
        MalformedFilenameError: On a filename without exactly two coordinates.
    """
    offset = 2 ** tile_level
    bbox = BoundingBox()
    records: list[TileRecord] = []

    for file_path in registry.values():
        if not isinstance(file_path, str):
            raise MalformedPathError("ERR_TILE_PATH", f"Tile path must be a string, got {file_path!r}")
        split = file_path.split("/")
        if len(split) < TILE_PATH_MIN_SEGMENTS:
            raise MalformedPathError(
                "ERR_TILE_PATH",
                f"Tile path needs at least {TILE_PATH_MIN_SEGMENTS} segments: '{file_path}'",
            )

        file_name = split[-1]
        tile_map = split[-3]
        tile_world = split[-4]
        name = parse_tile_name(file_name)

        if name.level != tile_level or tile_world != world_name or tile_map != map_name:
            continue

        tile_x = name.x // offset
        tile_y = name.y // offset
        bbox.include(tile_x, tile_y)

        records.append(
            TileRecord(
                file_path=file_path,
                tile_pos=(tile_x, tile_y),
                tile_level=name.level,
                world_name=tile_world,
                map_name=tile_map,
            )
        )

    log.debug("Scanned %d registry entries, accepted %d.", len(registry), len(records))
    return ScanResult(records=tuple(records), bbox=bbox, scanned=len(registry))


def tile_folder(file_x: int, file_y: int) -> str:
    """Folder holding the tile with raw coordinates ``(file_x, file_y)``."""
    return f"{file_x // TILE_FOLDER_BUCKET}_{file_y // TILE_FOLDER_BUCKET}"


def reconstruct_grid(
    bbox: BoundingBox,
    *,
    tile_level: int,
    tiles_base_dir: str,
    world_name: str,
    map_name: str,
    image_format: Optional[str] = None,
) -> tuple[TileRecord, ...]:
    """Synthesize one record for every cell of ``bbox`` (corner mode).

    Cells are emitted column by column (x outer, y inner), both ends
    inclusive. Tiles that were never rendered are requested anyway.
    """
    offset = 2 ** tile_level
    records: list[TileRecord] = []

    for tile_x in range(bbox.min_x, bbox.max_x + 1):
        for tile_y in range(bbox.min_y, bbox.max_y + 1):
            file_x = tile_x * offset
            file_y = tile_y * offset
            file_name = format_tile_name(tile_level, file_x, file_y, image_format)
            records.append(
                TileRecord(
                    file_path=(
                        f"{tiles_base_dir}{world_name}/{map_name}/"
                        f"{tile_folder(file_x, file_y)}/{file_name}"
                    ),
                    tile_pos=(tile_x, tile_y),
                    tile_level=tile_level,
                    world_name=world_name,
                    map_name=map_name,
                )
            )

    return tuple(records)
