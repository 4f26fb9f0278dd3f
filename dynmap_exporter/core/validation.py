# dynmap_exporter/core/validation.py
# -*- coding: utf-8 -*-

"""Shared validation helpers for front-end and exporter."""

from __future__ import annotations

import math
import os
from pathlib import Path
from typing import Any, Mapping, Optional, Tuple

from PIL import ImageColor

from .constants import (
    EXPORT_MODES,
    LARGE_RASTER_STRONG_MAX_DIM_PX,
    LARGE_RASTER_STRONG_TOTAL_PX,
    LARGE_RASTER_WARN_MAX_DIM_PX,
    LARGE_RASTER_WARN_TOTAL_PX,
)
from .errors import PreconditionError, ValidationError
from .models import ExportOptions, ProviderDescriptor

# Paths every provider object has to expose (Dynmap client layout).
REQUIRED_PROVIDER_PATHS = (
    "map.zoom",
    "maptype.options",
    "maptype.options.mapzoomin",
    "maptype.options.mapzoomout",
    "maptype.options.prefix",
    "maptype.options.tileSize",
    "options.url.tiles",
    "registeredTiles",
    "world.name",
)


def get_obj_value(obj: Any, path: str = "") -> Any:
    """Resolve a dotted path through mapping keys or attributes.

    Returns ``None`` as soon as one step is missing.
    """
    if path == "":
        return obj

    current = obj
    for part in path.split("."):
        if current is None:
            return None
        if isinstance(current, Mapping):
            current = current.get(part, None)
        else:
            current = getattr(current, part, None)
    return current


def validate_provider(provider: Any) -> ProviderDescriptor:
    """Check the provider object and build a ``ProviderDescriptor``.

    All required paths are checked before any value is interpreted.

    Raises:
        PreconditionError: If the provider or one of the required fields is missing.
        ValidationError: If a field has an unusable value.
    """
    if provider is None:
        raise ValidationError("ERR_PRECONDITION_PROVIDER", "No provider object given.")

    for path in REQUIRED_PROVIDER_PATHS:
        if get_obj_value(provider, path) is None:
            raise PreconditionError(path)

    options = get_obj_value(provider, "maptype.options")
    zoom_in = _as_int(get_obj_value(options, "mapzoomin"), "maptype.options.mapzoomin")
    zoom_out = _as_int(get_obj_value(options, "mapzoomout"), "maptype.options.mapzoomout")
    if zoom_in < 0 or zoom_out < 0:
        raise ValidationError(
            "ERR_VALIDATION_ZOOM_RANGE",
            f"Zoom ranges must be >= 0 (mapzoomin={zoom_in}, mapzoomout={zoom_out}).",
        )

    tile_size = _as_int(get_obj_value(options, "tileSize"), "maptype.options.tileSize")
    if tile_size <= 0:
        raise ValidationError("ERR_VALIDATION_TILE_SIZE", f"Invalid tile size: {tile_size}")

    registry = get_obj_value(provider, "registeredTiles")
    if not isinstance(registry, Mapping):
        raise ValidationError(
            "ERR_VALIDATION_REGISTRY",
            f"registeredTiles must be a mapping, got {type(registry).__name__}.",
        )

    image_format = get_obj_value(options, "image-format") or get_obj_value(options, "imgformat")

    return ProviderDescriptor(
        current_zoom=_as_int(get_obj_value(provider, "map.zoom"), "map.zoom"),
        zoom_in_range=zoom_in,
        zoom_out_range=zoom_out,
        tile_size=tile_size,
        map_prefix=str(get_obj_value(options, "prefix")),
        world_name=str(get_obj_value(provider, "world.name")),
        tiles_base_dir=str(get_obj_value(provider, "options.url.tiles")),
        tile_registry=dict(registry),
        image_format=str(image_format) if image_format else None,
    )


def validate_options(options: ExportOptions) -> None:
    """Validate export options that do not depend on the provider."""
    if options.mode not in EXPORT_MODES:
        raise ValidationError(
            "ERR_VALIDATION_MODE",
            f"Unsupported mode: {options.mode!r} (allowed {', '.join(EXPORT_MODES)})",
        )
    if options.max_tiles is not None:
        max_tiles = _as_number(options.max_tiles)
        if max_tiles is None or max_tiles < 0:
            raise ValidationError("ERR_VALIDATION_MAX_TILES", f"Invalid max_tiles: {options.max_tiles!r}")
    timeout_s = _as_number(options.timeout_s)
    if timeout_s is None or timeout_s < 0:
        raise ValidationError("ERR_VALIDATION_TIMEOUT", f"Invalid timeout: {options.timeout_s!r}")
    parse_fill_color(options.fill_color)
    if options.output_path:
        validate_output_path(options.output_path)


def parse_fill_color(color: str) -> tuple[int, int, int, int]:
    """Parse a CSS colour (``#rgb``, ``#rrggbbaa``, ``white``, ``rgb(0, 0, 0)``, ...) into RGBA."""
    if not isinstance(color, str) or not color.strip():
        raise ValidationError("ERR_VALIDATION_FILL_COLOR", f"Invalid fill color: {color!r}")
    try:
        return ImageColor.getcolor(color.strip(), "RGBA")
    except ValueError as ex:
        raise ValidationError("ERR_VALIDATION_FILL_COLOR", f"Invalid fill color: {color!r} ({ex})")


def validate_output_path(output_path: str) -> None:
    """Ensure output_path's directory exists, is writable, and has a supported extension."""
    if not output_path:
        raise ValidationError("ERR_VALIDATION_OUTPUT_MISSING", "No output_path provided.")

    path_obj = Path(output_path)
    suffix = (path_obj.suffix or "").lower()
    allowed = {".png", ".jpg", ".jpeg", ".tif", ".tiff"}
    if suffix not in allowed:
        raise ValidationError(
            "ERR_VALIDATION_OUTPUT_EXT",
            f"Unsupported output extension: {suffix or '<none>'}",
        )

    parent = path_obj.parent if str(path_obj.parent) else Path(".")
    if not parent.exists() or not parent.is_dir():
        raise ValidationError(
            "ERR_VALIDATION_OUTPUT_DIR",
            f"Output directory does not exist: {parent}",
        )
    if not os.access(parent, os.W_OK):
        raise ValidationError(
            "ERR_VALIDATION_OUTPUT_DIR",
            f"Output directory not writable: {parent}",
        )
    if path_obj.exists() and path_obj.is_dir():
        raise ValidationError(
            "ERR_VALIDATION_OUTPUT_DIR",
            f"Output path points to a directory: {path_obj}",
        )


def validate_pixel_limits(width_px: int, height_px: int) -> None:
    """Validate strong raster size limits."""
    if (
        width_px >= LARGE_RASTER_STRONG_MAX_DIM_PX
        or height_px >= LARGE_RASTER_STRONG_MAX_DIM_PX
        or (width_px * height_px) >= LARGE_RASTER_STRONG_TOTAL_PX
    ):
        raise ValidationError(
            "ERR_VALIDATION_SIZE_TOO_LARGE",
            (
                f"Raster size too large: {width_px}x{height_px} px "
                f"(total {width_px * height_px:,} px)"
            ),
        )


def pixel_limit_status(width_px: int, height_px: int) -> Tuple[str, str]:
    """Return ("ok"/"warn"/"strong", message) for pixel sizes."""
    total_px = int(width_px) * int(height_px)

    if (
        width_px >= LARGE_RASTER_STRONG_MAX_DIM_PX
        or height_px >= LARGE_RASTER_STRONG_MAX_DIM_PX
        or total_px >= LARGE_RASTER_STRONG_TOTAL_PX
    ):
        return (
            "strong",
            f"Raster size exceeds hard limit ({width_px}x{height_px} px, total {total_px:,} px).",
        )

    if (
        width_px >= LARGE_RASTER_WARN_MAX_DIM_PX
        or height_px >= LARGE_RASTER_WARN_MAX_DIM_PX
        or total_px >= LARGE_RASTER_WARN_TOTAL_PX
    ):
        return (
            "warn",
            f"Very large raster ({width_px}x{height_px} px, total {total_px:,} px) - may be slow or fail.",
        )

    return "ok", ""


def _as_int(value: Any, path: str) -> int:
    if isinstance(value, bool):
        raise ValidationError("ERR_VALIDATION_FIELD_TYPE", f"'{path}' must be an integer, got {value!r}.")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError("ERR_VALIDATION_FIELD_TYPE", f"'{path}' must be an integer, got {value!r}.")
    if not number.is_integer():
        raise ValidationError("ERR_VALIDATION_FIELD_TYPE", f"'{path}' must be an integer, got {value!r}.")
    return int(number)


def _as_number(value: Any) -> Optional[float]:
    """Finite float for ``value``; ``None`` when it is not a plain number."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None
