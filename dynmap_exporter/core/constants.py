# dynmap_exporter/core/constants.py
# -*- coding: utf-8 -*-

"""Constants for dynmap_exporter core package."""

# Tile naming (Dynmap storage layout):
TILE_LEVEL_MARKER = "z"
TILE_FOLDER_BUCKET = 32
TILE_PATH_MIN_SEGMENTS = 5

# Export modes:
MODE_VIEWED = "viewed"
MODE_CORNER = "corner"
EXPORT_MODES = (MODE_VIEWED, MODE_CORNER)

# Defaults:
DEFAULT_FILL_COLOR = "#000000"
DEFAULT_TIMEOUT_S = 20
CONFIRM_REMINDER_INTERVAL_S = 2
CONFIRM_POLL_S = 0.05

# Large Raster:
LARGE_RASTER_WARN_MAX_DIM_PX = 20_000
LARGE_RASTER_STRONG_MAX_DIM_PX = 40_000
LARGE_RASTER_WARN_TOTAL_PX = 400_000_000
LARGE_RASTER_STRONG_TOTAL_PX = 1_600_000_000
