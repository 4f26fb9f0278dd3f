# dynmap_exporter/cli.py
# -*- coding: utf-8 -*-
"""
Command line front-end for the Dynmap exporter.

Notes:
    - The provider is a JSON snapshot of the Dynmap client object, e.g. from
      the browser console::

          copy(JSON.stringify({
            map: {zoom: dynmap.map.getZoom()},
            maptype: {options: dynmap.maptype.options},
            options: {url: {tiles: dynmap.options.url.tiles}},
            registeredTiles: dynmap.registeredTiles,
            world: {name: dynmap.world.name},
          }))

    - Registry paths are resolved against ``--tiles-root`` (web root URL of
      the Dynmap server or a local copy of it).
    - While the export waits for confirmation, type ``y`` (confirm) or ``n``
      (cancel) followed by Enter.
"""

from __future__ import annotations

import argparse
import json
import logging
import select
import sys
from typing import Any, Optional

from . import __version__
from .core.confirmation import ConfirmationGate
from .core.constants import DEFAULT_FILL_COLOR, DEFAULT_TIMEOUT_S, EXPORT_MODES, MODE_VIEWED
from .core.exporter import DynmapExporter
from .core.models import DecisionToken, ExportOptions, ExportResult

log = logging.getLogger("dynmap_exporter")

PROGRESS_TEMPLATES = {
    "STEP_VALIDATE": "{step}/{total}: Validating provider",
    "STEP_SCAN": "{step}/{total}: Scanning tile registry",
    "STEP_CONFIRM": "{step}/{total}: Waiting for confirmation",
    "STEP_DRAW": "Drawing tiles ({done}/{total})",
    "STEP_ENCODE": "{step}/{total}: Encoding image",
    "STEP_DONE": "{step}/{total}: Finished",
}

RESULT_MESSAGES = {
    "STEP_DONE": "Export finished.",
    "INFO_NOTHING_TO_EXPORT": "No tiles match the current view, nothing to export.",
    "INFO_CALC_ONLY": "Calculation finished, no image drawn.",
    "INFO_CANCELLED": "Export was cancelled.",
    "INFO_TIMED_OUT": "Export was cancelled automatically (no confirmation).",
    "ERR_PRECONDITION_PROVIDER": "No provider object given.",
    "ERR_PRECONDITION_MISSING": "The provider object is missing a required field.",
    "ERR_VALIDATION_FIELD_TYPE": "A provider field has an invalid value.",
    "ERR_VALIDATION_ZOOM_RANGE": "Invalid zoom range of the map.",
    "ERR_VALIDATION_ZOOM_OUT_OF_RANGE": "Current zoom is outside of the map's zoom range.",
    "ERR_VALIDATION_TILE_SIZE": "Tile resolution is 0.",
    "ERR_VALIDATION_REGISTRY": "Tile registry is invalid.",
    "ERR_VALIDATION_MODE": "Unsupported export mode.",
    "ERR_VALIDATION_MAX_TILES": "Invalid tile limit.",
    "ERR_VALIDATION_TIMEOUT": "Invalid confirmation timeout.",
    "ERR_VALIDATION_FILL_COLOR": "Invalid fill color.",
    "ERR_VALIDATION_OUTPUT_MISSING": "Output path missing.",
    "ERR_VALIDATION_OUTPUT_DIR": "Output directory is invalid or not writable.",
    "ERR_VALIDATION_OUTPUT_EXT": "Unsupported output file extension.",
    "ERR_VALIDATION_SIZE_TOO_LARGE": "Requested raster is too large.",
    "ERR_VALIDATION_EMPTY_CANVAS": "The tiles in view span no area, nothing can be drawn.",
    "ERR_TILE_PATH": "A tile path does not match the expected layout.",
    "ERR_TILE_FILENAME": "A tile filename does not match the expected layout.",
    "ERR_ENCODE_FAILED": "Failed to encode the image.",
    "ERR_IMAGE_SAVE_FAILED": "Failed to write the image.",
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dynmap-export",
        description="Export the current Dynmap view as one image.",
    )
    parser.add_argument("provider", help="JSON snapshot of the Dynmap client object")
    parser.add_argument("-o", "--output", help="output image (.png, .jpg, .tif)")
    parser.add_argument("--tiles-root", help="web root URL or directory the tile paths are relative to")
    parser.add_argument("--zoom", type=int, help="override the current viewport zoom")
    parser.add_argument("--mode", choices=EXPORT_MODES, default=MODE_VIEWED)
    parser.add_argument("--fill-color", default=DEFAULT_FILL_COLOR)
    parser.add_argument("--max-tiles", type=int, default=None)
    parser.add_argument("--timeout", type=float, default=DEFAULT_TIMEOUT_S, help="seconds to wait for confirmation")
    parser.add_argument("-y", "--yes", action="store_true", help="start without confirmation")
    parser.add_argument("--calc-only", action="store_true", help="only compute the export plan")
    parser.add_argument("-v", "--verbose", action="store_true")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def load_provider(path: str, *, zoom: Optional[int] = None) -> Any:
    """Read the provider snapshot; ``zoom`` replaces ``map.zoom``."""
    with open(path, "r", encoding="utf-8") as fh:
        provider = json.load(fh)
    if zoom is not None and isinstance(provider, dict):
        provider.setdefault("map", {})["zoom"] = zoom
    return provider


def format_progress(key: str, args: dict[str, Any]) -> str:
    """Convert exporter progress keys into messages."""
    if key == "WARN_CONFIRM_PENDING":
        return "Type 'y' within {s:.0f} s to confirm the export, or 'n' to cancel.".format(
            s=float(args.get("seconds", 0) or 0),
        )
    if key == "WARN_TILE_FAILED":
        return "Tile could not be loaded: {path}".format(path=args.get("path", "?"))
    if key == "WARN_LARGE_EXPORT":
        return str(args.get("message", "Very large export."))

    tmpl = PROGRESS_TEMPLATES.get(key, key)
    try:
        return tmpl.format(**args)
    except (KeyError, IndexError):
        return tmpl


def format_result(result: ExportResult) -> str:
    """Convert an export result into a user-facing message."""
    base = RESULT_MESSAGES.get(result.code, "Export failed." if not result.ok else result.code)
    if result.details:
        return f"{base}\nDetails: {result.details}"
    return base


def stdin_decision_pump(token: DecisionToken):
    """Return a ``process_events`` hook that feeds y/n lines from stdin into ``token``."""

    def process_events() -> None:
        try:
            ready, _, _ = select.select([sys.stdin], [], [], 0)
        except (OSError, ValueError):
            return
        if not ready:
            return
        answer = sys.stdin.readline().strip().lower()
        if answer in {"y", "yes"}:
            token.confirm()
        elif answer in {"n", "no"}:
            token.cancel()

    return process_events


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        provider = load_provider(args.provider, zoom=args.zoom)
    except (OSError, ValueError) as ex:
        log.error("Cannot read provider snapshot %s: %s", args.provider, ex)
        return 2

    options = ExportOptions(
        provider=provider,
        auto_start=args.yes,
        calc_only=args.calc_only,
        fill_color=args.fill_color,
        max_tiles=args.max_tiles,
        mode=args.mode,
        timeout_s=args.timeout,
        output_path=args.output,
        tiles_root=args.tiles_root,
    )

    def progress_cb(percent: int, key: str, msg_args: dict[str, Any]) -> None:
        level = logging.WARNING if key.startswith("WARN_") else logging.INFO
        log.log(level, "[%3d%%] %s", percent, format_progress(key, msg_args))

    token = DecisionToken()
    gate = ConfirmationGate(
        args.timeout,
        reminder_cb=lambda s: progress_cb(10, "WARN_CONFIRM_PENDING", {"seconds": s}),
        process_events=stdin_decision_pump(token),
    )

    result = DynmapExporter().export(options, progress_cb=progress_cb, decision=token, gate=gate)

    if result.ok:
        log.info(format_result(result))
        if result.plan is not None:
            log.info(
                "Tiles: %d, image size: %d x %d",
                len(result.plan.tiles),
                result.plan.canvas_width,
                result.plan.canvas_height,
            )
        if result.output_path:
            log.info("Image written to %s", result.output_path)
        elif result.image is not None:
            log.info("No --output given; the image was encoded (%d bytes) but not written.", len(result.image))
        return 0

    log.error(format_result(result))
    return 1
