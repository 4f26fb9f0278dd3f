# dynmap_exporter/core/exporter.py
# -*- coding: utf-8 -*-

"""Exporter implementation (UI-agnostic).

Pipeline:
- Validate provider + options
- Translate viewport zoom into a tile level
- Scan the tile registry (bounding box), optionally rebuild a dense grid
- Wait for confirmation (auto-start, confirm, cancel, timeout)
- Draw tiles sequentially onto a filled canvas and encode it

Hard failures come back as ``ExportResult(ok=False)``; "nothing to export",
calculation-only runs and declined confirmations are ``ok=True`` with an
``INFO_*`` code.
"""

from __future__ import annotations

import base64
import logging
from pathlib import Path
from typing import Any, Callable, Optional

import numpy as np

from .compositor import Compositor, ProgressCallback, TileLoader, plan_composite
from .confirmation import ConfirmationGate, GateOutcome
from .constants import MODE_CORNER
from .errors import ExportError, ValidationError
from .models import DecisionToken, ExportOptions, ExportResult
from .tiles import reconstruct_grid, scan_registry
from .validation import (
    parse_fill_color,
    pixel_limit_status,
    validate_options,
    validate_pixel_limits,
    validate_provider,
)
from .zoom import build_tile_levels, tile_level_for_zoom

log = logging.getLogger(__name__)

Encoder = Callable[[np.ndarray, str], Optional[bytes]]


def driver_for_output(output_path: Optional[str]) -> str:
    """Return GDAL driver name for the given output path suffix (PNG by default)."""
    ext = (Path(output_path).suffix if output_path else "").lower()
    if ext in {".tif", ".tiff"}:
        return "GTiff"
    if ext in {".jpg", ".jpeg"}:
        return "JPEG"
    return "PNG"


def mime_type_for_driver(driver_name: str) -> str:
    return {"GTiff": "image/tiff", "JPEG": "image/jpeg"}.get(driver_name, "image/png")


class DynmapExporter:
    """Compose a Dynmap view from its tile registry and export it as one image.

    GDAL is only imported when a default loader or encoder is needed.

    Args:
        loader: Tile loader; defaults to ``GdalTileLoader(options.tiles_root)``.
        encoder: Raster encoder; defaults to ``encode_raster``.
    """

    def __init__(self, *, loader: Optional[TileLoader] = None, encoder: Optional[Encoder] = None) -> None:
        self.loader = loader
        self.encoder = encoder

    def export(
        self,
        options: ExportOptions,
        *,
        progress_cb: Optional[ProgressCallback] = None,
        decision: Optional[DecisionToken] = None,
        gate: Optional[ConfirmationGate] = None,
    ) -> ExportResult:
        """Run one export.

        Args:
            options: Export options including the raw provider object.
            progress_cb: Callback(percent, message_key, message_args).
            decision: Token the front-end uses to confirm or cancel.
            gate: Confirmation gate; defaults to one built from ``options.timeout_s``.

        Returns:
            Export result; ``bool(result)`` is ``False`` only on hard failures.
        """
        try:
            return self._export(options, progress_cb=progress_cb, decision=decision, gate=gate)
        except ExportError as ex:
            log.error("Export failed [%s]: %s", ex.code, ex.details)
            return ExportResult(ok=False, code=ex.code, details=ex.details)

    def _export(
        self,
        options: ExportOptions,
        *,
        progress_cb: Optional[ProgressCallback],
        decision: Optional[DecisionToken],
        gate: Optional[ConfirmationGate],
    ) -> ExportResult:
        self._report(progress_cb, 2, "STEP_VALIDATE", {"step": 1, "total": 5})
        descriptor = validate_provider(options.provider)
        validate_options(options)
        fill_rgba = parse_fill_color(options.fill_color)

        tile_levels = build_tile_levels(descriptor.zoom_in_range, descriptor.zoom_out_range)
        tile_level = tile_level_for_zoom(tile_levels, descriptor.current_zoom)

        self._report(progress_cb, 5, "STEP_SCAN", {"step": 2, "total": 5})
        scan = scan_registry(
            descriptor.tile_registry,
            tile_level=tile_level,
            world_name=descriptor.world_name,
            map_name=descriptor.map_prefix,
        )

        tiles = scan.records
        if options.mode == MODE_CORNER:
            tiles = reconstruct_grid(
                scan.bbox,
                tile_level=tile_level,
                tiles_base_dir=descriptor.tiles_base_dir,
                world_name=descriptor.world_name,
                map_name=descriptor.map_prefix,
                image_format=descriptor.image_format,
            )

        plan = plan_composite(tiles, scan.bbox, descriptor.tile_size)
        log.info(
            "Export plan: world=%s map=%s zoom=%d levels=%s level=%d mode=%s bbox=%s tiles=%d size=%dx%d",
            descriptor.world_name,
            descriptor.map_prefix,
            descriptor.current_zoom,
            list(tile_levels),
            tile_level,
            options.mode,
            scan.bbox,
            len(plan.tiles),
            plan.canvas_width,
            plan.canvas_height,
        )

        if not plan.tiles:
            log.warning("No tiles matched the current view, nothing to export.")
            return ExportResult(ok=True, code="INFO_NOTHING_TO_EXPORT", plan=plan)

        if options.calc_only:
            return ExportResult(ok=True, code="INFO_CALC_ONLY", plan=plan)

        if plan.canvas_width <= 0 or plan.canvas_height <= 0:
            raise ValidationError(
                "ERR_VALIDATION_EMPTY_CANVAS",
                f"Tiles span a {plan.canvas_width}x{plan.canvas_height} px canvas, nothing can be drawn.",
            )
        validate_pixel_limits(plan.canvas_width, plan.canvas_height)
        status, message = pixel_limit_status(plan.canvas_width, plan.canvas_height)
        if status == "warn":
            self._report(progress_cb, 8, "WARN_LARGE_EXPORT", {"message": message})

        self._report(progress_cb, 10, "STEP_CONFIRM", {"step": 3, "total": 5})
        if gate is None:
            gate = ConfirmationGate(
                options.timeout_s,
                reminder_cb=lambda s: self._report(progress_cb, 10, "WARN_CONFIRM_PENDING", {"seconds": s}),
            )
        outcome = gate.wait(decision, auto_confirm=options.auto_start)
        if not outcome.proceed:
            code = "INFO_TIMED_OUT" if outcome is GateOutcome.TIMED_OUT else "INFO_CANCELLED"
            log.warning("Export not started (%s).", outcome.value)
            return ExportResult(ok=True, code=code, plan=plan)

        self._report(progress_cb, 15, "STEP_DRAW", {"step": 4, "total": 5})
        compositor = Compositor(self._loader_for(options), progress_cb=progress_cb)
        driver_name = driver_for_output(options.output_path)

        raster = compositor.allocate(plan, fill_rgba)
        try:
            stats = compositor.draw(plan, raster, max_tiles=options.max_tiles)
            self._report(progress_cb, 92, "STEP_ENCODE", {"step": 5, "total": 5})
            blob = self._encoder()(raster, driver_name)
        finally:
            raster = None

        if not blob:
            raise ExportError("ERR_ENCODE_FAILED", f"Encoder returned no data (driver={driver_name}).")

        output_path = None
        if options.output_path:
            output_path = self._write_output(options.output_path, blob)
            url = Path(output_path).resolve().as_uri()
        else:
            url = self._data_url(blob, mime_type_for_driver(driver_name))

        log.info(
            "Export done: %d drawn, %d failed, %d skipped by cap.",
            stats.drawn,
            stats.failed,
            stats.skipped,
        )
        self._report(progress_cb, 100, "STEP_DONE", {"step": 5, "total": 5})
        return ExportResult(
            ok=True,
            code="STEP_DONE",
            plan=plan,
            image=blob,
            url=url,
            output_path=output_path,
            tiles_drawn=stats.drawn,
            tiles_failed=stats.failed,
        )

    def _loader_for(self, options: ExportOptions) -> TileLoader:
        if self.loader is not None:
            return self.loader
        from .codec import GdalTileLoader

        return GdalTileLoader(options.tiles_root)

    def _encoder(self) -> Encoder:
        if self.encoder is not None:
            return self.encoder
        from .codec import encode_raster

        return encode_raster

    def _write_output(self, output_path: str, blob: bytes) -> str:
        try:
            Path(output_path).write_bytes(blob)
        except OSError as ex:
            raise ExportError("ERR_IMAGE_SAVE_FAILED", f"Failed to write '{output_path}': {ex}")
        return output_path

    @staticmethod
    def _data_url(blob: bytes, mime: str) -> str:
        return f"data:{mime};base64,{base64.b64encode(blob).decode('ascii')}"

    def _report(
        self,
        cb: Optional[ProgressCallback],
        percent: int,
        key: str,
        args: Optional[dict[str, Any]] = None,
    ) -> None:
        if cb is not None:
            cb(int(percent), key, args or {})
