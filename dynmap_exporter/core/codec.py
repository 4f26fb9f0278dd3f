# dynmap_exporter/core/codec.py
# -*- coding: utf-8 -*-

"""GDAL backed tile decoding and raster encoding.

Tiles are read through GDAL (local files, or ``/vsicurl/`` for http(s)
roots) into (H, W, 4) uint8 arrays. Encoding goes through an in-memory
``MEM`` dataset copied into ``/vsimem/`` with the target driver.
"""

from __future__ import annotations

import logging
import uuid
from pathlib import Path
from typing import Optional
from urllib.parse import urljoin

import numpy as np
from osgeo import gdal

log = logging.getLogger(__name__)


class GdalTileLoader:
    """Load tiles relative to a directory or an http(s) root.

    Args:
        root: Directory or URL the registry paths are relative to. ``None``
            uses the paths as given.
    """

    def __init__(self, root: Optional[str] = None) -> None:
        self.root = root

    def resolve(self, file_path: str) -> str:
        """Return the GDAL source name for a registry path."""
        root = self.root
        if root and root.lower().startswith(("http://", "https://")):
            if not root.endswith("/"):
                root += "/"
            return "/vsicurl/" + urljoin(root, file_path.lstrip("/"))
        if file_path.lower().startswith(("http://", "https://")):
            return "/vsicurl/" + file_path
        if root:
            return str(Path(root) / file_path.lstrip("/"))
        return file_path

    def __call__(self, file_path: str) -> Optional[np.ndarray]:
        return read_rgba(self.resolve(file_path))


def read_rgba(source: str) -> Optional[np.ndarray]:
    """Read an image into an (H, W, 4) uint8 array; ``None`` if unreadable."""
    try:
        ds = gdal.Open(source, gdal.GA_ReadOnly)
    except RuntimeError as ex:
        log.warning("Cannot open tile %s: %s", source, ex)
        return None
    if ds is None:
        log.warning("Cannot open tile %s", source)
        return None

    try:
        band = ds.GetRasterBand(1)
        color_table = band.GetColorTable() if ds.RasterCount == 1 else None
        arr = ds.ReadAsArray()
    except RuntimeError as ex:
        log.warning("Cannot read tile %s: %s", source, ex)
        return None
    finally:
        ds = None

    if arr is None:
        return None
    if color_table is not None:
        lut = np.array(
            [color_table.GetColorEntry(i) for i in range(color_table.GetCount())],
            dtype=np.uint8,
        )
        return lut[np.clip(arr, 0, len(lut) - 1)]
    return to_rgba(arr)


def to_rgba(arr: np.ndarray) -> np.ndarray:
    """Normalise a GDAL ``ReadAsArray`` result ((bands, H, W) or (H, W)) to RGBA."""
    arr = np.asarray(arr)
    if arr.ndim == 2:
        arr = arr[np.newaxis, :, :]
    bands = arr.shape[0]
    arr = arr.astype(np.uint8, copy=False)
    opaque = np.full(arr.shape[1:], 255, dtype=np.uint8)

    if bands == 1:
        planes = [arr[0], arr[0], arr[0], opaque]
    elif bands == 2:
        planes = [arr[0], arr[0], arr[0], arr[1]]
    elif bands == 3:
        planes = [arr[0], arr[1], arr[2], opaque]
    else:
        planes = [arr[0], arr[1], arr[2], arr[3]]
    return np.stack(planes, axis=-1)


def rgba_to_rgb_on_color(arr_rgba: np.ndarray, background: tuple[int, int, int] = (255, 255, 255)) -> np.ndarray:
    """Composite RGBA onto a solid background; return RGB uint8 (for JPEG)."""
    if arr_rgba.ndim != 3 or arr_rgba.shape[2] != 4:
        raise ValueError("Expected RGBA array (H, W, 4)")

    rgb = arr_rgba[:, :, :3].astype(np.float32)
    a = (arr_rgba[:, :, 3:4].astype(np.float32)) / 255.0
    bg = np.empty_like(rgb, dtype=np.float32)
    bg[:, :] = np.asarray(background, dtype=np.float32)
    out = rgb * a + bg * (1.0 - a)
    return np.clip(out, 0.0, 255.0).astype(np.uint8)


def encode_raster(raster: np.ndarray, driver_name: str = "PNG") -> Optional[bytes]:
    """Encode an (H, W, 4) raster with the given GDAL driver; ``None`` on failure."""
    if raster.ndim != 3 or raster.shape[0] == 0 or raster.shape[1] == 0:
        log.error("Cannot encode empty raster of shape %s", raster.shape)
        return None

    height, width = raster.shape[:2]
    if driver_name == "JPEG":
        arr = rgba_to_rgb_on_color(raster)
    else:
        arr = raster
    bands = arr.shape[2]

    vsi_path = f"/vsimem/dynmap_export_{uuid.uuid4().hex}{_extension_for_driver(driver_name)}"
    mem_ds = None
    out_ds = None
    try:
        mem_ds = gdal.GetDriverByName("MEM").Create("", width, height, bands, gdal.GDT_Byte)
        if mem_ds is None:
            log.error("MEM driver returned no dataset.")
            return None
        for i in range(bands):
            mem_ds.GetRasterBand(i + 1).WriteArray(arr[:, :, i])

        driver = gdal.GetDriverByName(driver_name)
        if driver is None:
            log.error("GDAL driver not found: %s", driver_name)
            return None
        out_ds = driver.CreateCopy(vsi_path, mem_ds, 0, options=_create_options(driver_name))
        if out_ds is None:
            log.error("CreateCopy returned None (driver=%s).", driver_name)
            return None
        out_ds.FlushCache()
        out_ds = None
        return _read_vsimem(vsi_path)
    except RuntimeError as ex:
        log.error("Encoding failed (driver=%s): %s", driver_name, ex)
        return None
    finally:
        out_ds = None
        mem_ds = None
        if gdal.VSIStatL(vsi_path) is not None:
            gdal.Unlink(vsi_path)


def _read_vsimem(vsi_path: str) -> Optional[bytes]:
    fh = gdal.VSIFOpenL(vsi_path, "rb")
    if fh is None:
        return None
    try:
        gdal.VSIFSeekL(fh, 0, 2)
        size = gdal.VSIFTellL(fh)
        gdal.VSIFSeekL(fh, 0, 0)
        return bytes(gdal.VSIFReadL(1, size, fh))
    finally:
        gdal.VSIFCloseL(fh)


def _extension_for_driver(driver_name: str) -> str:
    return {"GTiff": ".tif", "JPEG": ".jpg"}.get(driver_name, ".png")


def _create_options(driver_name: str) -> list[str]:
    """Return GDAL CreateCopy() options per driver."""
    if driver_name == "GTiff":
        return ["COMPRESS=LZW", "TILED=YES", "BIGTIFF=IF_SAFER"]
    if driver_name == "JPEG":
        return ["QUALITY=90"]
    return []
