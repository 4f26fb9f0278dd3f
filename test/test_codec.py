import tempfile
import unittest
from pathlib import Path

import numpy as np

try:
    from osgeo import gdal  # noqa: F401
    HAS_GDAL = True
except ImportError:  # pragma: no cover - skip when GDAL unavailable
    HAS_GDAL = False

if HAS_GDAL:
    from dynmap_exporter.core.codec import (
        GdalTileLoader,
        encode_raster,
        read_rgba,
        rgba_to_rgb_on_color,
        to_rgba,
    )


@unittest.skipUnless(HAS_GDAL, "GDAL not available; skipping codec tests")
class CodecTests(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.out_dir = Path(self.tmpdir.name)

    def tearDown(self):
        self.tmpdir.cleanup()

    def test_loader_resolves_roots(self):
        path = "tiles/world/flat/0_0/zz_0_0.png"
        self.assertEqual(GdalTileLoader().resolve(path), path)
        self.assertEqual(
            GdalTileLoader("http://example.org:8123").resolve(path),
            "/vsicurl/http://example.org:8123/" + path,
        )
        self.assertEqual(
            GdalTileLoader("https://example.org/dynmap/").resolve("/" + path),
            "/vsicurl/https://example.org/dynmap/" + path,
        )
        self.assertEqual(GdalTileLoader(str(self.out_dir)).resolve(path), str(self.out_dir / path))

    def test_to_rgba_band_layouts(self):
        gray = np.full((2, 3), 7, dtype=np.uint8)
        self.assertEqual(tuple(to_rgba(gray)[0, 0]), (7, 7, 7, 255))

        rgb = np.stack([np.full((2, 2), v, dtype=np.uint8) for v in (1, 2, 3)])
        self.assertEqual(tuple(to_rgba(rgb)[1, 1]), (1, 2, 3, 255))

        rgba = np.stack([np.full((2, 2), v, dtype=np.uint8) for v in (1, 2, 3, 4)])
        self.assertEqual(to_rgba(rgba).shape, (2, 2, 4))
        self.assertEqual(tuple(to_rgba(rgba)[0, 1]), (1, 2, 3, 4))

    def test_rgb_on_color(self):
        rgba = np.zeros((1, 1, 4), dtype=np.uint8)
        self.assertEqual(tuple(rgba_to_rgb_on_color(rgba)[0, 0]), (255, 255, 255))
        self.assertEqual(tuple(rgba_to_rgb_on_color(rgba, (0, 0, 0))[0, 0]), (0, 0, 0))

    def test_png_encode_is_readable(self):
        raster = np.zeros((8, 12, 4), dtype=np.uint8)
        raster[:, :] = (10, 20, 30, 255)
        raster[:4, :6] = (200, 0, 0, 128)

        blob = encode_raster(raster, "PNG")

        self.assertIsNotNone(blob)
        self.assertTrue(blob.startswith(b"\x89PNG"))

        tile_path = self.out_dir / "tiles" / "world" / "flat" / "0_0" / "0_0.png"
        tile_path.parent.mkdir(parents=True)
        tile_path.write_bytes(blob)

        loaded = GdalTileLoader(str(self.out_dir))("tiles/world/flat/0_0/0_0.png")
        self.assertTrue(np.array_equal(loaded, raster))

    def test_encode_empty_raster_returns_none(self):
        self.assertIsNone(encode_raster(np.zeros((0, 0, 4), dtype=np.uint8)))

    def test_read_missing_tile_returns_none(self):
        self.assertIsNone(read_rgba(str(self.out_dir / "missing.png")))


if __name__ == "__main__":
    unittest.main()
