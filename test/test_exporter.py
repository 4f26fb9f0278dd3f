import base64
import tempfile
import unittest
from pathlib import Path

import numpy as np

from dynmap_exporter.core.confirmation import ConfirmationGate
from dynmap_exporter.core.exporter import DynmapExporter, driver_for_output, mime_type_for_driver
from dynmap_exporter.core.models import DecisionToken, ExportOptions

TILE = 4


def make_provider(raw_positions, *, zoom=0, tile_size=TILE, image_format=None):
    options = {"mapzoomin": 0, "mapzoomout": 2, "prefix": "flat", "tileSize": tile_size}
    if image_format:
        options["image-format"] = image_format
    return {
        "map": {"zoom": zoom},
        "maptype": {"options": options},
        "options": {"url": {"tiles": "tiles/"}},
        "registeredTiles": {
            f"k{i}": f"tiles/world/flat/0_0/zz_{x}_{y}.png" for i, (x, y) in enumerate(raw_positions)
        },
        "world": {"name": "world"},
    }


FIVE_TILES = [(0, 0), (4, 0), (8, 0), (0, 4), (4, 4)]


class FakeLoader:
    def __init__(self, available=None):
        self.available = available
        self.calls = []

    def __call__(self, path):
        self.calls.append(path)
        if self.available is not None and path not in self.available:
            return None
        img = np.empty((TILE, TILE, 4), dtype=np.uint8)
        img[:, :] = (200, 100, 50, 255)
        return img


class FakeEncoder:
    def __init__(self, result=b"PNGDATA"):
        self.result = result
        self.calls = []

    def __call__(self, raster, driver_name):
        self.calls.append((raster.shape, driver_name, raster.copy()))
        return self.result


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.now += seconds


class GateMustNotWait:
    def wait(self, *_args, **_kwargs):
        raise AssertionError("confirmation gate should not be awaited")


class DynmapExporterTests(unittest.TestCase):
    def setUp(self):
        self.loader = FakeLoader()
        self.encoder = FakeEncoder()
        self.exporter = DynmapExporter(loader=self.loader, encoder=self.encoder)
        self.progress = []

    def _export(self, options, **kwargs):
        return self.exporter.export(
            options,
            progress_cb=lambda p, k, a: self.progress.append(k),
            **kwargs,
        )

    def _fake_gate(self, timeout_s=4, process_events=None):
        clock = FakeClock()
        return ConfirmationGate(timeout_s, process_events=process_events, sleep=clock.sleep, clock=clock)

    def test_missing_registry_fails_without_drawing(self):
        provider = make_provider(FIVE_TILES)
        del provider["registeredTiles"]

        result = self._export(ExportOptions(provider=provider, auto_start=True))

        self.assertFalse(result)
        self.assertEqual(result.code, "ERR_PRECONDITION_MISSING")
        self.assertIn("registeredTiles", result.details)
        self.assertEqual(self.loader.calls, [])
        self.assertEqual(self.encoder.calls, [])

    def test_calc_only_skips_gate_and_drawing(self):
        result = self._export(
            ExportOptions(provider=make_provider(FIVE_TILES), calc_only=True),
            gate=GateMustNotWait(),
        )

        self.assertTrue(result)
        self.assertEqual(result.code, "INFO_CALC_ONLY")
        self.assertEqual(len(result.plan.tiles), 5)
        self.assertEqual((result.plan.canvas_width, result.plan.canvas_height), (2 * TILE, 1 * TILE))
        self.assertEqual(self.loader.calls, [])
        self.assertEqual(self.encoder.calls, [])

    def test_nothing_to_export(self):
        provider = make_provider(FIVE_TILES, zoom=2)  # level 0, registry only has level 2

        result = self._export(ExportOptions(provider=provider), gate=GateMustNotWait())

        self.assertTrue(result)
        self.assertEqual(result.code, "INFO_NOTHING_TO_EXPORT")
        self.assertEqual(self.encoder.calls, [])

    def test_timeout_is_not_an_error(self):
        result = self._export(ExportOptions(provider=make_provider(FIVE_TILES)), gate=self._fake_gate())

        self.assertTrue(result)
        self.assertEqual(result.code, "INFO_TIMED_OUT")
        self.assertEqual(self.loader.calls, [])
        self.assertEqual(self.encoder.calls, [])

    def test_cancel_is_not_an_error(self):
        token = DecisionToken()
        gate = self._fake_gate(process_events=token.cancel)

        result = self._export(ExportOptions(provider=make_provider(FIVE_TILES)), decision=token, gate=gate)

        self.assertTrue(result)
        self.assertEqual(result.code, "INFO_CANCELLED")
        self.assertEqual(self.loader.calls, [])

    def test_confirmed_export_draws_and_encodes(self):
        token = DecisionToken()
        gate = self._fake_gate(process_events=token.confirm)

        result = self._export(
            ExportOptions(provider=make_provider(FIVE_TILES), fill_color="#102030"),
            decision=token,
            gate=gate,
        )

        self.assertTrue(result)
        self.assertEqual(result.code, "STEP_DONE")
        self.assertEqual(result.image, b"PNGDATA")
        self.assertEqual(result.tiles_drawn, 5)
        self.assertEqual(result.url, "data:image/png;base64," + base64.b64encode(b"PNGDATA").decode("ascii"))
        self.assertEqual(len(self.loader.calls), 5)

        shape, driver_name, raster = self.encoder.calls[0]
        self.assertEqual(shape, (1 * TILE, 2 * TILE, 4))
        self.assertEqual(driver_name, "PNG")
        self.assertTrue((raster[:, :, :3] == (200, 100, 50)).all())

        self.assertEqual(self.progress[0], "STEP_VALIDATE")
        self.assertEqual(self.progress[-1], "STEP_DONE")
        self.assertIn("STEP_CONFIRM", self.progress)
        self.assertIn("STEP_ENCODE", self.progress)

    def test_tile_cap(self):
        result = self._export(ExportOptions(provider=make_provider(FIVE_TILES), auto_start=True, max_tiles=2))

        self.assertTrue(result)
        self.assertEqual(result.tiles_drawn, 2)
        self.assertEqual(len(self.loader.calls), 2)

    def test_corner_mode_requests_every_cell(self):
        provider = make_provider([(0, 0), (8, 4)], image_format="png")
        self.loader.available = set(provider["registeredTiles"].values())

        result = self._export(ExportOptions(provider=provider, auto_start=True, mode="corner"))

        self.assertTrue(result)
        self.assertEqual(len(self.loader.calls), 6)
        self.assertEqual(result.tiles_drawn, 2)
        self.assertEqual(result.tiles_failed, 4)
        self.assertIn("tiles/world/flat/0_0/zz_4_0.png", self.loader.calls)
        self.assertIn("WARN_TILE_FAILED", self.progress)

    def test_encode_failure(self):
        self.exporter = DynmapExporter(loader=self.loader, encoder=FakeEncoder(result=None))

        result = self._export(ExportOptions(provider=make_provider(FIVE_TILES), auto_start=True))

        self.assertFalse(result)
        self.assertEqual(result.code, "ERR_ENCODE_FAILED")

    def test_writes_output_file(self):
        with tempfile.TemporaryDirectory() as tmp:
            out = Path(tmp) / "map.jpg"
            result = self._export(
                ExportOptions(provider=make_provider(FIVE_TILES), auto_start=True, output_path=str(out)),
            )

            self.assertTrue(result)
            self.assertEqual(out.read_bytes(), b"PNGDATA")
            self.assertEqual(result.output_path, str(out))
            self.assertTrue(result.url.startswith("file://"))
            self.assertEqual(self.encoder.calls[0][1], "JPEG")

    def test_malformed_path_fails(self):
        provider = make_provider(FIVE_TILES)
        provider["registeredTiles"]["bad"] = "flat/zz_0_0.png"

        result = self._export(ExportOptions(provider=provider, auto_start=True))

        self.assertFalse(result)
        self.assertEqual(result.code, "ERR_TILE_PATH")
        self.assertEqual(self.loader.calls, [])

    def test_zoom_out_of_range_fails(self):
        result = self._export(ExportOptions(provider=make_provider(FIVE_TILES, zoom=3), auto_start=True))

        self.assertFalse(result)
        self.assertEqual(result.code, "ERR_VALIDATION_ZOOM_OUT_OF_RANGE")

    def test_zero_tile_size_fails(self):
        result = self._export(ExportOptions(provider=make_provider(FIVE_TILES, tile_size=0), auto_start=True))

        self.assertFalse(result)
        self.assertEqual(result.code, "ERR_VALIDATION_TILE_SIZE")

    def test_zero_area_canvas_fails_before_confirmation(self):
        provider = make_provider([(0, 0), (4, 0), (8, 0)])  # one row of tiles

        result = self._export(ExportOptions(provider=provider), gate=GateMustNotWait())

        self.assertFalse(result)
        self.assertEqual(result.code, "ERR_VALIDATION_EMPTY_CANVAS")
        self.assertNotIn("STEP_CONFIRM", self.progress)
        self.assertEqual(self.loader.calls, [])
        self.assertEqual(self.encoder.calls, [])

    def test_corner_mode_with_empty_scan_fails_before_drawing(self):
        provider = make_provider(FIVE_TILES, zoom=2)  # level 0, registry only has level 2

        result = self._export(ExportOptions(provider=provider, mode="corner"), gate=GateMustNotWait())

        self.assertFalse(result)
        self.assertEqual(result.code, "ERR_VALIDATION_EMPTY_CANVAS")
        self.assertEqual(self.loader.calls, [])

    def test_null_registry_entry_fails(self):
        provider = make_provider(FIVE_TILES)
        provider["registeredTiles"]["null"] = None

        result = self._export(ExportOptions(provider=provider, auto_start=True))

        self.assertFalse(result)
        self.assertEqual(result.code, "ERR_TILE_PATH")

    def test_named_fill_color(self):
        self.loader.available = set()

        result = self._export(ExportOptions(provider=make_provider(FIVE_TILES), auto_start=True, fill_color="white"))

        self.assertTrue(result)
        raster = self.encoder.calls[0][2]
        self.assertTrue((raster == 255).all())

    def test_non_numeric_max_tiles_fails(self):
        result = self._export(ExportOptions(provider=make_provider(FIVE_TILES), auto_start=True, max_tiles="lots"))

        self.assertFalse(result)
        self.assertEqual(result.code, "ERR_VALIDATION_MAX_TILES")
        self.assertEqual(self.loader.calls, [])


class OutputFormatTests(unittest.TestCase):
    def test_driver_for_output(self):
        self.assertEqual(driver_for_output(None), "PNG")
        self.assertEqual(driver_for_output("out.PNG"), "PNG")
        self.assertEqual(driver_for_output("out.jpeg"), "JPEG")
        self.assertEqual(driver_for_output("out.tif"), "GTiff")

    def test_mime_type_for_driver(self):
        self.assertEqual(mime_type_for_driver("PNG"), "image/png")
        self.assertEqual(mime_type_for_driver("JPEG"), "image/jpeg")
        self.assertEqual(mime_type_for_driver("GTiff"), "image/tiff")


if __name__ == "__main__":
    unittest.main()
