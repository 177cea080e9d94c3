"""Tests for placeholder image rendering."""
from __future__ import annotations

import io
import tempfile
import unittest
from pathlib import Path

from PIL import Image

from techpack_portal.techpack_lib.errors import ValidationError
from techpack_portal.techpack_lib.placeholders import (
    PLACEHOLDER_SIZE,
    placeholder_color,
    placeholder_filename,
    placeholder_png,
    view_key_for_filename,
    write_placeholders,
)
from techpack_portal.techpack_lib.views import VIEW_CATALOG


class PlaceholderRenderingTests(unittest.TestCase):
    def test_color_depends_only_on_position(self) -> None:
        self.assertEqual(placeholder_color(3), placeholder_color(3))
        colors = {placeholder_color(slot.position) for slot in VIEW_CATALOG}
        self.assertEqual(len(colors), len(VIEW_CATALOG))

    def test_png_has_expected_size(self) -> None:
        with Image.open(io.BytesIO(placeholder_png("sole"))) as img:
            self.assertEqual(img.format, "PNG")
            self.assertEqual(img.size, PLACEHOLDER_SIZE)

    def test_rendering_is_deterministic(self) -> None:
        self.assertEqual(placeholder_png("front"), placeholder_png("front"))

    def test_filename_mapping(self) -> None:
        self.assertEqual(placeholder_filename("sole"), "07-sole.png")
        self.assertEqual(view_key_for_filename("07-sole.png"), "sole")
        with self.assertRaises(ValidationError):
            view_key_for_filename("99-heel.png")


class WritePlaceholdersTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.target = Path(self.temp_dir.name) / "placeholders"

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def test_writes_every_view_once(self) -> None:
        written = write_placeholders(self.target)
        self.assertEqual(len(written), len(VIEW_CATALOG))
        self.assertEqual(write_placeholders(self.target), [])

    def test_force_rewrites_existing_files(self) -> None:
        write_placeholders(self.target)
        (self.target / "01-side.png").write_bytes(b"stale")
        rewritten = write_placeholders(self.target, force=True)
        self.assertEqual(len(rewritten), len(VIEW_CATALOG))
        self.assertNotEqual((self.target / "01-side.png").read_bytes(), b"stale")


if __name__ == "__main__":
    unittest.main()
