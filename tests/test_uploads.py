"""Tests for reading hand-attached files."""

from __future__ import annotations

import tempfile
from pathlib import Path
import unittest

from govmail_ai.uploads import is_text_upload, read_upload


class ReadUploadTests(unittest.TestCase):
    """Validate text extraction and binary placeholders."""

    def test_text_file_is_read(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            path = Path(temp_dir) / "pricing.csv"
            path.write_text("item,price\nwidget,4.50\n", encoding="utf-8")
            upload = read_upload(path)
        self.assertEqual(upload.name, "pricing.csv")
        self.assertEqual(upload.text, "item,price\nwidget,4.50\n")
        self.assertIsNone(upload.error)

    def test_binary_file_is_described(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            path = Path(temp_dir) / "drawing.pdf"
            path.write_bytes(b"%PDF" + b"\0" * 2044)
            upload = read_upload(path)
        self.assertTrue(
            upload.text.startswith(
                "[Attached binary file: drawing.pdf (2.0 KB, type: application/pdf)]"
            )
        )
        self.assertIn("cannot be read as text", upload.text)

    def test_missing_file_becomes_placeholder(self) -> None:
        upload = read_upload(Path(tempfile.gettempdir()) / "does-not-exist.txt")
        self.assertEqual(upload.text, "[Could not read file: does-not-exist.txt]")

    def test_text_detection(self) -> None:
        self.assertTrue(is_text_upload("README", "text/plain"))
        self.assertTrue(is_text_upload("data.bin", "application/json"))
        self.assertTrue(is_text_upload("Query.SQL"))
        self.assertFalse(is_text_upload("photo.png", "image/png"))


if __name__ == "__main__":
    unittest.main()
