"""Tests for configuration loading and validation."""

from __future__ import annotations

import tempfile
from pathlib import Path
import unittest

from govmail_ai.config import DEFAULT_CONFIG, Config, ensure_config_dir, load_config
from govmail_ai.prompts import VENDOR_QUESTION


class ConfigTests(unittest.TestCase):
    """Validate config merge and fallback behavior."""

    def test_missing_config_uses_defaults(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            config = load_config(config_path=Path(temp_dir) / "config.toml")
        self.assertEqual(config.backend.base_url, DEFAULT_CONFIG["backend"]["base_url"])
        self.assertEqual(config.backend.timeout, 600)
        self.assertEqual(config.ai.default_provider, "gemini")
        self.assertEqual(config.ai.default_model, "gemini-3-flash-preview")
        self.assertFalse(config.ollama.enabled)
        self.assertEqual(config.ai.native_file_providers, ["gemini"])
        self.assertEqual(config.logging.level, DEFAULT_CONFIG["logging"]["level"])

    def test_partial_file_is_merged_onto_defaults(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            config_path = Path(temp_dir) / "config.toml"
            config_path.write_text(
                "\n".join(
                    [
                        "[backend]",
                        'base_url = "https://dashboard.example.com/api"',
                        "",
                        "[ai]",
                        'default_provider = "claude"',
                        'default_model = "claude-sonnet"',
                        'native_file_providers = ["Gemini", " claude "]',
                        "",
                        "[ai.prompt_overrides]",
                        f'"{VENDOR_QUESTION}" = "Answer tersely."',
                        "",
                        "[logging]",
                        'level = "debug"',
                    ]
                ),
                encoding="utf-8",
            )
            config = load_config(config_path=config_path)

        self.assertEqual(config.backend.base_url, "https://dashboard.example.com/api")
        self.assertEqual(config.backend.retries, 1)
        self.assertEqual(config.ai.default_provider, "claude")
        self.assertEqual(config.ai.prompt_overrides, {VENDOR_QUESTION: "Answer tersely."})
        self.assertEqual(config.ai.native_file_providers, ["gemini", "claude"])
        self.assertEqual(config.logging.level, "DEBUG")

    def test_invalid_values_fall_back_to_defaults(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            config_path = Path(temp_dir) / "config.toml"
            config_path.write_text(
                '[backend]\nbase_url = "ftp://nope"\n', encoding="utf-8"
            )
            with self.assertLogs("govmail_ai.config", level="WARNING"):
                config = load_config(config_path=config_path)
        self.assertEqual(config.backend.base_url, DEFAULT_CONFIG["backend"]["base_url"])

    def test_unknown_preset_override_is_rejected(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            config_path = Path(temp_dir) / "config.toml"
            config_path.write_text(
                '[ai.prompt_overrides]\n"made-up" = "x"\n', encoding="utf-8"
            )
            with self.assertLogs("govmail_ai.config", level="WARNING"):
                config = load_config(config_path=config_path)
        self.assertEqual(config.ai.prompt_overrides, {})

    def test_malformed_toml_uses_defaults(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            config_path = Path(temp_dir) / "config.toml"
            config_path.write_text("[backend\nbase_url = ", encoding="utf-8")
            with self.assertLogs("govmail_ai.config", level="WARNING"):
                config = load_config(config_path=config_path)
        self.assertEqual(config, Config())

    def test_timeout_bounds_are_enforced(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            config_path = Path(temp_dir) / "config.toml"
            config_path.write_text("[backend]\ntimeout = 0\n", encoding="utf-8")
            with self.assertLogs("govmail_ai.config", level="WARNING"):
                config = load_config(config_path=config_path)
        self.assertEqual(config.backend.timeout, 600)

    def test_ensure_config_dir_creates_directory(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            target = Path(temp_dir) / "nested" / "govmail-ai"
            self.assertEqual(ensure_config_dir(target), target)
            self.assertTrue(target.is_dir())


if __name__ == "__main__":
    unittest.main()
