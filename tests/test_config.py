import json
import logging
import os
import sys
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

# Add repository root to path
sys.path.append(str(Path(__file__).parent.parent))

from task_orchestrator.config import (
    CONFIG_ENV_VAR,
    DEFAULT_TOOL_TIMEOUT_FRACTION,
    OrchestratorSettings,
    ProviderConfig,
    configure_logging,
    get_config_dir,
    load_user_config,
)
from task_orchestrator.models import DEFAULT_TIMEOUT_MS, ProviderParams, TaskCategory


class TestSettings(unittest.TestCase):
    def test_defaults(self):
        settings = OrchestratorSettings.from_config({})

        self.assertEqual(settings.timeout_ms, DEFAULT_TIMEOUT_MS)
        self.assertAlmostEqual(settings.tool_timeout_fraction, DEFAULT_TOOL_TIMEOUT_FRACTION)
        self.assertEqual(settings.tool_timeout_floor, 1.0)
        self.assertEqual(settings.providers, {})
        self.assertIsNone(settings.log_file)

    def test_defaults_section(self):
        settings = OrchestratorSettings.from_config(
            {
                "defaults": {
                    "timeoutMs": 60000,
                    "toolTimeoutFraction": 0.25,
                    "toolTimeoutFloorMs": 500,
                }
            }
        )

        self.assertEqual(settings.timeout_ms, 60000)
        self.assertEqual(settings.tool_timeout_fraction, 0.25)
        self.assertEqual(settings.tool_timeout_floor, 0.5)

    def test_invalid_values_fall_back(self):
        settings = OrchestratorSettings.from_config(
            {
                "defaults": {
                    "timeoutMs": -5,
                    "toolTimeoutFraction": 3,
                    "toolTimeoutFloorMs": True,
                }
            }
        )

        self.assertEqual(settings.timeout_ms, DEFAULT_TIMEOUT_MS)
        self.assertAlmostEqual(settings.tool_timeout_fraction, DEFAULT_TOOL_TIMEOUT_FRACTION)
        self.assertEqual(settings.tool_timeout_floor, 1.0)

    def test_non_object_sections_ignored(self):
        settings = OrchestratorSettings.from_config({"defaults": [], "providers": "groq"})

        self.assertEqual(settings.timeout_ms, DEFAULT_TIMEOUT_MS)
        self.assertEqual(settings.providers, {})

    @patch("task_orchestrator.config.load_user_config")
    def test_load_uses_user_config(self, mock_load_config):
        mock_load_config.return_value = {
            "providers": {"Groq": {"priority": {"creative": 1}}},
            "logging": {"level": "debug"},
        }

        settings = OrchestratorSettings.load()

        self.assertEqual(
            settings.provider_config("groq").priority, {TaskCategory.CREATIVE: 1}
        )
        self.assertEqual(settings.log_level, "DEBUG")


class TestProviderConfig(unittest.TestCase):
    def test_from_dict(self):
        config = ProviderConfig.from_dict(
            {
                "enabled": False,
                "model": "mistral-small-latest",
                "temperature": 0.1,
                "maxTokens": 256,
                "priority": {"ANALYSIS": 5, "cooking": 1, "search": "high"},
            }
        )

        self.assertFalse(config.enabled)
        self.assertEqual(config.model, "mistral-small-latest")
        self.assertEqual(config.priority, {TaskCategory.ANALYSIS: 5})
        self.assertEqual(
            config.params(ProviderParams(temperature=0.8, max_tokens=4000)),
            ProviderParams(temperature=0.1, max_tokens=256),
        )

    def test_params_keep_base_when_unset(self):
        base = ProviderParams(temperature=0.7, max_tokens=3000)

        self.assertEqual(ProviderConfig.from_dict({"maxTokens": 0}).params(base), base)

    def test_unknown_provider_uses_defaults(self):
        settings = OrchestratorSettings()

        self.assertTrue(settings.provider_config("nobody").enabled)

    def test_tool_enabled(self):
        settings = OrchestratorSettings.from_config(
            {"tools": {"tts": {"enabled": False}, "search": {"maxResults": 8}}}
        )

        self.assertFalse(settings.tool_enabled("tts"))
        self.assertTrue(settings.tool_enabled("search"))
        self.assertEqual(settings.tool_config("search"), {"maxResults": 8})


class TestLoadUserConfig(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.config_path = Path(self._tmp.name) / "config.json"

    def tearDown(self):
        self._tmp.cleanup()

    def test_missing_file(self):
        self.assertEqual(load_user_config(self.config_path), {})

    def test_valid_file(self):
        self.config_path.write_text(json.dumps({"defaults": {"timeoutMs": 1000}}))

        self.assertEqual(load_user_config(self.config_path), {"defaults": {"timeoutMs": 1000}})

    def test_invalid_json(self):
        self.config_path.write_text("{not json")

        self.assertEqual(load_user_config(self.config_path), {})

    def test_non_object(self):
        self.config_path.write_text("[1, 2, 3]")

        self.assertEqual(load_user_config(self.config_path), {})

    def test_config_dir_override(self):
        with patch.dict(os.environ, {CONFIG_ENV_VAR: self._tmp.name}):
            self.assertEqual(get_config_dir(), Path(self._tmp.name))


class TestLoggingConfig(unittest.TestCase):
    def tearDown(self):
        root_logger = logging.getLogger()
        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)

    @patch("task_orchestrator.config.logging.FileHandler")
    def test_log_file_handler(self, mock_file_handler):
        mock_file_handler.return_value = logging.NullHandler()
        settings = OrchestratorSettings(log_file="~/orchestrator.log", log_level="WARNING")

        configure_logging(settings)

        mock_file_handler.assert_called_once_with(
            os.path.expanduser("~/orchestrator.log"), encoding="utf-8"
        )
        self.assertEqual(logging.getLogger().level, logging.WARNING)

    def test_verbose_overrides_level(self):
        configure_logging(OrchestratorSettings(log_level="ERROR"), verbose=True)

        self.assertEqual(logging.getLogger().level, logging.DEBUG)


if __name__ == "__main__":
    unittest.main()
