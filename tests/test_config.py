"""
Tests for ConfigReader and driver configuration loading
"""

import json
from unittest.mock import MagicMock

import pytest

from automator.config import CONFIG_FILE_ENV, ConfigReader, driver_configuration_from
from automator.exceptions import ConfigurationError
from automator.models import BrowserFamily, DriverEngine


def write_json(tmp_path, data, name="config.json"):
    path = tmp_path / name
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


class TestLookup:
    """Source precedence and key matching"""

    def test_json_wins_over_environment(self, tmp_path) -> None:
        path = write_json(tmp_path, {"automation": {"timeout_ms": 5000}})
        reader = ConfigReader(path, environ={"AUTOMATION_TIMEOUT_MS": "9000"}, env_file=None)

        assert reader.get("automation.timeout_ms", type="int") == 5000

    def test_environment_used_when_json_missing_key(self, tmp_path) -> None:
        path = write_json(tmp_path, {"automation": {}})
        reader = ConfigReader(path, environ={"AUTOMATION_SLOW_MO_MS": "50"}, env_file=None)

        assert reader.get("automation.slow_mo_ms", 0, "int") == 50

    def test_flat_dotted_json_key(self, tmp_path) -> None:
        path = write_json(tmp_path, {"automation.browser": "firefox"})
        reader = ConfigReader(path, environ={}, env_file=None)

        assert reader.get("automation.browser") == "firefox"

    def test_case_insensitive_by_default(self, tmp_path) -> None:
        path = write_json(tmp_path, {"Base_Url": "https://example.com"})
        reader = ConfigReader(path, environ={"api_key": "secret"}, env_file=None)

        assert reader.get("base_url") == "https://example.com"
        assert reader.get("API_KEY") == "secret"

    def test_case_sensitive_mode(self, tmp_path) -> None:
        path = write_json(tmp_path, {"Base_Url": "https://example.com"})
        reader = ConfigReader(path, environ={}, env_file=None, case_sensitive=True)

        assert reader.get("base_url") is None
        assert reader.get("Base_Url") == "https://example.com"

    def test_dotenv_file_below_process_environment(self, tmp_path) -> None:
        env_file = tmp_path / ".env"
        env_file.write_text("AUTOMATION_BROWSER=firefox\nAUTOMATION_HEADLESS=false\n")
        reader = ConfigReader(environ={"AUTOMATION_BROWSER": "chrome"}, env_file=env_file)

        assert reader.get("automation.browser") == "chrome"
        assert reader.get("automation.headless", True, "boolean") is False

    def test_default_when_unset(self) -> None:
        reader = ConfigReader(environ={}, env_file=None)

        assert reader.get("missing", "fallback") == "fallback"
        assert not reader.has("missing")

    def test_set_overrides_every_source(self, tmp_path) -> None:
        path = write_json(tmp_path, {"headless": True})
        reader = ConfigReader(path, environ={"HEADLESS": "true"}, env_file=None)

        reader.set("headless", False)

        assert reader.get("headless") is False
        assert reader.as_dict() == {"headless": False}

    def test_config_file_from_environment(self, tmp_path) -> None:
        path = write_json(tmp_path, {"answer": 42})
        reader = ConfigReader(environ={CONFIG_FILE_ENV: str(path)}, env_file=None)

        assert reader.get("answer") == 42

    def test_empty_key_rejected(self) -> None:
        reader = ConfigReader(environ={}, env_file=None)
        with pytest.raises(ConfigurationError):
            reader.get("")


class TestFileErrors:
    def test_missing_file_warns_and_continues(self, tmp_path) -> None:
        logger = MagicMock()
        reader = ConfigReader(tmp_path / "absent.json", environ={}, env_file=None, logger=logger)

        assert reader.as_dict() == {}
        logger.warning.assert_called_once()

    def test_invalid_json_raises(self, tmp_path) -> None:
        path = tmp_path / "config.json"
        path.write_text("{not json")

        with pytest.raises(ConfigurationError):
            ConfigReader(path, environ={}, env_file=None)

    def test_non_object_json_raises(self, tmp_path) -> None:
        path = write_json(tmp_path, [1, 2, 3])

        with pytest.raises(ConfigurationError):
            ConfigReader(path, environ={}, env_file=None)


class TestTypeConversion:
    @pytest.mark.parametrize("raw", ["true", "1", "yes", "on", "TRUE", " On "])
    def test_true_values(self, raw) -> None:
        reader = ConfigReader(environ={"FLAG": raw}, env_file=None)
        assert reader.get("flag", type="boolean") is True

    @pytest.mark.parametrize("raw", ["false", "0", "no", "off", ""])
    def test_false_values(self, raw) -> None:
        reader = ConfigReader(environ={"FLAG": raw}, env_file=None)
        assert reader.get("flag", type="boolean") is False

    def test_invalid_boolean(self) -> None:
        reader = ConfigReader(environ={"FLAG": "maybe"}, env_file=None)
        with pytest.raises(ConfigurationError):
            reader.get("flag", type="boolean")

    def test_invalid_int(self) -> None:
        reader = ConfigReader(environ={"TIMEOUT": "soon"}, env_file=None)
        with pytest.raises(ConfigurationError):
            reader.get("timeout", type="int")

    def test_number(self) -> None:
        reader = ConfigReader(environ={"RATIO": "0.5"}, env_file=None)
        assert reader.get("ratio", type="number") == 0.5

    def test_array_from_comma_list_and_json(self) -> None:
        reader = ConfigReader(environ={"ARGS": "--a, --b", "JSON_ARGS": '["x", "y"]'}, env_file=None)

        assert reader.get("args", type="array") == ["--a", "--b"]
        assert reader.get("json_args", type="array") == ["x", "y"]

    def test_object(self) -> None:
        reader = ConfigReader(environ={"HEADERS": '{"X-Test": "1"}'}, env_file=None)
        assert reader.get("headers", type="object") == {"X-Test": "1"}

    def test_string_from_object(self, tmp_path) -> None:
        path = write_json(tmp_path, {"nested": {"a": 1}})
        reader = ConfigReader(path, environ={}, env_file=None)
        assert json.loads(reader.get("nested", type="string")) == {"a": 1}

    def test_unknown_type(self) -> None:
        reader = ConfigReader(environ={"X": "1"}, env_file=None)
        with pytest.raises(ConfigurationError):
            reader.get("x", type="decimal")


class TestDriverConfiguration:
    def test_defaults_when_section_empty(self) -> None:
        config = driver_configuration_from(ConfigReader(environ={}, env_file=None))

        assert config.engine == DriverEngine.PLAYWRIGHT
        assert config.headless is True

    def test_section_values_override_defaults(self, tmp_path) -> None:
        path = write_json(
            tmp_path,
            {
                "automation": {
                    "engine": "webdriver",
                    "browser": "firefox",
                    "headless": "false",
                    "timeout_ms": "10000",
                    "viewport_width": 1280,
                    "viewport_height": 720,
                    "extra_args": "--a,--b",
                }
            },
        )
        reader = ConfigReader(path, environ={"AUTOMATION_RETRY_ATTEMPTS": "5"}, env_file=None)

        config = driver_configuration_from(reader)

        assert config.engine == DriverEngine.WEBDRIVER
        assert config.browser == BrowserFamily.FIREFOX
        assert config.headless is False
        assert config.timeout_ms == 10000
        assert config.viewport.width == 1280
        assert config.viewport.height == 720
        assert config.extra_args == ("--a", "--b")
        assert config.retry_attempts == 5

    def test_invalid_value_raises_configuration_error(self, tmp_path) -> None:
        path = write_json(tmp_path, {"automation": {"browser": "netscape"}})
        reader = ConfigReader(path, environ={}, env_file=None)

        with pytest.raises(ConfigurationError):
            driver_configuration_from(reader)
