"""Configuration file loading, merging and runtime settings resolution.

Runtime settings resolve with precedence CLI argument > config file >
environment > built-in default. A ``.env`` file in the working directory is
loaded into the environment first (without overriding variables that are
already set).

Configuration files (JSON or YAML) can specify:
- api_key: API key for the optimizer endpoint
- base_url: OpenAI-compatible endpoint URL
- model: Model name
- temperature: Sampling temperature in [0, 2]
- mock_response: Path of a canned optimizer response
- language: Language for optimizer output and warnings
- force: Allow changes to user-modified settings
- log_level: debug, info, warning or error
- log_file: File that receives log records
"""

import json
import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml
from dotenv import find_dotenv, load_dotenv

from slicer_copilot.core.constants import DEFAULT_MODEL, DEFAULT_TEMPERATURE
from slicer_copilot.core.exceptions import SlicerCopilotError
from slicer_copilot.core.messages import normalize_language

logger = logging.getLogger(__name__)

CONFIG_KEYS = frozenset(
    {
        "api_key",
        "base_url",
        "model",
        "temperature",
        "mock_response",
        "language",
        "force",
        "log_level",
        "log_file",
    }
)
STRING_KEYS = ("api_key", "base_url", "model", "mock_response", "language", "log_file")
FLAG_KEYS = ("force",)
LOG_LEVELS = ("debug", "info", "warning", "error")
TEMPERATURE_RANGE = (0.0, 2.0)

# config key -> environment variables, first set one wins
ENV_VARS: dict[str, tuple[str, ...]] = {
    "api_key": ("OPENAI_API_KEY",),
    "base_url": ("OPENAI_BASE_URL",),
    "model": ("OPENAI_MODEL",),
    "mock_response": ("LLM_MOCK_RESPONSE",),
    "language": ("SLICER_COPILOT_LANGUAGE", "SLICER_COPILOT_LANG"),
}


class ConfigError(SlicerCopilotError):
    """Configuration file error.

    Raised when configuration or intent files cannot be loaded, parsed, or
    validated.
    """


@dataclass(frozen=True)
class RuntimeConfig:
    """Resolved runtime settings for one CLI invocation.

    Attributes:
        api_key: API key for the optimizer endpoint ("" when unset)
        base_url: OpenAI-compatible endpoint URL, None for the default
        model: Model name
        temperature: Sampling temperature
        mock_response_path: Canned optimizer response, bypasses the network
        language: Two-letter language code
    """

    api_key: str = ""
    base_url: str | None = None
    model: str = DEFAULT_MODEL
    temperature: float = DEFAULT_TEMPERATURE
    mock_response_path: Path | None = None
    language: str = "en"


def load_config(path: Path) -> dict[str, Any]:
    """Load configuration from a JSON or YAML file.

    Format is determined by file extension (.json, .yaml, .yml) or
    auto-detected (JSON first, then YAML) for any other extension.

    Args:
        path: Path to configuration file

    Returns:
        Configuration dictionary (empty for an empty file)

    Raises:
        ConfigError: If the file is missing, unreadable or has invalid syntax

    Example:
        >>> config = load_config(Path("slicer-copilot.yaml"))
        >>> config["model"]
        'gpt-4.1-mini'
    """
    if not path.exists():
        raise ConfigError(f"Configuration file not found: {path}", {"path": str(path)})

    try:
        content = path.read_text(encoding="utf-8")
        suffix = path.suffix.lower()
        if suffix == ".json":
            data = json.loads(content)
        elif suffix in (".yaml", ".yml"):
            data = yaml.safe_load(content)
        else:
            try:
                data = json.loads(content)
            except json.JSONDecodeError:
                data = yaml.safe_load(content)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in {path}: {e}", {"path": str(path)}) from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}", {"path": str(path)}) from e
    except OSError as e:
        raise ConfigError(f"Failed to load config from {path}: {e}", {"path": str(path)}) from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(
            f"Configuration in {path} must be a mapping", {"path": str(path), "type": type(data).__name__}
        )
    return data


def merge_config(base: dict[str, Any], **overrides: Any) -> dict[str, Any]:
    """Merge CLI arguments into base configuration.

    Only non-None override values are applied, so config file values are
    kept when a CLI argument is not given.

    Example:
        >>> merge_config({"model": "gpt-4.1", "temperature": 0.2}, model="gpt-4.1-mini")
        {'model': 'gpt-4.1-mini', 'temperature': 0.2}
    """
    merged = base.copy()
    for key, value in overrides.items():
        if value is not None:
            merged[key] = value
    return merged


def validate_config(config: dict[str, Any]) -> list[str]:
    """Validate configuration keys and value types.

    Args:
        config: Configuration dictionary to validate

    Returns:
        List of validation error messages (empty list if valid)

    Example:
        >>> validate_config({"temperature": 5, "colour": "red"})
        ['Unknown configuration key: colour', 'temperature must be between 0 and 2, got 5']
    """
    errors = []
    for key in config:
        if key not in CONFIG_KEYS:
            errors.append(f"Unknown configuration key: {key}")

    for key in STRING_KEYS:
        if key in config and config[key] is not None and not isinstance(config[key], str):
            errors.append(f"{key} must be a string, got {type(config[key]).__name__}")

    for key in FLAG_KEYS:
        if key in config and not isinstance(config[key], bool):
            errors.append(f"{key} must be a boolean, got {type(config[key]).__name__}")

    if "temperature" in config:
        temperature = config["temperature"]
        if isinstance(temperature, bool) or not isinstance(temperature, (int, float)):
            errors.append(f"temperature must be a number, got {type(temperature).__name__}")
        elif not TEMPERATURE_RANGE[0] <= temperature <= TEMPERATURE_RANGE[1]:
            errors.append(f"temperature must be between 0 and 2, got {temperature}")

    if "log_level" in config and config["log_level"] not in LOG_LEVELS:
        errors.append(f"log_level must be one of {', '.join(LOG_LEVELS)}, got {config['log_level']!r}")

    return errors


def load_env_file(path: Path | None = None) -> None:
    """Load a ``.env`` file into the process environment.

    Variables already present in the environment are left untouched.
    """
    loaded = load_dotenv(dotenv_path=path or find_dotenv(usecwd=True), override=False)
    if loaded:
        logger.debug(f"Loaded environment from {path or '.env'}")


def resolve_runtime_config(
    settings: dict[str, Any],
    environ: Mapping[str, str] | None = None,
) -> RuntimeConfig:
    """Resolve runtime settings from merged CLI/file settings and the environment.

    Args:
        settings: Config file values with CLI overrides merged on top
        environ: Environment mapping (``os.environ`` when omitted)

    Returns:
        RuntimeConfig with defaults applied

    Raises:
        ConfigError: If the merged settings fail validation
    """
    errors = validate_config(settings)
    if errors:
        raise ConfigError("Invalid configuration: " + "; ".join(errors), {"errors": errors})

    env = os.environ if environ is None else environ

    def pick(key: str) -> Any:
        if settings.get(key) is not None:
            return settings[key]
        for var in ENV_VARS.get(key, ()):
            if env.get(var):
                return env[var]
        return None

    mock_response = pick("mock_response")
    temperature = settings.get("temperature")
    return RuntimeConfig(
        api_key=pick("api_key") or "",
        base_url=pick("base_url"),
        model=pick("model") or DEFAULT_MODEL,
        temperature=float(temperature) if temperature is not None else DEFAULT_TEMPERATURE,
        mock_response_path=Path(mock_response) if mock_response else None,
        language=normalize_language(pick("language")),
    )
