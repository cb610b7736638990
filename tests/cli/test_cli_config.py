"""Tests for configuration loading and runtime settings resolution."""

import json
import os
from pathlib import Path

import pytest
import yaml
from hypothesis import given
from hypothesis import strategies as st

from slicer_copilot.cli.config import (
    ConfigError,
    RuntimeConfig,
    load_config,
    load_env_file,
    merge_config,
    resolve_runtime_config,
    validate_config,
)
from slicer_copilot.core.constants import DEFAULT_MODEL, DEFAULT_TEMPERATURE

config_values = st.fixed_dictionaries(
    {},
    optional={
        "model": st.sampled_from(["gpt-4.1-mini", "gpt-4.1", "llama3"]),
        "base_url": st.just("http://localhost:11434/v1"),
        "temperature": st.floats(min_value=0, max_value=2, allow_nan=False),
        "language": st.sampled_from(["en", "de", "pt-BR"]),
        "force": st.booleans(),
        "log_level": st.sampled_from(["debug", "info", "warning", "error"]),
    },
)


class TestLoadConfig:
    """Test JSON/YAML configuration files."""

    @given(config=config_values)
    def test_json_and_yaml_agree(self, config: dict, tmp_path_factory: pytest.TempPathFactory) -> None:
        directory = tmp_path_factory.mktemp("config")
        json_path = directory / "config.json"
        yaml_path = directory / "config.yaml"
        json_path.write_text(json.dumps(config), encoding="utf-8")
        yaml_path.write_text(yaml.safe_dump(config), encoding="utf-8")

        assert load_config(json_path) == config
        assert load_config(yaml_path) == config
        assert validate_config(config) == []

    def test_unknown_extension_is_auto_detected(self, tmp_path: Path) -> None:
        json_path = tmp_path / "settings.conf"
        json_path.write_text('{"model": "gpt-4.1"}', encoding="utf-8")
        yaml_path = tmp_path / "settings.cfg"
        yaml_path.write_text("model: gpt-4.1\n", encoding="utf-8")
        assert load_config(json_path) == load_config(yaml_path) == {"model": "gpt-4.1"}

    def test_empty_file(self, tmp_path: Path) -> None:
        path = tmp_path / "config.yaml"
        path.write_text("", encoding="utf-8")
        assert load_config(path) == {}

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError) as exc_info:
            load_config(tmp_path / "missing.yaml")
        assert "not found" in exc_info.value.message

    @pytest.mark.parametrize(
        ("name", "content"),
        [("config.json", "{oops"), ("config.yaml", "model: [unclosed"), ("config.yaml", "- a\n- b\n")],
    )
    def test_invalid_content(self, tmp_path: Path, name: str, content: str) -> None:
        path = tmp_path / name
        path.write_text(content, encoding="utf-8")
        with pytest.raises(ConfigError):
            load_config(path)


class TestValidateConfig:
    """Test key and value validation."""

    def test_unknown_key(self) -> None:
        assert validate_config({"colour": "red"}) == ["Unknown configuration key: colour"]

    @pytest.mark.parametrize("temperature", [-0.1, 2.5])
    def test_temperature_range(self, temperature: float) -> None:
        assert validate_config({"temperature": temperature}) == [
            f"temperature must be between 0 and 2, got {temperature}"
        ]

    @pytest.mark.parametrize("temperature", ["0.2", True])
    def test_temperature_type(self, temperature: object) -> None:
        assert len(validate_config({"temperature": temperature})) == 1

    def test_string_and_flag_types(self) -> None:
        errors = validate_config({"model": 4, "force": "yes"})
        assert "model must be a string, got int" in errors
        assert "force must be a boolean, got str" in errors

    def test_log_level(self) -> None:
        assert len(validate_config({"log_level": "verbose"})) == 1


class TestMergeConfig:
    """CLI arguments win over file values; missing arguments keep them."""

    def test_none_keeps_file_value(self) -> None:
        assert merge_config({"model": "gpt-4.1"}, model=None) == {"model": "gpt-4.1"}

    def test_cli_value_wins(self) -> None:
        merged = merge_config({"model": "gpt-4.1", "temperature": 0.2}, model="gpt-4.1-mini")
        assert merged == {"model": "gpt-4.1-mini", "temperature": 0.2}

    def test_base_is_not_mutated(self) -> None:
        base = {"model": "gpt-4.1"}
        merge_config(base, model="other")
        assert base == {"model": "gpt-4.1"}


class TestResolveRuntimeConfig:
    """Settings > environment > defaults."""

    def test_defaults(self) -> None:
        assert resolve_runtime_config({}, environ={}) == RuntimeConfig(
            api_key="",
            base_url=None,
            model=DEFAULT_MODEL,
            temperature=DEFAULT_TEMPERATURE,
            mock_response_path=None,
            language="en",
        )

    def test_environment(self) -> None:
        runtime = resolve_runtime_config(
            {},
            environ={
                "OPENAI_API_KEY": "sk-env",
                "OPENAI_BASE_URL": "http://localhost:8080/v1",
                "OPENAI_MODEL": "local-model",
                "LLM_MOCK_RESPONSE": "canned.json",
                "SLICER_COPILOT_LANG": "fr_FR.UTF-8",
            },
        )
        assert runtime.api_key == "sk-env"
        assert runtime.base_url == "http://localhost:8080/v1"
        assert runtime.model == "local-model"
        assert runtime.mock_response_path == Path("canned.json")
        assert runtime.language == "fr"

    def test_settings_win_over_environment(self) -> None:
        runtime = resolve_runtime_config(
            {"api_key": "sk-cli", "language": "de", "temperature": 1},
            environ={"OPENAI_API_KEY": "sk-env", "SLICER_COPILOT_LANGUAGE": "es"},
        )
        assert runtime.api_key == "sk-cli"
        assert runtime.language == "de"
        assert runtime.temperature == 1.0

    def test_first_language_variable_wins(self) -> None:
        runtime = resolve_runtime_config(
            {}, environ={"SLICER_COPILOT_LANGUAGE": "it", "SLICER_COPILOT_LANG": "es"}
        )
        assert runtime.language == "it"

    def test_empty_environment_value_is_ignored(self) -> None:
        assert resolve_runtime_config({}, environ={"OPENAI_MODEL": ""}).model == DEFAULT_MODEL

    def test_invalid_settings(self) -> None:
        with pytest.raises(ConfigError) as exc_info:
            resolve_runtime_config({"temperature": 9}, environ={})
        assert exc_info.value.context["errors"] == ["temperature must be between 0 and 2, got 9"]


class TestLoadEnvFile:
    """A .env file fills the environment without overriding it."""

    def test_existing_variables_are_kept(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        env_file = tmp_path / ".env"
        env_file.write_text("OPENAI_API_KEY=sk-file\nOPENAI_MODEL=file-model\n", encoding="utf-8")
        monkeypatch.setenv("OPENAI_API_KEY", "sk-shell")
        monkeypatch.setenv("OPENAI_MODEL", "unset")
        monkeypatch.delenv("OPENAI_MODEL")

        load_env_file(env_file)

        assert os.environ["OPENAI_API_KEY"] == "sk-shell"
        assert os.environ["OPENAI_MODEL"] == "file-model"
