"""Tests for optimizer clients and the system prompt."""

import asyncio
import json
from pathlib import Path
from types import SimpleNamespace
from typing import Any

import pytest
from openai import OpenAIError

from slicer_copilot.archive.mapping import is_pass_through_key
from slicer_copilot.core.constants import DEFAULT_GLOBAL_PROCESS, DEFAULT_SPEEDS
from slicer_copilot.core.exceptions import InvalidResponseError, OptimizerError
from slicer_copilot.llm.client import (
    MockOptimizerClient,
    OpenAIOptimizerClient,
    build_intent_lines,
    build_user_message,
    create_optimizer_client,
    redact_images,
)
from slicer_copilot.llm.prompt import CORE_PARAMETERS, SYSTEM_PROMPT, optimizable_parameter_names
from slicer_copilot.llm.request import build_request_payload
from slicer_copilot.llm.response import RESPONSE_FORMAT
from tests.conftest import parse_sample

VALID_REPLY = json.dumps(
    {
        "version": 1,
        "changes": [
            {
                "scope": "global",
                "target": {"objectName": None, "plateIndex": None},
                "parameter": "top_layers",
                "newValue": 6,
                "changeType": "absolute",
                "reason": "Better top surface",
            }
        ],
        "globalRationale": "More top layers.",
        "warnings": [],
    }
)


class FakeCompletions:
    """Stands in for ``AsyncOpenAI().chat.completions``."""

    def __init__(self, content: str | None = None, error: Exception | None = None) -> None:
        self.content = content
        self.error = error
        self.calls: list[dict[str, Any]] = []

    async def create(self, **kwargs: Any) -> Any:
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=self.content))])


def fake_openai(completions: FakeCompletions) -> Any:
    return SimpleNamespace(chat=SimpleNamespace(completions=completions))


def sample_payload() -> dict[str, Any]:
    return build_request_payload(parse_sample().normalized)


class TestOpenAIOptimizerClient:
    """Test the chat completion client against a fake transport."""

    def test_request_sends_schema_and_prompt(self) -> None:
        completions = FakeCompletions(content=VALID_REPLY)
        client = OpenAIOptimizerClient("sk-test", model="gpt-test", temperature=0.1, client=fake_openai(completions))

        response = asyncio.run(client.request(sample_payload()))

        assert response.changes[0].parameter == "top_layers"
        call = completions.calls[0]
        assert call["model"] == "gpt-test"
        assert call["temperature"] == 0.1
        assert call["response_format"] is RESPONSE_FORMAT
        assert call["messages"][0] == {"role": "system", "content": SYSTEM_PROMPT}
        assert call["messages"][1]["role"] == "user"

    def test_missing_api_key(self) -> None:
        with pytest.raises(OptimizerError) as exc_info:
            OpenAIOptimizerClient("")
        assert "API key missing" in exc_info.value.message

    def test_transport_error(self) -> None:
        completions = FakeCompletions(error=OpenAIError("connection reset"))
        client = OpenAIOptimizerClient("sk-test", client=fake_openai(completions))
        with pytest.raises(OptimizerError) as exc_info:
            asyncio.run(client.request(sample_payload()))
        assert exc_info.value.context["reason"] == "OpenAIError"

    @pytest.mark.parametrize("content", [None, ""])
    def test_empty_reply(self, content: str | None) -> None:
        client = OpenAIOptimizerClient("sk-test", client=fake_openai(FakeCompletions(content=content)))
        with pytest.raises(OptimizerError):
            asyncio.run(client.request(sample_payload()))

    def test_invalid_reply(self) -> None:
        client = OpenAIOptimizerClient("sk-test", client=fake_openai(FakeCompletions(content='{"oops": 1}')))
        with pytest.raises(InvalidResponseError):
            asyncio.run(client.request(sample_payload()))


class TestMockOptimizerClient:
    """Test the canned-response client."""

    def test_reads_response_file(self, mock_response_path: Path) -> None:
        response = asyncio.run(MockOptimizerClient(mock_response_path).request({}))
        assert len(response.changes) == 2
        assert response.global_rationale == "Tuned for strength."

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(OptimizerError):
            asyncio.run(MockOptimizerClient(tmp_path / "missing.json").request({}))

    def test_mock_wins_over_api_key(self, mock_response_path: Path) -> None:
        client = create_optimizer_client("sk-test", mock_response_path=mock_response_path)
        assert isinstance(client, MockOptimizerClient)

    def test_no_key_and_no_mock(self) -> None:
        with pytest.raises(OptimizerError):
            create_optimizer_client(None)


class TestUserMessage:
    """Test the multi-part user message."""

    def test_parts_order(self) -> None:
        payload = sample_payload()
        payload["intentDetails"] = {"primary_goal": "draft_fast"}
        payload["plateImages"] = [{"plateIndex": 0, "name": "plate_1.png", "dataUrl": "data:image/png;base64,AAAA"}]

        content = build_user_message(payload)["content"]
        assert content[0]["text"].startswith("Intent details (explicit):")
        assert "primary_goal: draft_fast" in content[0]["text"]
        assert content[1]["text"].startswith("Structured project data (JSON):")
        assert content[2]["text"] == "Plate preview: plate_1.png (plate index 0)"
        assert content[3]["image_url"] == {"url": "data:image/png;base64,AAAA", "detail": "low"}

    def test_structured_data_excludes_intent_and_images(self) -> None:
        content = build_user_message(sample_payload())["content"]
        data = json.loads(content[-1]["text"].split("\n", 1)[1])
        assert "intentDetails" not in data
        assert "plateImages" not in data
        assert data["targetLanguage"] == "en"

    def test_intent_lines(self) -> None:
        lines = build_intent_lines(
            {
                "primary_goal": "functional_strong",
                "constraints": {"max_print_time_hours": 2, "material_saving_important": True},
                "safety_critical": True,
            },
            target_language="de",
            allow_user_setting_overrides=True,
            user_modified_settings=["wall_loops", "layer_height"],
        )
        assert lines == [
            "primary_goal: functional_strong",
            "constraints.max_print_time_hours: 2",
            "constraints.material_saving_important: true",
            "safety_critical: true",
            "targetLanguage: de",
            "allowUserSettingOverrides: true",
            "userModifiedSettings: wall_loops, layer_height",
        ]

    def test_redact_images(self) -> None:
        payload = {"plateImages": [{"name": "plate_1.png", "dataUrl": "data:image/png;base64,AAAA"}]}
        redacted = redact_images(payload)
        assert redacted["plateImages"][0]["dataUrl"] == "[image plate_1.png :: 26 chars]"
        assert payload["plateImages"][0]["dataUrl"] == "data:image/png;base64,AAAA"


class TestSystemPrompt:
    """The prompt only advertises names the rest of the package understands."""

    def test_every_name_is_known(self) -> None:
        for name in optimizable_parameter_names():
            if name in CORE_PARAMETERS:
                role = name.removeprefix("speeds.")
                assert name in DEFAULT_GLOBAL_PROCESS or role in DEFAULT_SPEEDS
            else:
                assert is_pass_through_key(name), name

    def test_names_are_listed_in_prompt(self) -> None:
        for name in optimizable_parameter_names():
            assert f"`{name}`" in SYSTEM_PROMPT
