"""Optimizer clients.

``OpenAIOptimizerClient`` calls an OpenAI-compatible chat completion endpoint
with the strict response schema. ``MockOptimizerClient`` reads a response
JSON file instead, for offline runs and tests. ``create_optimizer_client``
picks one from runtime settings; a mock response path always wins, and a
missing API key fails before any request is built.
"""

import copy
import json
import logging
from pathlib import Path
from typing import Any

from openai import AsyncOpenAI, OpenAIError

from slicer_copilot.core.constants import DEFAULT_MODEL, DEFAULT_TEMPERATURE
from slicer_copilot.core.exceptions import InvalidResponseError, OptimizerError
from slicer_copilot.core.model import OptimizerResponse
from slicer_copilot.core.protocols import OptimizerClient
from slicer_copilot.llm.prompt import SYSTEM_PROMPT
from slicer_copilot.llm.response import RESPONSE_FORMAT, parse_response

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.openai.com/v1"
IMAGE_DETAIL = "low"


class OpenAIOptimizerClient:
    """Optimizer backed by an OpenAI-compatible chat completion API.

    Example:
        >>> client = OpenAIOptimizerClient(api_key="sk-...", model="gpt-4.1-mini")
        >>> response = asyncio.run(client.request(payload))
    """

    def __init__(
        self,
        api_key: str,
        base_url: str | None = None,
        model: str = DEFAULT_MODEL,
        temperature: float = DEFAULT_TEMPERATURE,
        client: AsyncOpenAI | None = None,
    ) -> None:
        if not api_key:
            raise OptimizerError(
                "API key missing. Set OPENAI_API_KEY (or pass --api-key).",
                model=model,
                base_url=base_url,
            )
        self.model = model
        self.base_url = base_url
        self.temperature = temperature
        self._client = client or AsyncOpenAI(api_key=api_key, base_url=base_url)

    async def request(self, payload: dict[str, Any]) -> OptimizerResponse:
        """Send one chat completion request and validate the reply.

        Raises:
            OptimizerError: If the request fails or the reply is empty
            InvalidResponseError: If the reply does not validate
        """
        logger.debug(f"Optimizer target {self.base_url or DEFAULT_BASE_URL} | model={self.model}")
        logger.debug(f"Request payload:\n{json.dumps(redact_images(payload), indent=2)}")

        messages = [
            {"role": "system", "content": SYSTEM_PROMPT},
            build_user_message(payload),
        ]
        try:
            completion = await self._client.chat.completions.create(
                model=self.model,
                temperature=self.temperature,
                response_format=RESPONSE_FORMAT,
                messages=messages,
            )
        except OpenAIError as e:
            raise OptimizerError(
                f"Optimizer request failed: {e}",
                model=self.model,
                base_url=self.base_url,
                reason=type(e).__name__,
            ) from e

        content = completion.choices[0].message.content if completion.choices else None
        if not content:
            raise OptimizerError(
                "Optimizer returned an empty reply",
                model=self.model,
                base_url=self.base_url,
            )

        logger.debug(f"Raw optimizer reply:\n{content}")
        try:
            return parse_response(content)
        except InvalidResponseError:
            logger.debug("Optimizer reply failed validation")
            raise


class MockOptimizerClient:
    """Optimizer that returns a canned response file."""

    def __init__(self, response_path: Path) -> None:
        self.response_path = response_path

    async def request(self, payload: dict[str, Any]) -> OptimizerResponse:
        logger.debug(f"Using mock optimizer response from {self.response_path}")
        try:
            content = self.response_path.read_text(encoding="utf-8")
        except OSError as e:
            raise OptimizerError(
                f"Failed to read mock response: {e}",
                reason=type(e).__name__,
                mock_response_path=str(self.response_path),
            ) from e
        return parse_response(content)


def create_optimizer_client(
    api_key: str | None,
    base_url: str | None = None,
    model: str = DEFAULT_MODEL,
    temperature: float = DEFAULT_TEMPERATURE,
    mock_response_path: Path | None = None,
) -> OptimizerClient:
    """Choose the optimizer client for the given runtime settings.

    Raises:
        OptimizerError: If no mock response is configured and the API key is missing
    """
    if mock_response_path is not None:
        return MockOptimizerClient(mock_response_path)
    return OpenAIOptimizerClient(
        api_key=api_key or "",
        base_url=base_url,
        model=model,
        temperature=temperature,
    )


def build_user_message(payload: dict[str, Any]) -> dict[str, Any]:
    """Build the multi-part user message for a request payload.

    Parts, in order: the explicit intent lines (when any), the structured
    project data as JSON, then a caption and an ``image_url`` part per plate
    preview.
    """
    data_for_model = {
        "version": payload.get("version"),
        "projectSummary": payload.get("projectSummary"),
        "currentSettings": payload.get("currentSettings"),
        "userModifiedSettings": payload.get("userModifiedSettings") or [],
        "allowUserSettingOverrides": payload.get("allowUserSettingOverrides") is True,
        "targetLanguage": payload.get("targetLanguage") or "en",
    }
    intent_lines = build_intent_lines(
        payload.get("intentDetails") or {},
        target_language=data_for_model["targetLanguage"],
        allow_user_setting_overrides=data_for_model["allowUserSettingOverrides"],
        user_modified_settings=data_for_model["userModifiedSettings"],
    )

    content: list[dict[str, Any]] = []
    if intent_lines:
        content.append({"type": "text", "text": "Intent details (explicit):\n" + "\n".join(intent_lines)})
    content.append(
        {
            "type": "text",
            "text": "Structured project data (JSON):\n" + json.dumps(data_for_model, indent=2, ensure_ascii=False),
        }
    )
    for image in payload.get("plateImages") or []:
        caption = f"Plate preview: {image.get('name')}"
        if isinstance(image.get("plateIndex"), int):
            caption += f" (plate index {image['plateIndex']})"
        content.append({"type": "text", "text": caption})
        content.append({"type": "image_url", "image_url": {"url": image.get("dataUrl"), "detail": IMAGE_DETAIL}})
    return {"role": "user", "content": content}


def build_intent_lines(
    intent_details: dict[str, Any],
    target_language: str | None = None,
    allow_user_setting_overrides: bool = False,
    user_modified_settings: list[str] | None = None,
) -> list[str]:
    """Render the explicit intent fields as ``key: value`` lines."""
    lines: list[str] = []
    _append_text(lines, "primary_goal", intent_details.get("primary_goal"))
    _append_list(lines, "secondary_goals", intent_details.get("secondary_goals"))
    _append_list(lines, "preferred_focus", intent_details.get("preferred_focus"))

    constraints = intent_details.get("constraints") or {}
    max_time = constraints.get("max_print_time_hours")
    if (isinstance(max_time, (int, float)) and not isinstance(max_time, bool)) or (
        isinstance(max_time, str) and max_time.strip()
    ):
        lines.append(f"constraints.max_print_time_hours: {max_time}")
    if constraints.get("material_saving_important") is True:
        lines.append("constraints.material_saving_important: true")

    _append_list(lines, "locked_parameters", intent_details.get("locked_parameters"))
    if intent_details.get("load_bearing") is True:
        lines.append("load_bearing: true")
    if intent_details.get("safety_critical") is True:
        lines.append("safety_critical: true")
    _append_text(lines, "free_text_description", intent_details.get("free_text_description"))
    _append_text(lines, "targetLanguage", target_language)
    if allow_user_setting_overrides:
        lines.append("allowUserSettingOverrides: true")
    if user_modified_settings:
        lines.append(f"userModifiedSettings: {', '.join(user_modified_settings)}")
    return lines


def redact_images(payload: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of the payload with image data URLs replaced by a summary."""
    images = payload.get("plateImages")
    if not images:
        return payload
    redacted = copy.copy(payload)
    redacted["plateImages"] = [
        {**image, "dataUrl": f"[image {image.get('name')} :: {len(image.get('dataUrl') or '')} chars]"}
        for image in images
    ]
    return redacted


def _append_text(lines: list[str], key: str, value: Any) -> None:
    if isinstance(value, str) and value.strip():
        lines.append(f"{key}: {value.strip()}")


def _append_list(lines: list[str], key: str, values: Any) -> None:
    if isinstance(values, list) and values:
        lines.append(f"{key}: {', '.join(str(value) for value in values)}")
