"""Request payload builder for the optimizer.

The payload is a JSON-serializable dictionary:

- ``version``: payload format version
- ``projectSummary``: printer, filaments, base profile and (when present)
  plates with object names and geometry hints, never raw meshes
- ``currentSettings``: global process settings and per-object overrides
- ``userModifiedSettings``: keys the user already tuned
- ``intentDetails``: only the intent fields the user explicitly provided
- ``plateImages``: ``{plateIndex, name, dataUrl}`` previews
- ``allowUserSettingOverrides``: whether user-modified keys may change
- ``targetLanguage``: two-letter language code for reasons and warnings
"""

import copy
from typing import Any

from slicer_copilot.core.constants import REQUEST_PAYLOAD_VERSION
from slicer_copilot.core.messages import normalize_language
from slicer_copilot.core.model import NormalizedProject, PlateImage
from slicer_copilot.llm.intent import build_intent_details

DEFAULT_IMAGE_NAME = "plate.png"


def build_request_payload(
    model: NormalizedProject,
    intent: dict[str, Any] | None = None,
    plate_images: list[PlateImage] | None = None,
    allow_user_setting_overrides: bool = False,
    target_language: str | None = None,
) -> dict[str, Any]:
    """Build the optimizer request payload for a normalized project.

    Args:
        model: Canonical model produced by the archive parser
        intent: Normalized user intent (None for the empty intent)
        plate_images: Embedded plate previews to attach
        allow_user_setting_overrides: True when lock enforcement is off
        target_language: Language tag for optimizer output

    Returns:
        JSON-serializable payload dictionary

    Example:
        >>> payload = build_request_payload(parsed.normalized, target_language="pt-BR")
        >>> payload["targetLanguage"], payload["intentDetails"]
        ('pt', {'primary_goal': 'balanced'})
    """
    summary = model.project_summary
    project_summary: dict[str, Any] = {
        "fileName": model.file_name,
        "printer": summary.printer.to_dict(),
        "filaments": [filament.to_dict() for filament in summary.filaments],
        "base_profile": summary.base_profile,
    }
    if summary.plates:
        project_summary["plates"] = [
            {
                "index": plate.index,
                "name": plate.name,
                "objects": [
                    {
                        "name": obj.name,
                        "plateIndex": obj.plate_index if obj.plate_index is not None else plate.index,
                        "geometry": obj.geometry,
                    }
                    for obj in plate.objects
                ],
            }
            for plate in summary.plates
        ]

    return {
        "version": REQUEST_PAYLOAD_VERSION,
        "projectSummary": project_summary,
        "currentSettings": copy.deepcopy(model.current_settings.to_dict()),
        "userModifiedSettings": list(model.user_modified_settings),
        "intentDetails": build_intent_details(intent),
        "plateImages": [
            {
                "plateIndex": image.plate_index,
                "name": image.name or DEFAULT_IMAGE_NAME,
                "dataUrl": image.data_url,
            }
            for image in plate_images or []
            if isinstance(image.data_url, str)
        ],
        "allowUserSettingOverrides": allow_user_setting_overrides is True,
        "targetLanguage": normalize_language(target_language),
    }
