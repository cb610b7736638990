"""Warning message catalog and language normalization.

The language is an explicit value: callers build a ``Messages`` instance and
pass it to whatever formats user-facing warnings. Nothing here holds a
process-wide default.
"""

import re
from dataclasses import dataclass
from typing import Any

from slicer_copilot.core.constants import DEFAULT_LANGUAGE

MESSAGE_TEMPLATES: dict[str, dict[str, str]] = {
    "en": {
        "user_setting_locked": (
            "Setting {parameter} was modified by the user; change skipped "
            "(use --force to allow overriding it)."
        ),
        "unknown_parameter": "Unknown parameter {parameter}; change skipped.",
        "unknown_object_parameter": (
            "Unknown parameter {parameter} for object {object}; change skipped."
        ),
        "object_not_found": (
            "Object {object} not found for parameter {parameter}; change skipped."
        ),
        "relative_change_type": (
            "Relative change for {parameter} requires numeric current and new "
            "values; change skipped."
        ),
    },
}

_LANGUAGE_PATTERN = re.compile(r"^[a-z]{2}")


def normalize_language(code: Any) -> str:
    """Normalize a language tag to a two-letter lower-case code.

    Args:
        code: Language tag such as ``"en"``, ``"pt-BR"`` or ``"ru_RU.UTF-8"``

    Returns:
        Two-letter code, or ``"en"`` when the input is missing or unusable

    Example:
        >>> normalize_language("pt-BR")
        'pt'
        >>> normalize_language(None)
        'en'
    """
    if not isinstance(code, str):
        return DEFAULT_LANGUAGE
    match = _LANGUAGE_PATTERN.match(code.strip().lower())
    return match.group(0) if match else DEFAULT_LANGUAGE


@dataclass(frozen=True)
class Messages:
    """Message formatter bound to one language.

    Languages without a catalog fall back to English templates.

    Example:
        >>> messages = Messages("en")
        >>> messages.format("unknown_parameter", parameter="foo")
        'Unknown parameter foo; change skipped.'
    """

    language: str = DEFAULT_LANGUAGE

    def format(self, key: str, **values: Any) -> str:
        templates = MESSAGE_TEMPLATES.get(self.language, MESSAGE_TEMPLATES[DEFAULT_LANGUAGE])
        template = templates.get(key, MESSAGE_TEMPLATES[DEFAULT_LANGUAGE][key])
        return template.format(**values)
