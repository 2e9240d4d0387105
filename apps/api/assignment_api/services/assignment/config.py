from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any

from assignment_api.models.enums import AssignmentType

FEATURE_FORM_ENABLED = "textRequestFormEnabled"
FEATURE_REQUEST_TYPE = "textRequestType"
FEATURE_MAX_COUNT = "textRequestMaxCount"


class TextRequestType(enum.StrEnum):
    UNSENT = "UNSENT"
    UNREPLIED = "UNREPLIED"
    DISABLED = "DISABLED"


@dataclass(frozen=True)
class TextRequestConfig:
    request_type: TextRequestType
    general_enabled: bool
    max_request_count: int

    @property
    def assignment_type(self) -> AssignmentType | None:
        if self.request_type == TextRequestType.DISABLED:
            return None
        return AssignmentType(self.request_type.value)

    @classmethod
    def from_features(cls, features: Any) -> TextRequestConfig:
        if not isinstance(features, dict):
            features = {}

        raw_type = features.get(FEATURE_REQUEST_TYPE)
        try:
            request_type = TextRequestType(str(raw_type))
        except ValueError:
            request_type = TextRequestType.DISABLED

        return cls(
            request_type=request_type,
            general_enabled=bool(features.get(FEATURE_FORM_ENABLED) or False),
            max_request_count=_parse_count(features.get(FEATURE_MAX_COUNT)),
        )

    def to_features(self) -> dict[str, Any]:
        return {
            FEATURE_FORM_ENABLED: self.general_enabled,
            FEATURE_REQUEST_TYPE: self.request_type.value,
            FEATURE_MAX_COUNT: self.max_request_count,
        }


def _parse_count(value: Any) -> int:
    # Stored by the admin UI as either a number or a numeric string.
    if isinstance(value, bool) or value is None:
        return 0
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return 0
    return max(parsed, 0)
