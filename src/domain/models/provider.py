"""Provider result models.

The generation backend's answer is represented as one tagged union:

    ProviderResult = ProviderSuccess | ProviderFailure

Per-provider adapters translate vendor shapes into this union at the
boundary so the pipeline never branches on vendor identity. The provider
tag on a success is for logging only.
"""

from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from src.domain.models.session import IcebergLayer


class FailureKind(str, Enum):
    """Why one provider attempt failed."""

    TIMEOUT = "timeout"
    RATE_LIMITED = "rate_limited"
    MALFORMED_OUTPUT = "malformed_output"
    AUTH_ERROR = "auth_error"
    PROVIDER_ERROR = "provider_error"


def _clean_str_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [x.strip() for x in value if isinstance(x, str) and x.strip()]


class ReflectionPayload(BaseModel):
    """Structured JSON the backend must return.

    ``acknowledgment`` and ``icebergLayer`` are required; a body missing
    either is malformed output, never a partial success. Candidate lists
    (acknowledgments, questions, encouragements) are optional and feed the
    post-processor's anti-repetition selection.
    """

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="ignore"
    )

    acknowledgment: str = Field(min_length=1)
    acknowledgments: List[str] = Field(default_factory=list)
    thought_pattern: str = ""
    pattern_note: str = ""
    reframe: str = ""
    question: str = ""
    questions: List[str] = Field(default_factory=list)
    encouragement: str = ""
    encouragements: List[str] = Field(default_factory=list)
    iceberg_layer: IcebergLayer
    layer_insight: str = ""

    @model_validator(mode="before")
    @classmethod
    def accept_legacy_keys(cls, data: Any) -> Any:
        """Map the legacy field names some prompts still elicit."""
        if not isinstance(data, dict):
            return data
        data = dict(data)
        legacy = {
            "content": "acknowledgment",
            "distortionType": "thoughtPattern",
            "distortionExplanation": "patternNote",
            "probingQuestion": "question",
        }
        for old, new in legacy.items():
            if not data.get(new) and isinstance(data.get(old), str):
                data[new] = data[old]
        if not data.get("acknowledgment"):
            candidates = _clean_str_list(data.get("acknowledgments"))
            if candidates:
                data["acknowledgment"] = candidates[0]
        return data

    @field_validator("acknowledgments", "questions", "encouragements", mode="before")
    @classmethod
    def only_strings(cls, v: Any) -> List[str]:
        return _clean_str_list(v)

    @field_validator(
        "acknowledgment",
        "thought_pattern",
        "pattern_note",
        "reframe",
        "question",
        "encouragement",
        "layer_insight",
        mode="before",
    )
    @classmethod
    def coerce_text(cls, v: Any) -> str:
        if v is None:
            return ""
        if not isinstance(v, str):
            raise ValueError("expected a string")
        return v.strip()

    @field_validator("iceberg_layer", mode="before")
    @classmethod
    def parse_layer(cls, v: Any) -> IcebergLayer:
        layer = IcebergLayer.parse(v)
        if layer is None:
            raise ValueError(f"unknown iceberg layer: {v!r}")
        return layer


class ProviderSuccess(BaseModel):
    """A provider returned a body that validated against ReflectionPayload."""

    kind: Literal["success"] = "success"
    provider: str
    model: str
    payload: ReflectionPayload
    latency_ms: float = 0.0
    usage: Dict[str, int] = Field(default_factory=dict)


class ProviderFailure(BaseModel):
    """A single provider attempt failed; the failover client moves on."""

    kind: Literal["failure"] = "failure"
    provider: str
    model: Optional[str] = None
    error_kind: FailureKind
    detail: str = ""
    latency_ms: float = 0.0


ProviderResult = Annotated[
    Union[ProviderSuccess, ProviderFailure], Field(discriminator="kind")
]
