from __future__ import annotations

import json
import re

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from autoheal.core.exceptions import ResponseShapeError

_FENCE = re.compile(r"^```[\w-]*\s*\n?(.*?)\n?```$", re.DOTALL)


class RankedSelector(BaseModel):
    selector: str = Field(min_length=1)
    rationale: str = ""
    confidence: float = Field(ge=0.0, le=1.0)


class RerankPayload(BaseModel):
    ranked: list[RankedSelector]
    explanation_of_failure: str = Field(alias="explanationOfFailure")

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("explanation_of_failure")
    @classmethod
    def _require_explanation(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("explanationOfFailure must not be blank")
        return value


def unwrap_code_fence(response: str) -> str:
    stripped = response.strip()
    match = _FENCE.match(stripped)
    return match.group(1).strip() if match else stripped


def parse_rerank_response(response: str) -> RerankPayload:
    body = unwrap_code_fence(response or "")
    if not body:
        raise ResponseShapeError("Model returned an empty response")
    try:
        decoded = json.loads(body)
    except json.JSONDecodeError as exc:
        raise ResponseShapeError(f"Model response is not JSON: {exc}") from exc
    try:
        payload = RerankPayload.model_validate(decoded)
    except ValidationError as exc:
        raise ResponseShapeError(f"Model response does not match the rerank shape: {exc}") from exc
    if not payload.ranked:
        raise ResponseShapeError("Model returned no ranked selectors")
    return payload
