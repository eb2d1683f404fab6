from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_TEST_ID_ATTRIBUTES = (
    "data-testid",
    "data-test-id",
    "data-test",
    "data-cy",
    "data-qa",
    "data-e2e",
)

DEFAULT_STABLE_ROLES = (
    "banner",
    "navigation",
    "main",
    "contentinfo",
    "complementary",
    "button",
    "link",
    "tab",
    "tabpanel",
    "dialog",
    "menu",
    "menuitem",
)

DEFAULT_LANDMARK_TAGS = ("header", "main", "nav", "footer", "aside", "section", "article")

DEFAULT_GENERIC_TEXTS = (
    "click",
    "submit",
    "cancel",
    "ok",
    "yes",
    "no",
    "save",
    "delete",
    "edit",
    "close",
    "open",
    "next",
    "previous",
    "back",
    "forward",
)


def _require_positive(value: float, field_name: str) -> float:
    if value <= 0:
        raise ValueError(f"{field_name} must be greater than zero")
    return value


class VolatilityThresholds(BaseModel):
    digit_run_length: int = 8
    max_path_depth: int = 6
    nth_child_bound: int = 100

    @field_validator("digit_run_length", "max_path_depth", "nth_child_bound")
    @classmethod
    def validate_positive(cls, value: int, info) -> int:
        return int(_require_positive(value, info.field_name))


class ScoringConfig(BaseModel):
    short_selector_length: int = 50
    long_selector_length: int = 100
    volatility_penalty: float = 0.7
    length_bonus: float = 0.10
    test_id_bonus: float = 0.05

    @field_validator("volatility_penalty")
    @classmethod
    def validate_penalty(cls, value: float) -> float:
        if not 0 < value <= 1:
            raise ValueError("volatility_penalty must be in (0, 1]")
        return value


class GeneratorConfig(BaseModel):
    max_candidates_per_strategy: int = 5
    max_text_length: int = 50
    test_id_attributes: list[str] = Field(default_factory=lambda: list(DEFAULT_TEST_ID_ATTRIBUTES))
    stable_roles: list[str] = Field(default_factory=lambda: list(DEFAULT_STABLE_ROLES))
    landmark_tags: list[str] = Field(default_factory=lambda: list(DEFAULT_LANDMARK_TAGS))
    generic_texts: list[str] = Field(default_factory=lambda: list(DEFAULT_GENERIC_TEXTS))

    @field_validator("test_id_attributes", "stable_roles", "landmark_tags", "generic_texts")
    @classmethod
    def normalize_names(cls, value: list[str]) -> list[str]:
        return [item.strip().lower() for item in value if item.strip()]


class ContextWindowConfig(BaseModel):
    snippet_chars: int = 2000
    max_nearby_texts: int = 5
    max_nearby_text_length: int = 50


class RerankConfig(BaseModel):
    backend: str = "deterministic"
    provider: str = "openai"
    model: str | None = None
    timeout_seconds: float = 10.0

    @field_validator("backend")
    @classmethod
    def validate_backend(cls, value: str) -> str:
        normalized = value.lower()
        if normalized not in {"deterministic", "generative"}:
            raise ValueError("backend must be 'deterministic' or 'generative'")
        return normalized

    @field_validator("provider")
    @classmethod
    def validate_provider(cls, value: str) -> str:
        allowed = {"openai", "anthropic", "gemini"}
        normalized = value.lower()
        if normalized not in allowed:
            raise ValueError(f"Unsupported LLM provider: {value}")
        return normalized

    @field_validator("timeout_seconds")
    @classmethod
    def validate_timeout(cls, value: float) -> float:
        return _require_positive(value, "timeout_seconds")


class EngineConfig(BaseModel):
    volatility: VolatilityThresholds = Field(default_factory=VolatilityThresholds)
    scoring: ScoringConfig = Field(default_factory=ScoringConfig)
    generator: GeneratorConfig = Field(default_factory=GeneratorConfig)
    context: ContextWindowConfig = Field(default_factory=ContextWindowConfig)
    rerank: RerankConfig = Field(default_factory=RerankConfig)


class SelectorContextPayload(BaseModel):
    dom_path: str = Field(default="", alias="domPath")
    neighbors: list[str] = Field(default_factory=list)
    parent_elements: list[str] = Field(default_factory=list, alias="parentElements")

    model_config = ConfigDict(populate_by_name=True)


class FailurePayload(BaseModel):
    """Failure capture as posted by the test-runner plugin."""

    dom_html: str = Field(alias="domHtml", min_length=1)
    current_selector: str = Field(alias="currentSelector", min_length=1)
    selector_context: SelectorContextPayload = Field(
        default_factory=SelectorContextPayload,
        alias="selectorContext",
    )
    intended_action: str = Field(default="click", alias="intendedAction")
    console_logs: list[Any] = Field(default_factory=list, alias="consoleLogs")
    network_logs: list[Any] = Field(default_factory=list, alias="networkLogs")
    error_message: str | None = Field(default=None, alias="errorMessage")
    run_id: str | None = Field(default=None, alias="runId")
    suite: str | None = None
    test: str | None = None
    spec_path: str | None = Field(default=None, alias="specPath")
    browser: str | None = None

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("dom_html", "current_selector")
    @classmethod
    def validate_not_blank(cls, value: str, info) -> str:
        if not value.strip():
            raise ValueError(f"{info.field_name} must not be blank")
        return value
