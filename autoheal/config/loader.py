from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

from autoheal.config.schema import EngineConfig

_ENV_OVERRIDES = (
    ("AUTOHEAL_RERANK_BACKEND", ("rerank", "backend")),
    ("AUTOHEAL_RERANK_TIMEOUT", ("rerank", "timeout_seconds")),
    ("LLM_PROVIDER", ("rerank", "provider")),
    ("LLM_MODEL", ("rerank", "model")),
    ("AUTOHEAL_DIGIT_RUN_LENGTH", ("volatility", "digit_run_length")),
    ("AUTOHEAL_MAX_PATH_DEPTH", ("volatility", "max_path_depth")),
    ("AUTOHEAL_NTH_CHILD_BOUND", ("volatility", "nth_child_bound")),
)


class ConfigLoader:
    """Loads and validates the engine configuration."""

    @staticmethod
    def load(path: str | Path) -> EngineConfig:
        config_path = Path(path)
        with config_path.open("r", encoding="utf-8") as handle:
            payload = json.load(handle)
        return EngineConfig.model_validate(payload)

    @staticmethod
    def from_env(environ: dict[str, str] | None = None) -> EngineConfig:
        """Builds the config from ``AUTOHEAL_CONFIG`` plus environment overrides.

        Values are left as strings; pydantic coerces them while validating.
        """

        env = os.environ if environ is None else environ
        payload: dict[str, Any] = {}
        config_path = env.get("AUTOHEAL_CONFIG")
        if config_path:
            with Path(config_path).open("r", encoding="utf-8") as handle:
                payload = json.load(handle)
        for variable, (section, key) in _ENV_OVERRIDES:
            value = env.get(variable)
            if value:
                payload.setdefault(section, {})[key] = value
        return EngineConfig.model_validate(payload)
