from __future__ import annotations

import pytest

from autoheal.config.schema import EngineConfig
from autoheal.core.candidates import CandidateGenerator
from autoheal.core.markup import MarkupAnalyzer
from autoheal.core.orchestrator import RecoveryOrchestrator
from autoheal.core.volatility import VolatilityClassifier
from autoheal.llm.backend import HeuristicRerankBackend


@pytest.fixture(autouse=True)
def isolate_environment(monkeypatch):
    for name in (
        "AUTOHEAL_CONFIG",
        "AUTOHEAL_RERANK_BACKEND",
        "AUTOHEAL_RERANK_TIMEOUT",
        "AUTOHEAL_DIGIT_RUN_LENGTH",
        "AUTOHEAL_MAX_PATH_DEPTH",
        "AUTOHEAL_NTH_CHILD_BOUND",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture()
def engine_config():
    return EngineConfig()


@pytest.fixture()
def classifier(engine_config):
    return VolatilityClassifier(engine_config.volatility)


@pytest.fixture()
def analyzer(engine_config):
    return MarkupAnalyzer(engine_config.generator.test_id_attributes)


@pytest.fixture()
def generator(classifier, engine_config):
    return CandidateGenerator(classifier, engine_config.generator)


@pytest.fixture()
def orchestrator(engine_config):
    return RecoveryOrchestrator(engine_config, backend=HeuristicRerankBackend(engine_config.generator.test_id_attributes))
