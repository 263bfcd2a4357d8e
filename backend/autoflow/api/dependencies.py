# autoflow/api/dependencies.py
"""
Runtime wiring for the HTTP layer. Tests swap these out through
``app.dependency_overrides``.
"""

from functools import lru_cache

from fastapi import Depends

from autoflow.core.config import settings
from autoflow.core.llm.base import WorkflowGenerator
from autoflow.core.llm.gemini_client import GeminiClient
from autoflow.services.debugger import Debugger
from autoflow.services.generation import GenerationPipeline
from autoflow.services.ledger import CreditPolicy, HttpLedgerStore, InMemoryLedgerStore, LedgerStore
from autoflow.services.planner import BatchPlanner
from autoflow.services.progress import RunRegistry, run_registry


@lru_cache
def get_generator() -> WorkflowGenerator:
    return GeminiClient(api_key=settings.GEMINI_API_KEY, mock_mode=settings.GENERATOR_MOCK_MODE)


@lru_cache
def get_ledger_store() -> LedgerStore:
    if settings.LEDGER_URL:
        return HttpLedgerStore(settings.LEDGER_URL, account_id="default", timeout=settings.LEDGER_TIMEOUT_SECONDS)
    return InMemoryLedgerStore(
        credits=settings.DEFAULT_CREDITS,
        bonus_credits=settings.DEFAULT_BONUS_CREDITS,
        batch_credits=settings.DEFAULT_BATCH_CREDITS,
    )


def get_run_registry() -> RunRegistry:
    return run_registry


def get_policy(store: LedgerStore = Depends(get_ledger_store)) -> CreditPolicy:
    return CreditPolicy(store, low_balance_threshold=settings.LOW_BALANCE_THRESHOLD)


def get_generation_pipeline(
    generator: WorkflowGenerator = Depends(get_generator),
    policy: CreditPolicy = Depends(get_policy),
) -> GenerationPipeline:
    return GenerationPipeline(generator, policy)


def get_batch_planner(
    generator: WorkflowGenerator = Depends(get_generator),
    policy: CreditPolicy = Depends(get_policy),
    registry: RunRegistry = Depends(get_run_registry),
) -> BatchPlanner:
    return BatchPlanner(generator, policy, max_artifacts=settings.MAX_BATCH_ARTIFACTS, registry=registry)


def get_debugger(
    generator: WorkflowGenerator = Depends(get_generator),
    policy: CreditPolicy = Depends(get_policy),
) -> Debugger:
    return Debugger(generator, policy)
