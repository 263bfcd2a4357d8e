# tests/test_generation.py
import pytest

from autoflow.core.errors import GenerationError, InsufficientCreditsError, InvalidRequestError
from autoflow.core.naming import file_stem, generate_workflow_name, slugify
from autoflow.models.state import GenerationRequest
from autoflow.services.generation import GenerationPipeline
from autoflow.services.ledger import CreditPolicy, InMemoryLedgerStore
from autoflow.services.sanitizer import is_valid_uuid4

from conftest import FakeGenerator


def test_generate_workflow_name():
    assert generate_workflow_name("send a slack message when stripe payment fails") == (
        "Send Slack Message When Stripe Workflow"
    )
    assert generate_workflow_name("do it") == "Workflow"


def test_file_stem_and_slugify():
    assert file_stem("Order  Sync Workflow") == "Order_Sync_Workflow"
    assert slugify("Order Sync / v2!") == "order-sync-v2"


def test_file_stem_is_ascii_and_flat():
    assert file_stem("Café ☕ Sync") == "Cafe_Sync"
    assert file_stem('Orders "EU"/v2') == "Orders_EU_v2"
    assert file_stem("../../etc") == "etc"
    assert file_stem("☕☕") == "workflow"
    assert file_stem("report-v1.2") == "report-v1.2"
    assert slugify("Café Sync") == "cafe-sync"


@pytest.mark.asyncio
async def test_single_generation_sanitizes_and_deducts(store, policy, generator):
    pipeline = GenerationPipeline(generator, policy)
    result = await pipeline.generate(GenerationRequest(prompt="Sync new orders to the warehouse"))

    out = result.document.to_export()
    assert "id" not in out
    assert is_valid_uuid4(out["nodes"][0]["id"])
    assert result.tokens_used == 1200
    assert result.ledger.deduction_status == "success"
    assert result.ledger.actual_cost == 1
    assert result.ledger.balance == 9
    assert (await store.get_balance()).total_credits == 9

    txs = await store.transactions()
    assert len(txs) == 1
    assert txs[0].operation_type == "generation"


@pytest.mark.asyncio
async def test_short_prompt_never_reaches_generator(policy, generator):
    pipeline = GenerationPipeline(generator, policy)
    with pytest.raises(InvalidRequestError):
        await pipeline.generate(GenerationRequest(prompt="  hi  "))
    assert generator.calls == []


@pytest.mark.asyncio
async def test_no_credits_no_generation(generator):
    pipeline = GenerationPipeline(generator, CreditPolicy(InMemoryLedgerStore(credits=0)))
    with pytest.raises(InsufficientCreditsError):
        await pipeline.generate(GenerationRequest(prompt="Sync new orders to the warehouse"))
    assert generator.calls == []


@pytest.mark.asyncio
async def test_generator_failure_costs_nothing(store, policy):
    pipeline = GenerationPipeline(FakeGenerator(fail_on="generate"), policy)
    with pytest.raises(GenerationError):
        await pipeline.generate(GenerationRequest(prompt="Sync new orders to the warehouse"))
    assert (await store.get_balance()).total_credits == 10
