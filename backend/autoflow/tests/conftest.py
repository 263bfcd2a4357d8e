# tests/conftest.py
import uuid
from typing import Any, Dict, List, Optional

import pytest

from autoflow.core.errors import GenerationError
from autoflow.models.results import FixOutput, GenerationOutput
from autoflow.models.state import BatchPlan, PlannedArtifact
from autoflow.services.ledger import CreditPolicy, InMemoryLedgerStore


def make_document(name: str = "Order Sync", with_trigger: bool = True) -> Dict[str, Any]:
    first = "Webhook" if with_trigger else "Start"
    first_type = "n8n-nodes-base.webhook" if with_trigger else "n8n-nodes-base.noOp"
    return {
        "name": name,
        "nodes": [
            {
                "id": str(uuid.uuid4()),
                "name": first,
                "type": first_type,
                "typeVersion": 1,
                "position": [100, 300],
                "parameters": {"path": "orders"},
            },
            {
                "id": str(uuid.uuid4()),
                "name": "Store",
                "type": "n8n-nodes-base.set",
                "typeVersion": 1,
                "position": [300, 300],
                "parameters": {"keep": True},
            },
        ],
        "connections": {first: {"main": [[{"node": "Store", "type": "main", "index": 0}]]}},
    }


class FakeGenerator:
    """Scriptable stand-in for the external generator."""

    def __init__(
        self,
        plan: Optional[BatchPlan] = None,
        fail_on: Optional[str] = None,
        tokens: int = 1200,
        on_artifact=None,
        malformed: Optional[str] = None,
    ):
        self._plan = plan
        self.fail_on = fail_on
        self.tokens = tokens
        self.on_artifact = on_artifact
        self.malformed = malformed
        self.plan_platform: Optional[str] = None
        self.calls: List[str] = []
        self.fix_args: Optional[tuple] = None

    async def generate(self, prompt: str, platform: str, options: Optional[Dict[str, Any]] = None) -> GenerationOutput:
        self.calls.append("generate")
        if self.fail_on == "generate":
            raise GenerationError("upstream timed out")
        doc = make_document("Generated Workflow")
        doc["id"] = "platform-id"
        doc["nodes"][0]["id"] = "not-a-uuid"
        return GenerationOutput(document=doc, tokens_used=self.tokens)

    async def plan(self, prompt: str, max_artifacts: int, platform: str = "n8n") -> BatchPlan:
        self.calls.append("plan")
        self.plan_platform = platform
        if self.fail_on == "plan":
            raise GenerationError("planner unavailable")
        if self._plan is not None:
            return self._plan
        return BatchPlan(
            artifacts=[
                PlannedArtifact(name="Main Orchestrator", kind="orchestrator", estimated_nodes=8),
                PlannedArtifact(name="Child A", kind="child", depends_on=["Main Orchestrator"], estimated_nodes=5),
                PlannedArtifact(name="Child B", kind="child", depends_on=["Main Orchestrator"], estimated_nodes=5),
            ][:max_artifacts],
            reasoning="split by responsibility",
        )

    async def generate_artifact(self, item: PlannedArtifact, shared_context: Dict[str, Any]) -> Dict[str, Any]:
        self.calls.append(item.name)
        if self.on_artifact is not None:
            self.on_artifact(item)
        if self.fail_on == item.name:
            raise GenerationError(f"could not generate {item.name}")
        if self.malformed == item.name:
            return {"name": item.name}
        return make_document(item.name)

    async def fix(self, document: Dict[str, Any], issues: List[str], user_error: Optional[str]) -> FixOutput:
        self.calls.append("fix")
        self.fix_args = (document, issues, user_error)
        if self.fail_on == "fix":
            raise RuntimeError("fix backend crashed")
        return FixOutput(
            document=make_document(document.get("name") or "Fixed"),
            fixes_applied=["Added trigger"],
            tokens_used=800,
        )


@pytest.fixture
def store():
    return InMemoryLedgerStore(credits=10, bonus_credits=0, batch_credits=1)


@pytest.fixture
def policy(store):
    return CreditPolicy(store, low_balance_threshold=10)


@pytest.fixture
def generator():
    return FakeGenerator()
