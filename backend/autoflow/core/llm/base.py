# autoflow/core/llm/base.py
from typing import Any, Dict, List, Optional, Protocol

from autoflow.models.results import FixOutput, GenerationOutput
from autoflow.models.state import BatchPlan, PlannedArtifact


class WorkflowGenerator(Protocol):
    """The text/graph generator the pipeline drives. Treated as opaque."""

    async def generate(self, prompt: str, platform: str, options: Optional[Dict[str, Any]] = None) -> GenerationOutput: ...

    async def plan(self, prompt: str, max_artifacts: int, platform: str = "n8n") -> BatchPlan: ...

    async def generate_artifact(self, item: PlannedArtifact, shared_context: Dict[str, Any]) -> Dict[str, Any]: ...

    async def fix(self, document: Dict[str, Any], issues: List[str], user_error: Optional[str]) -> FixOutput: ...
