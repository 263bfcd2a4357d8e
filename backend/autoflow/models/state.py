# autoflow/models/state.py
from pydantic import BaseModel, ConfigDict, Field, AliasChoices, field_validator
from typing import List, Dict, Any, Optional, Union, Literal
from datetime import datetime

ArtifactKind = Literal["orchestrator", "child", "utility"]
StepStatus = Literal["pending", "in_progress", "completed", "error"]
DeductionStatus = Literal["pending", "success", "failed"]
RunStatus = Literal["running", "completed", "failed", "aborted"]
GenerationMode = Literal["single", "batch", "enterprise"]


# -------- workflow document -------- #

class TargetRef(BaseModel):
    model_config = ConfigDict(extra="allow")

    node: str
    type: str = "main"
    index: int = 0


class OutputGroup(BaseModel):
    model_config = ConfigDict(extra="allow")

    main: List[List[TargetRef]] = []


class Node(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True, coerce_numbers_to_str=True)

    id: str
    name: str
    type: str
    parameters: Dict[str, Any] = {}
    position: List[Union[int, float]]
    type_version: Union[int, float] = Field(1, alias="typeVersion")


class Document(BaseModel):
    """
    A workflow graph as the downstream platform imports it.
    Connections are keyed by source node *name*, not id.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True, coerce_numbers_to_str=True)

    name: str
    nodes: List[Node]
    connections: Dict[str, Any] = {}
    active: bool = False
    settings: Dict[str, Any] = {"executionOrder": "v1"}
    pin_data: Dict[str, Any] = Field({}, alias="pinData")
    tags: List[Any] = []

    def to_export(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")

    def node_names(self) -> List[str]:
        return [n.name for n in self.nodes]


# -------- requests / ledger -------- #

class GenerationRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    prompt: str
    mode: GenerationMode = "single"
    platform: str = "n8n"
    template_id: Optional[str] = Field(None, alias="templateId")
    max_artifacts: Optional[int] = Field(None, alias="maxArtifacts")


class CreditLedgerState(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    currency: str = "credits"
    balance: int = 0
    batch_balance: int = Field(0, alias="batchBalance")
    estimated_cost: int = Field(0, alias="estimatedCost")
    actual_cost: Optional[int] = Field(None, alias="actualCost")
    deduction_status: DeductionStatus = Field("pending", alias="deductionStatus")


# -------- batch planning -------- #

class PlannedArtifact(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    name: str
    purpose: str = Field("", validation_alias=AliasChoices("purpose", "description"))
    kind: ArtifactKind = Field("utility", validation_alias=AliasChoices("kind", "type"))
    complexity: str = "medium"
    estimated_nodes: int = Field(0, alias="estimatedNodes")
    depends_on: List[str] = Field([], validation_alias=AliasChoices("dependsOn", "depends_on", "dependencies"),
                                  serialization_alias="dependsOn")

    @field_validator("kind", mode="before")
    @classmethod
    def _normalize_kind(cls, v: Any) -> str:
        v = str(v or "").strip().lower()
        return v if v in ("orchestrator", "child", "utility") else "utility"

    @field_validator("depends_on", mode="before")
    @classmethod
    def _dedupe_depends_on(cls, v: Any) -> List[str]:
        if not v:
            return []
        if isinstance(v, str):
            v = [v]
        seen: List[str] = []
        for name in v:
            name = str(name)
            if name not in seen:
                seen.append(name)
        return seen


class BatchPlan(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    artifacts: List[PlannedArtifact] = Field([], validation_alias=AliasChoices("artifacts", "workflows", "modules"))
    reasoning: str = ""
    estimated_total_nodes: Optional[int] = Field(None, alias="estimatedTotalNodes")

    @property
    def artifact_count(self) -> int:
        return len(self.artifacts)

    def total_estimated_nodes(self) -> int:
        if self.estimated_total_nodes is not None:
            return self.estimated_total_nodes
        return sum(a.estimated_nodes for a in self.artifacts)


class GeneratedArtifact(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    correlation_id: str = Field(alias="correlationId")
    name: str
    description: str = ""
    document: Document
    node_count: int = Field(0, alias="nodeCount")
    kind: ArtifactKind = "utility"
    depends_on: List[str] = Field([], alias="dependsOn")


# -------- progress -------- #

class ProgressStep(BaseModel):
    id: str
    message: str
    status: StepStatus = "in_progress"
    timestamp: datetime


class ProgressState(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    percentage: float = 0
    steps: List[ProgressStep] = []
    start_time: Optional[float] = Field(None, alias="startTime")
    estimated_seconds_remaining: Optional[int] = Field(None, alias="estimatedSecondsRemaining")
    status: RunStatus = "running"
