# autoflow/models/results.py
from pydantic import BaseModel, ConfigDict, Field
from typing import List, Dict, Any, Optional

from autoflow.models.state import (
    BatchPlan,
    CreditLedgerState,
    Document,
    GeneratedArtifact,
    ProgressState,
)


class GenerationOutput(BaseModel):
    """What the external generator hands back for a single-shot request."""

    model_config = ConfigDict(populate_by_name=True)

    document: Dict[str, Any]
    tokens_used: int = Field(0, alias="tokensUsed")
    credits_used: Optional[int] = Field(None, alias="creditsUsed")


class FixOutput(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    document: Dict[str, Any]
    fixes_applied: List[str] = Field([], alias="fixesApplied")
    tokens_used: int = Field(0, alias="tokensUsed")
    credits_used: Optional[int] = Field(None, alias="creditsUsed")


class GenerationResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    document: Document
    ledger: CreditLedgerState
    tokens_used: int = Field(0, alias="tokensUsed")
    warnings: List[str] = []


class BatchResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    run_id: str = Field(alias="runId")
    prompt: str
    plan: Optional[BatchPlan] = None
    artifacts: List[GeneratedArtifact] = []
    progress: ProgressState
    ledger: CreditLedgerState
    warnings: List[str] = []
    error: Optional[str] = None


class DebugReport(BaseModel):
    issues: List[str] = []


class DebugResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    original_document: Dict[str, Any] = Field(alias="originalDocument")
    fixed_document: Document = Field(alias="fixedDocument")
    issues_found: List[str] = Field([], alias="issuesFound")
    fixes_applied: List[str] = Field([], alias="fixesApplied")
    ledger: CreditLedgerState
    tokens_used: int = Field(0, alias="tokensUsed")
    warnings: List[str] = []
