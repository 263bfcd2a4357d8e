# autoflow/services/debugger.py
import json
import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from autoflow.core.errors import GenerationError, ValidationError
from autoflow.core.llm.base import WorkflowGenerator
from autoflow.models.results import DebugReport, DebugResult
from autoflow.models.state import Document
from autoflow.services.analyzer import TriggerRegistry, analyze
from autoflow.services.ledger import CreditPolicy, credits_from_tokens, debug_cost
from autoflow.services.sanitizer import sanitize

logger = logging.getLogger("debugger")


def parse_workflow_json(text: str) -> Dict[str, Any]:
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as e:
        raise ValidationError("Invalid JSON format. Please ensure the workflow JSON is valid.") from e
    if not isinstance(parsed, dict):
        raise ValidationError("Workflow JSON must be an object")
    return parsed


class Debugger:
    """
    Analyze-only is free and read-only. Regenerate is metered: the fix
    generator gets the original document, the issue list and the user's
    error text, and its output goes through the sanitizer.
    """

    def __init__(self, generator: WorkflowGenerator, policy: CreditPolicy, registry: Optional[TriggerRegistry] = None):
        self.generator = generator
        self.policy = policy
        self.registry = registry

    def analyze_only(self, document: Union[Document, Mapping[str, Any]], user_error: Optional[str] = None) -> DebugReport:
        return DebugReport(issues=analyze(document, user_error, self.registry))

    async def regenerate(
        self,
        document: Union[Document, Mapping[str, Any]],
        user_error: Optional[str] = None,
        issues: Optional[List[str]] = None,
    ) -> DebugResult:
        original = document.to_export() if isinstance(document, Document) else dict(document)
        # no prior analysis is required, but the report always carries one
        if issues is None:
            issues = analyze(original, user_error, self.registry)
        logger.info("🔧 Regenerating workflow %r with %d issue(s)", original.get("name"), len(issues))

        async def _operation() -> Tuple[Tuple[Document, List[str], int], int]:
            output = await self.generator.fix(original, issues, user_error)
            if not output.document:
                raise GenerationError("Invalid response from workflow debugging service")
            fixed = sanitize(output.document)
            actual = output.credits_used if output.credits_used is not None else credits_from_tokens(output.tokens_used)
            return (fixed, output.fixes_applied, output.tokens_used), actual

        metadata = {
            "operation_type": "debug",
            "description": "Workflow debug and regenerate",
            "workflow_name": original.get("name"),
        }
        outcome = await self.policy.run_metered(_operation, debug_cost(), metadata)
        fixed, fixes, tokens = outcome.value
        logger.info("✅ Workflow debugging complete: %d issue(s), %d fix(es)", len(issues), len(fixes))
        return DebugResult(
            original_document=original,
            fixed_document=fixed,
            issues_found=issues,
            fixes_applied=fixes or ["AI analysis and fixes applied"],
            ledger=outcome.ledger,
            tokens_used=tokens,
            warnings=outcome.warnings,
        )
