# autoflow/services/generation.py
import logging
from typing import Any, Dict, Tuple

from autoflow.core.errors import GenerationError, InvalidRequestError
from autoflow.core.llm.base import WorkflowGenerator
from autoflow.models.results import GenerationResult
from autoflow.models.state import Document, GenerationRequest
from autoflow.services.ledger import CreditPolicy, complexity_label, credits_from_tokens, estimate_generation_cost
from autoflow.services.sanitizer import sanitize

logger = logging.getLogger("generation")
logger.setLevel(logging.INFO)

MIN_PROMPT_LENGTH = 10


class GenerationPipeline:
    """
    Single-shot flow: credit check -> generator -> sanitize -> deduct.
    """

    def __init__(self, generator: WorkflowGenerator, policy: CreditPolicy):
        self.generator = generator
        self.policy = policy

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        prompt = (request.prompt or "").strip()
        if len(prompt) < MIN_PROMPT_LENGTH:
            raise InvalidRequestError(
                f"Please provide a more detailed workflow description (at least {MIN_PROMPT_LENGTH} characters)"
            )

        logger.info("Generating %s workflow (template=%s): %s", request.platform, request.template_id, prompt[:80])

        async def _operation() -> Tuple[Tuple[Document, int], int]:
            output = await self.generator.generate(prompt, request.platform, {"template_id": request.template_id})
            if not output.document:
                raise GenerationError("Invalid response from workflow generation service")
            document = sanitize(output.document)
            actual = output.credits_used if output.credits_used is not None else credits_from_tokens(output.tokens_used)
            return (document, output.tokens_used), actual

        metadata: Dict[str, Any] = {
            "operation_type": "generation",
            "description": f"Workflow generation ({request.platform})",
            "prompt": prompt[:200],
        }
        outcome = await self.policy.run_metered(_operation, estimate_generation_cost(prompt), metadata)
        document, tokens = outcome.value
        logger.info(
            "✅ Generated workflow %r with %d nodes (%d tokens, %s)",
            document.name, len(document.nodes), tokens, complexity_label(tokens),
        )
        return GenerationResult(document=document, ledger=outcome.ledger, tokens_used=tokens, warnings=outcome.warnings)
