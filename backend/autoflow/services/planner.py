# autoflow/services/planner.py
import time
import uuid
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar

from autoflow.core.config import settings
from autoflow.core.errors import GenerationError, InvalidRequestError, PipelineError, RunCancelledError
from autoflow.core.llm.base import WorkflowGenerator
from autoflow.models.results import BatchResult
from autoflow.models.state import (
    BatchPlan,
    CreditLedgerState,
    GeneratedArtifact,
    GenerationRequest,
    PlannedArtifact,
)
from autoflow.services.ledger import (
    BATCH_CREDITS,
    BATCH_RUN_COST,
    CREDITS,
    ENTERPRISE_MIN_COST,
    CreditPolicy,
    enterprise_cost,
)
from autoflow.services.progress import CancellationToken, ProgressTracker, RunRegistry, run_registry
from autoflow.services.sanitizer import sanitize

logger = logging.getLogger("batch")
logger.setLevel(logging.INFO)

T = TypeVar("T")

MIN_BATCH_PROMPT_LENGTH = 20

KIND_ICONS = {"orchestrator": "🎯", "child": "⚙️", "utility": "🔧"}


def import_order(artifacts: List[Any]) -> List[str]:
    """
    Dependency-first ordering of artifact names (anything with ``name`` and
    ``depends_on``). Unknown dependency names are ignored; on a cycle the
    remaining artifacts keep plan order.
    """
    names = [a.name for a in artifacts]
    known = set(names)
    pending = {a.name: [d for d in a.depends_on if d in known and d != a.name] for a in artifacts}
    ordered: List[str] = []
    while len(ordered) < len(names):
        ready = next((n for n in names if n not in ordered and all(d in ordered for d in pending[n])), None)
        if ready is None:
            ordered.extend(n for n in names if n not in ordered)
            break
        ordered.append(ready)
    return ordered


def clamp_max_artifacts(requested: Optional[int], cap: int) -> int:
    if requested is None:
        return cap
    return max(1, min(requested, cap))


class BatchPlanner:
    """
    Runs one batch: plan -> generate each artifact in plan order ->
    sanitize each -> deduct once. Progress bands are fixed so the UI bar is
    stable: analyze 0-10, plan 10-30, generate 30-80, validate 80-95,
    finalize 95-100.

    ``dependsOn`` is carried through to each artifact but does not change
    generation order.
    """

    def __init__(
        self,
        generator: WorkflowGenerator,
        policy: CreditPolicy,
        max_artifacts: int = settings.MAX_BATCH_ARTIFACTS,
        clock: Callable[[], float] = time.monotonic,
        registry: RunRegistry = run_registry,
    ):
        self.generator = generator
        self.policy = policy
        self.max_artifacts = max_artifacts
        self.clock = clock
        self.registry = registry

    async def _call_generator(self, call: Awaitable[T]) -> T:
        try:
            return await call
        except PipelineError:
            raise
        except Exception as e:
            logger.exception("Generator call failed: %s", e)
            raise GenerationError(str(e) or e.__class__.__name__) from e

    def _to_artifact(self, item: PlannedArtifact, raw: Dict[str, Any]) -> GeneratedArtifact:
        document = sanitize(raw)
        return GeneratedArtifact(
            correlation_id=f"workflow-{uuid.uuid4().hex}",
            name=item.name,
            description=item.purpose,
            document=document,
            node_count=len(document.nodes),
            kind=item.kind,
            depends_on=list(item.depends_on),
        )

    def _salvage(
        self,
        generated: List[tuple],
        artifacts: List[GeneratedArtifact],
        warnings: List[str],
    ) -> None:
        done = {a.name for a in artifacts}
        for item, raw in generated:
            if item.name in done:
                continue
            try:
                artifacts.append(self._to_artifact(item, raw))
            except PipelineError as e:
                warnings.append(f"{item.name} could not be validated: {e}")

    async def run_batch(
        self,
        request: GenerationRequest,
        run_id: Optional[str] = None,
        token: Optional[CancellationToken] = None,
    ) -> BatchResult:
        prompt = (request.prompt or "").strip()
        if len(prompt) < MIN_BATCH_PROMPT_LENGTH:
            raise InvalidRequestError(
                f"Please provide a detailed system description (at least {MIN_BATCH_PROMPT_LENGTH} characters)"
            )
        max_artifacts = clamp_max_artifacts(request.max_artifacts, self.max_artifacts)
        enterprise = request.mode == "enterprise"
        currency = CREDITS if enterprise else BATCH_CREDITS
        estimate = ENTERPRISE_MIN_COST if enterprise else BATCH_RUN_COST

        ledger_state: CreditLedgerState = await self.policy.check(estimate, currency)

        run_id = run_id or uuid.uuid4().hex
        token = token or CancellationToken()
        tracker = ProgressTracker(clock=self.clock)
        self.registry.register(run_id, tracker, token)

        plan: Optional[BatchPlan] = None
        generated: List[tuple] = []
        artifacts: List[GeneratedArtifact] = []
        warnings: List[str] = []
        error: Optional[str] = None

        logger.info("=" * 70)
        logger.info(f"BATCH START {run_id}: mode={request.mode} max_artifacts={max_artifacts}")
        logger.info("=" * 70)

        try:
            # 1) analyze request (0-10)
            tracker.update_progress(5)
            step = tracker.append_step("🔍 Analyzing your system requirements...")
            tracker.update_step(step, "completed", "✅ System requirements analyzed")
            tracker.update_progress(10)
            token.raise_if_cancelled()

            # 2) plan (10-30)
            step = tracker.append_step("🏗️ Planning workflow architecture...")
            plan = await self._call_generator(self.generator.plan(prompt, max_artifacts, platform=request.platform))
            if plan.artifact_count > max_artifacts:
                logger.warning("Planner returned %d workflows, truncating to %d", plan.artifact_count, max_artifacts)
                plan = plan.model_copy(update={"artifacts": plan.artifacts[:max_artifacts]})
            if not plan.artifacts:
                raise GenerationError("Planner returned no workflows")
            count = plan.artifact_count
            tracker.update_step(step, "completed", f"✅ Architecture planned: {count} workflows")
            tracker.update_progress(25, count)
            if plan.reasoning:
                tracker.append_step(f"💡 {plan.reasoning}", "completed")
            tracker.append_step(f"📋 Planned {count} workflows:", "completed")
            for item in plan.artifacts:
                tracker.append_step(f"  {KIND_ICONS.get(item.kind, '🔧')} {item.name} - {item.purpose}", "completed")
            tracker.update_progress(30)
            token.raise_if_cancelled()

            # 3) generate in plan order (30-80)
            shared_context: Dict[str, Any] = {
                "prompt": prompt,
                "platform": request.platform,
                "plan": plan.model_dump(by_alias=True),
                "generated": [],
            }
            for idx, item in enumerate(plan.artifacts):
                token.raise_if_cancelled()
                step = tracker.append_step(f"⚡ Generating {item.name} ({idx + 1}/{count})...")
                raw = await self._call_generator(self.generator.generate_artifact(item, shared_context))
                generated.append((item, raw))
                shared_context["generated"].append(item.name)
                tracker.update_step(step, "completed", f"✅ Generated {item.name}")
                tracker.update_progress(30 + (idx + 1) / count * 50)

            # 4) validate / sanitize (80-95)
            step = tracker.append_step("🔧 Validating and processing workflow JSON...")
            for idx, (item, raw) in enumerate(generated):
                artifacts.append(self._to_artifact(item, raw))
                tracker.update_progress(80 + (idx + 1) / count * 15)
            tracker.update_step(step, "completed", "✅ All workflows validated")
            token.raise_if_cancelled()

            # 5) finalize + deduct (95-100)
            cost = enterprise_cost(plan.total_estimated_nodes()) if enterprise else BATCH_RUN_COST
            metadata = {
                "operation_type": "enterprise" if enterprise else "batch_generation",
                "description": "Enterprise workflow generation" if enterprise else "Batch workflow generation",
                "prompt": prompt[:200],
                "workflow_count": len(artifacts),
                "workflow_names": [a.name for a in artifacts],
                "tokens_used": shared_context.get("tokens_used", 0),
            }
            warnings.extend(await self.policy.settle(ledger_state, cost, metadata))
            tracker.append_step(f"🎉 Batch generation complete! Created {len(artifacts)} workflows.", "completed")
            tracker.complete()

        except RunCancelledError:
            logger.info("Batch %s cancelled after %d generated workflow(s)", run_id, len(generated))
            self._salvage(generated, artifacts, warnings)
            tracker.abort("❌ Run cancelled")
            error = "Run cancelled"
        except PipelineError as e:
            logger.error(f"❌ Batch {run_id} failed: {e}")
            self._salvage(generated, artifacts, warnings)
            tracker.fail(f"❌ Error: {e}")
            error = str(e)
        except Exception as e:
            logger.exception(f"❌ Batch {run_id} failed unexpectedly: {e}")
            self._salvage(generated, artifacts, warnings)
            tracker.fail(f"❌ Error: {e}")
            error = str(e) or e.__class__.__name__
        finally:
            self.registry.unregister(run_id)

        logger.info(f"BATCH END {run_id}: status={tracker.state.status} artifacts={len(artifacts)}")
        return BatchResult(
            run_id=run_id,
            prompt=prompt,
            plan=plan,
            artifacts=artifacts,
            progress=tracker.state,
            ledger=ledger_state,
            warnings=warnings,
            error=error,
        )
