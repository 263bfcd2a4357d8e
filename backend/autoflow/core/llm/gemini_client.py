# autoflow/core/llm/gemini_client.py
import re
import json
import uuid
import logging
from typing import List, Dict, Any, Optional, Tuple

from google import genai
from pydantic import ValidationError as PydanticValidationError

from autoflow.core.config import settings
from autoflow.core.errors import GenerationError
from autoflow.core.naming import generate_workflow_name, slugify
from autoflow.models.results import FixOutput, GenerationOutput
from autoflow.models.state import BatchPlan, OutputGroup, PlannedArtifact, TargetRef

logger = logging.getLogger("gemini_client")


GENERATE_PROMPT_TEMPLATE = """
You are an expert {platform} workflow builder.

Generate a complete, importable {platform} workflow for the requirement below.

Rules:
- Start with exactly one trigger node (webhook, schedule or manual trigger).
- Every other node must be reachable through "connections".
- "connections" is keyed by the SOURCE node name:
    {{"Source Node": {{"main": [[{{"node": "Target Node", "type": "main", "index": 0}}]]}}}}
- Every node needs: id (UUID v4), name (unique), type, typeVersion, position [x, y], parameters.
- Use placeholder credentials, never real secrets.
{template_hint}
Requirement:
{prompt}

Return ONLY the workflow JSON object, no extra text.
"""

PLAN_PROMPT_TEMPLATE = """
You are a workflow architect. Break the system described below into at most
{max_artifacts} separate {platform} workflows that work together.

Each planned workflow MUST be a JSON object with:
- name: unique, human readable
- purpose: one sentence
- type: "orchestrator" | "child" | "utility"
- complexity: "low" | "medium" | "high"
- estimatedNodes: integer
- dependsOn: list of names of other planned workflows this one needs

Return ONLY JSON:
{{"reasoning": "...", "estimatedTotalNodes": N, "workflows": [ ... ]}}

System description:
{prompt}
"""

ARTIFACT_PROMPT_TEMPLATE = """
You are an expert {platform} workflow builder generating one workflow of a larger set.

Workflow to build:
- name: {name}
- purpose: {purpose}
- role: {kind}
- depends on: {depends_on}

Whole system:
{system_prompt}

Workflows already generated in this set: {generated}

Return ONLY the workflow JSON object with "name", "nodes", "connections", "settings".
"""

FIX_PROMPT_TEMPLATE = """
You are debugging a broken {platform} workflow.

Issues detected:
{issues}

User reported error:
{user_error}

Original workflow JSON:
{document}

Fix every issue while keeping the original intent. Return ONLY JSON:
{{"workflow": {{...fixed workflow...}}, "fixesApplied": ["..."]}}
"""


def extract_json(text: str) -> Any:
    """
    Pull a JSON value out of model output: fenced ```json blocks first,
    then bare fences, then the outermost object/array.
    """
    candidates: List[str] = []
    m = re.search(r"```json\s*\n(.+?)\n?```", text, re.S)
    if m:
        candidates.append(m.group(1))
    m = re.search(r"```\s*\n?(.+?)\n?```", text, re.S)
    if m:
        candidates.append(m.group(1))
    m = re.search(r"(\{.*\}|\[.*\])", text, re.S)
    if m:
        candidates.append(m.group(1))
    candidates.append(text)

    for c in candidates:
        try:
            return json.loads(c.strip())
        except json.JSONDecodeError:
            continue
    raise GenerationError("Generator response did not contain valid JSON")


class GeminiClient:
    """
    Workflow generator backed by Gemini.
    mock_mode builds small deterministic workflows locally instead.
    """

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None, mock_mode: bool = False):
        self.api_key = api_key or settings.GEMINI_API_KEY
        self.model = model or settings.GEMINI_MODEL
        self.mock_mode = mock_mode
        if not self.mock_mode:
            self.client = genai.Client(api_key=self.api_key) if self.api_key else genai.Client()
        else:
            self.client = None
        logger.info("GeminiClient initialized (model=%s, mock_mode=%s)", self.model, self.mock_mode)

    async def _complete(self, prompt: str) -> Tuple[str, int]:
        try:
            resp = await self.client.aio.models.generate_content(model=self.model, contents=prompt)
        except Exception as e:
            logger.exception("Gemini call failed: %s", e)
            raise GenerationError(f"Generator call failed: {e}") from e
        text = getattr(resp, "text", None) or ""
        usage = getattr(resp, "usage_metadata", None)
        tokens = getattr(usage, "total_token_count", 0) or 0
        if not text:
            raise GenerationError("Generator returned an empty response")
        return text, tokens

    # -------- generator contract -------- #

    async def generate(self, prompt: str, platform: str, options: Optional[Dict[str, Any]] = None) -> GenerationOutput:
        options = options or {}
        if self.mock_mode:
            return GenerationOutput(document=self._heuristic_document(generate_workflow_name(prompt), prompt), tokens_used=0)

        template_hint = ""
        if options.get("template_id"):
            template_hint = (
                f"- Base this on template '{options['template_id']}': keep its core structure, "
                "adapt it to the requirement.\n"
            )
        text, tokens = await self._complete(
            GENERATE_PROMPT_TEMPLATE.format(platform=platform, prompt=prompt, template_hint=template_hint)
        )
        doc = extract_json(text)
        if not isinstance(doc, dict):
            raise GenerationError("Generator did not return a workflow object")
        return GenerationOutput(document=doc, tokens_used=tokens)

    async def plan(self, prompt: str, max_artifacts: int, platform: str = "n8n") -> BatchPlan:
        if self.mock_mode:
            return self._heuristic_plan(prompt, max_artifacts)

        text, _ = await self._complete(
            PLAN_PROMPT_TEMPLATE.format(prompt=prompt, max_artifacts=max_artifacts, platform=platform)
        )
        parsed = extract_json(text)
        if isinstance(parsed, list):
            parsed = {"workflows": parsed}
        try:
            return BatchPlan.model_validate(parsed)
        except PydanticValidationError as e:
            raise GenerationError(f"Planner returned an invalid plan: {e.errors()[0].get('msg')}") from e

    async def generate_artifact(self, item: PlannedArtifact, shared_context: Dict[str, Any]) -> Dict[str, Any]:
        if self.mock_mode:
            return self._heuristic_document(item.name, item.purpose or item.name)

        text, tokens = await self._complete(
            ARTIFACT_PROMPT_TEMPLATE.format(
                platform=shared_context.get("platform", "n8n"),
                name=item.name,
                purpose=item.purpose,
                kind=item.kind,
                depends_on=", ".join(item.depends_on) or "nothing",
                system_prompt=shared_context.get("prompt", ""),
                generated=", ".join(shared_context.get("generated", [])) or "none yet",
            )
        )
        shared_context["tokens_used"] = shared_context.get("tokens_used", 0) + tokens
        doc = extract_json(text)
        if not isinstance(doc, dict):
            raise GenerationError(f"Generator did not return a workflow object for {item.name}")
        return doc

    async def fix(self, document: Dict[str, Any], issues: List[str], user_error: Optional[str]) -> FixOutput:
        if self.mock_mode:
            return self._heuristic_fix(document, issues)

        text, tokens = await self._complete(
            FIX_PROMPT_TEMPLATE.format(
                platform="n8n",
                issues="\n".join(f"- {i}" for i in issues) or "- none detected",
                user_error=user_error or "none",
                document=json.dumps(document, indent=2),
            )
        )
        parsed = extract_json(text)
        if not isinstance(parsed, dict):
            raise GenerationError("Fix response was not a JSON object")
        fixed = parsed.get("workflow") or parsed.get("fixedWorkflow") or parsed
        fixes = parsed.get("fixesApplied") or parsed.get("issues") or ["AI analysis and fixes applied"]
        return FixOutput(document=fixed, fixes_applied=list(fixes), tokens_used=tokens)

    # -------- offline heuristics -------- #

    def _heuristic_document(self, name: str, description: str) -> Dict[str, Any]:
        trigger, process, respond = "Webhook Trigger", "Process Data", "Respond to Webhook"
        nodes = [
            {
                "id": str(uuid.uuid4()),
                "name": trigger,
                "type": "n8n-nodes-base.webhook",
                "typeVersion": 2,
                "position": [100, 300],
                "parameters": {"path": slugify(name), "httpMethod": "POST"},
            },
            {
                "id": str(uuid.uuid4()),
                "name": process,
                "type": "n8n-nodes-base.set",
                "typeVersion": 3,
                "position": [300, 300],
                "parameters": {"values": {"string": [{"name": "summary", "value": description[:200]}]}},
            },
            {
                "id": str(uuid.uuid4()),
                "name": respond,
                "type": "n8n-nodes-base.respondToWebhook",
                "typeVersion": 1,
                "position": [500, 300],
                "parameters": {"respondWith": "json"},
            },
        ]
        connections = {
            trigger: OutputGroup(main=[[TargetRef(node=process)]]).model_dump(),
            process: OutputGroup(main=[[TargetRef(node=respond)]]).model_dump(),
        }
        return {"name": name, "nodes": nodes, "connections": connections}

    def _heuristic_plan(self, prompt: str, max_artifacts: int) -> BatchPlan:
        """
        Very simple deterministic plan: an orchestrator, one child per
        remaining slot, and an error-handling utility when there is room.
        """
        base = generate_workflow_name(prompt).replace(" Workflow", "") or "System"
        orchestrator = f"{base} Orchestrator"
        items: List[Dict[str, Any]] = [
            {"name": orchestrator, "purpose": f"Coordinates: {prompt[:120]}", "type": "orchestrator", "estimatedNodes": 8}
        ]
        child_slots = max(0, max_artifacts - 2) if max_artifacts >= 3 else max(0, max_artifacts - 1)
        for i in range(child_slots):
            items.append(
                {
                    "name": f"{base} Step {i + 1}",
                    "purpose": f"Handles part {i + 1} of the system",
                    "type": "child",
                    "estimatedNodes": 6,
                    "dependsOn": [orchestrator],
                }
            )
        if max_artifacts >= 3:
            items.append({"name": f"{base} Error Handler", "purpose": "Central error handling", "type": "utility", "estimatedNodes": 4})
        return BatchPlan.model_validate({"workflows": items, "reasoning": "Heuristic plan (generator offline)"})

    def _heuristic_fix(self, document: Dict[str, Any], issues: List[str]) -> FixOutput:
        name = document.get("name") or "Fixed Workflow"
        fixed = self._heuristic_document(name, f"Rebuilt from {len(document.get('nodes') or [])} node(s)")
        fixes = [f"Rebuilt workflow to address: {i}" for i in issues] or ["Rebuilt workflow structure"]
        return FixOutput(document=fixed, fixes_applied=fixes)
