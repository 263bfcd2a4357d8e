# autoflow/api/v1/batch.py
from fastapi import APIRouter, Depends, HTTPException, Response
from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, List, Literal, Optional
import logging

from autoflow.api.dependencies import get_batch_planner, get_run_registry
from autoflow.core.naming import file_stem
from autoflow.models.state import GenerationRequest
from autoflow.services.export import build_batch_package
from autoflow.services.planner import BatchPlanner
from autoflow.services.progress import RunRegistry, format_time_remaining

logger = logging.getLogger("api.batch")

router = APIRouter(prefix="/api/v1/batch", tags=["batch"])


class BatchRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    prompt: str
    mode: Literal["batch", "enterprise"] = "batch"
    platform: str = "n8n"
    max_artifacts: Optional[int] = Field(None, alias="maxArtifacts")
    run_id: Optional[str] = Field(None, alias="runId")


class ExportWorkflow(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    kind: str = "utility"
    depends_on: List[str] = Field([], alias="dependsOn")
    document: Dict[str, Any]


class ExportRequest(BaseModel):
    prompt: str
    platform: str = "n8n"
    workflows: List[ExportWorkflow]


@router.post("")
async def batch_endpoint(req: BatchRequest, planner: BatchPlanner = Depends(get_batch_planner)):
    logger.info("Received /api/v1/batch mode=%s run_id=%s", req.mode, req.run_id)
    gen_req = GenerationRequest(
        prompt=req.prompt, mode=req.mode, platform=req.platform, max_artifacts=req.max_artifacts
    )
    result = await planner.run_batch(gen_req, run_id=req.run_id)
    return result.model_dump(by_alias=True, mode="json")


@router.get("/{run_id}/progress")
async def progress_endpoint(run_id: str, registry: RunRegistry = Depends(get_run_registry)):
    state = registry.progress(run_id)
    if state is None:
        raise HTTPException(status_code=404, detail=f"Run {run_id} not found")
    return {
        **state.model_dump(by_alias=True, mode="json"),
        "eta": format_time_remaining(state.estimated_seconds_remaining),
    }


@router.post("/{run_id}/cancel")
async def cancel_endpoint(run_id: str, registry: RunRegistry = Depends(get_run_registry)):
    if not registry.cancel(run_id):
        raise HTTPException(status_code=404, detail=f"Run {run_id} not found")
    return {"run_id": run_id, "cancelled": True}


@router.post("/export")
async def export_endpoint(req: ExportRequest):
    package = build_batch_package(req.workflows, prompt=req.prompt, platform=req.platform)
    filename = f"workflow_set_{file_stem(req.workflows[0].name) if req.workflows else 'empty'}.zip"
    return Response(
        content=package,
        media_type="application/zip",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
