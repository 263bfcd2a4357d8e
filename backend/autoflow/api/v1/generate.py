# autoflow/api/v1/generate.py
from fastapi import APIRouter, Depends, Response
from typing import Any, Dict
import logging

from autoflow.api.dependencies import get_batch_planner, get_generation_pipeline, get_ledger_store
from autoflow.core.config import settings
from autoflow.core.naming import file_stem
from autoflow.models.state import GenerationRequest
from autoflow.services.export import export_document
from autoflow.services.generation import GenerationPipeline
from autoflow.services.ledger import LedgerStore, fetch_balance, low_balance_warning
from autoflow.services.planner import BatchPlanner
from autoflow.services.sanitizer import sanitize

logger = logging.getLogger("api.generate")

router = APIRouter(prefix="/api/v1", tags=["generate"])


@router.post("/generate")
async def generate_endpoint(
    req: GenerationRequest,
    pipeline: GenerationPipeline = Depends(get_generation_pipeline),
    planner: BatchPlanner = Depends(get_batch_planner),
):
    logger.info("Received /api/v1/generate mode=%s platform=%s", req.mode, req.platform)
    if req.mode != "single":
        result = await planner.run_batch(req)
    else:
        result = await pipeline.generate(req)
    return result.model_dump(by_alias=True, mode="json")


@router.post("/sanitize")
async def sanitize_endpoint(workflow: Dict[str, Any]):
    return sanitize(workflow).to_export()


@router.post("/export")
async def export_endpoint(workflow: Dict[str, Any]):
    doc = sanitize(workflow)
    return Response(
        content=export_document(doc),
        media_type="application/json",
        headers={"Content-Disposition": f'attachment; filename="{file_stem(doc.name)}.json"'},
    )


@router.get("/credits")
async def credits_endpoint(store: LedgerStore = Depends(get_ledger_store)):
    balance = await fetch_balance(store)
    return {
        **balance.to_dict(),
        "warning": low_balance_warning(balance.total_credits, settings.LOW_BALANCE_THRESHOLD),
    }
