# autoflow/api/v1/debug.py
from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, Optional
import logging

from autoflow.api.dependencies import get_debugger
from autoflow.core.errors import ValidationError
from autoflow.services.analyzer import summarize
from autoflow.services.debugger import Debugger, parse_workflow_json

logger = logging.getLogger("api.debug")

router = APIRouter(prefix="/api/v1/debug", tags=["debug"])


class DebugRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    workflow: Optional[Dict[str, Any]] = None
    workflow_json: Optional[str] = Field(None, alias="workflowJson")
    error_message: Optional[str] = Field(None, alias="errorMessage")

    def document(self) -> Dict[str, Any]:
        if self.workflow is not None:
            return self.workflow
        if self.workflow_json:
            return parse_workflow_json(self.workflow_json)
        raise ValidationError("Provide either 'workflow' or 'workflowJson'")


@router.post("/analyze")
async def analyze_endpoint(req: DebugRequest, debugger: Debugger = Depends(get_debugger)):
    report = debugger.analyze_only(req.document(), req.error_message)
    return summarize(report.issues)


@router.post("/regenerate")
async def regenerate_endpoint(req: DebugRequest, debugger: Debugger = Depends(get_debugger)):
    logger.info("Received /api/v1/debug/regenerate")
    result = await debugger.regenerate(req.document(), req.error_message)
    return result.model_dump(by_alias=True, mode="json")
