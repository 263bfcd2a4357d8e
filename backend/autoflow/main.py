# autoflow/main.py
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from autoflow.api.v1 import batch as batch_router, debug as debug_router, generate as generate_router
from autoflow.core.config import settings
from autoflow.core.errors import (
    GenerationError,
    InsufficientCreditsError,
    InvalidRequestError,
    LedgerUnavailableError,
    PipelineError,
    ValidationError,
)

logging.basicConfig(level=settings.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger("autoflow")

app = FastAPI(title=settings.APP_NAME)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

# register routers
app.include_router(generate_router.router)
app.include_router(batch_router.router)
app.include_router(debug_router.router)

STATUS_BY_ERROR = [
    (InsufficientCreditsError, 402),
    (ValidationError, 422),
    (InvalidRequestError, 422),
    (GenerationError, 502),
    (LedgerUnavailableError, 503),
]


@app.exception_handler(PipelineError)
async def pipeline_error_handler(request: Request, exc: PipelineError):
    status = next((code for cls, code in STATUS_BY_ERROR if isinstance(exc, cls)), 500)
    logger.warning("%s %s -> %d %s: %s", request.method, request.url.path, status, exc.__class__.__name__, exc)
    body = {"detail": str(exc), "error": exc.__class__.__name__}
    if isinstance(exc, InsufficientCreditsError):
        body.update(required=exc.required, available=exc.available, currency=exc.currency)
    return JSONResponse(status_code=status, content=body)


@app.get("/")
async def root():
    return {"message": f"{settings.APP_NAME} backend running", "env": settings.APP_ENV}
