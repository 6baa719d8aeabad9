import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from autoguardian.billing import BillingService
from autoguardian.config.loader import AppConfig
from autoguardian.core.analysis import AnalysisService
from autoguardian.core.endpoints import build_endpoints
from autoguardian.core.usage_gate import UsageGate
from autoguardian.sdk import InferenceClient
from autoguardian.storage.repository import UsageRepository

from .routers import analysis, billing, history, waitlist

logger = logging.getLogger(__name__)


def create_app(
    config: Optional[AppConfig] = None,
    repository: Optional[UsageRepository] = None,
    inference_client=None,
    billing_service: Optional[BillingService] = None,
) -> FastAPI:
    """Build the API with its collaborators.

    Collaborators are created once here and shared by every request.
    Tests pass their own repository and inference client.
    """
    config = config or AppConfig()
    if repository is None:
        repository = UsageRepository(config.storage.db_path)
        repository.initialize()
    if inference_client is None:
        inference_client = InferenceClient(model=config.model.name)
    if billing_service is None:
        billing_service = BillingService(config.billing, repository)

    app = FastAPI(title="AutoGuardian API")
    app.add_middleware(CORSMiddleware, allow_origins=['*'], allow_methods=['*'], allow_headers=['*'])

    app.state.config = config
    app.state.repository = repository
    app.state.billing = billing_service
    app.state.endpoints = build_endpoints(config.model.max_tokens)
    app.state.analysis_service = AnalysisService(
        inference_client=inference_client,
        repository=repository,
        usage_gate=UsageGate(repository, free_tier_limit=config.quota.free_tier_limit),
    )

    @app.exception_handler(RequestValidationError)
    async def invalid_body_handler(request: Request, exc: RequestValidationError):
        logger.warning("Rejected malformed request to %s: %s", request.url.path, exc.errors())
        return JSONResponse({"success": False, "error": "Invalid request body."}, status_code=400)

    @app.get("/health")
    def health():
        return {"status": "ok"}

    app.include_router(analysis.router)
    app.include_router(waitlist.router)
    app.include_router(billing.router)
    app.include_router(history.router)
    return app
