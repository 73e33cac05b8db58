"""
LLM Gateway Service

A FastAPI service exposing a single generation API over multiple LLM
providers.

Features:
- Task-aware provider selection with ordered fallbacks
- Response caching with task-specific TTLs
- Per-call usage logging and cost reporting
- Streaming over server-sent events
"""

import binascii
import json
import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from pydantic import BaseModel, Field

from .core.errors import (
    ConfigurationError,
    GatewayError,
    ProviderError,
    ProviderUnavailableError,
    UnsupportedOperationError,
    ValidationError,
)
from .models.catalog import ModelDescriptor
from .models.request import GenerationRequest, ImageInput, TaskType
from .models.response import GenerationResponse
from .models.usage import CostStats, ThresholdStatus
from .service import GatewayService, GenerateOptions, build_gateway

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

SERVICE_NAME = "llm-gateway"

ERROR_STATUS = [
    (ValidationError, 400),
    (ConfigurationError, 400),
    (UnsupportedOperationError, 400),
    (ProviderUnavailableError, 503),
    (ProviderError, 502),
]


def status_for(error: GatewayError) -> int:
    for error_type, status in ERROR_STATUS:
        if isinstance(error, error_type):
            return status
    return 500


def setup_tracing() -> None:
    """Export spans over OTLP when an endpoint is configured."""
    endpoint = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")
    if not endpoint:
        return

    provider = TracerProvider(resource=Resource.create({"service.name": SERVICE_NAME}))
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint, insecure=True)))
    trace.set_tracer_provider(provider)


# API Models
class ImagePayload(BaseModel):
    data: str = Field(..., description="Base64-encoded image bytes")
    mime_type: str = "image/png"


class GenerateBody(BaseModel):
    """Generation request plus per-call gateway options."""
    prompt: str
    system_instruction: Optional[str] = None
    images: List[ImagePayload] = Field(default_factory=list)
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    top_p: Optional[float] = None
    frequency_penalty: Optional[float] = None
    presence_penalty: Optional[float] = None
    stop: Optional[List[str]] = None
    model: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    provider: Optional[str] = None
    task_type: Optional[TaskType] = None
    use_cache: bool = True
    cache_ttl: Optional[int] = Field(default=None, gt=0)
    track_cost: bool = True
    user_id: Optional[str] = None
    project_id: Optional[str] = None

    def to_request(self) -> GenerationRequest:
        try:
            images = [ImageInput.from_base64(img.data, img.mime_type) for img in self.images]
        except (binascii.Error, ValueError) as e:
            raise HTTPException(status_code=400, detail=f"Invalid image data: {e}")

        return GenerationRequest(
            prompt=self.prompt,
            system_instruction=self.system_instruction,
            images=images,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            top_p=self.top_p,
            frequency_penalty=self.frequency_penalty,
            presence_penalty=self.presence_penalty,
            stop=self.stop,
            model=self.model,
            metadata=self.metadata,
        )

    def to_options(self) -> GenerateOptions:
        return GenerateOptions(
            provider=self.provider,
            task_type=self.task_type,
            use_cache=self.use_cache,
            cache_ttl=self.cache_ttl,
            track_cost=self.track_cost,
            user_id=self.user_id,
            project_id=self.project_id,
        )


class EstimateResponse(BaseModel):
    estimated_cost: float


def create_app(gateway: Optional[GatewayService] = None) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        gateway: Pre-built gateway (used by tests). Built from the
            environment on startup when omitted.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan handler."""
        # Startup
        if app.state.gateway is None:
            app.state.gateway = await build_gateway()
        await app.state.gateway.start()

        yield

        # Shutdown
        await app.state.gateway.close()

    app = FastAPI(
        title="LLM Gateway",
        description="Unified LLM access with provider selection, caching and cost tracking",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.gateway = gateway

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # OpenTelemetry instrumentation
    FastAPIInstrumentor.instrument_app(app)

    @app.exception_handler(GatewayError)
    async def gateway_error_handler(request: Request, exc: GatewayError):
        status = status_for(exc)
        if status >= 500:
            logger.error(f"Gateway error on {request.url.path}: {exc.message}")
        return JSONResponse(status_code=status, content=exc.to_dict())

    def get_gateway() -> GatewayService:
        return app.state.gateway

    @app.get("/health")
    async def health_check():
        """Provider availability snapshot."""
        providers = await get_gateway().health_check()
        return {
            "status": "healthy" if any(providers.values()) else "degraded",
            "providers": providers,
        }

    @app.post("/v1/generate", response_model=GenerationResponse)
    async def generate(body: GenerateBody):
        """Generate a response."""
        return await get_gateway().generate(body.to_request(), body.to_options())

    @app.post("/v1/generate/stream")
    async def generate_stream(body: GenerateBody):
        """Stream a response as server-sent events."""
        stream = get_gateway().generate_stream(body.to_request(), body.to_options())

        # Pull the first chunk so selection and capability errors get a proper status.
        try:
            first = await stream.__anext__()
        except StopAsyncIteration:
            first = None

        async def events():
            try:
                if first is not None:
                    yield f"data: {first.model_dump_json()}\n\n"
                async for chunk in stream:
                    yield f"data: {chunk.model_dump_json()}\n\n"
            except GatewayError as e:
                logger.error(f"Stream failed: {e.message}")
                yield f"event: error\ndata: {json.dumps(e.to_dict())}\n\n"

        return StreamingResponse(events(), media_type="text/event-stream")

    @app.post("/v1/estimate", response_model=EstimateResponse)
    async def estimate(body: GenerateBody):
        """Pre-flight cost estimate."""
        cost = await get_gateway().estimate_cost(body.to_request(), provider=body.provider, model=body.model)
        return EstimateResponse(estimated_cost=cost)

    @app.get("/v1/models", response_model=List[ModelDescriptor])
    async def list_models():
        """Models from every registered provider."""
        return await get_gateway().get_available_models()

    def get_tracker():
        tracker = get_gateway().tracker
        if tracker is None:
            raise HTTPException(status_code=404, detail="Cost tracking not configured")
        return tracker

    @app.get("/v1/costs/stats", response_model=CostStats)
    async def cost_stats(
        user_id: Optional[str] = None,
        project_id: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ):
        """Usage totals for a period (trailing 30 days by default)."""
        return await get_tracker().get_cost_stats(user_id=user_id, project_id=project_id, start=start, end=end)

    @app.get("/v1/costs/by-user")
    async def cost_by_user(
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> Dict[str, float]:
        """Total cost per user, highest first."""
        return await get_tracker().get_cost_by_user(start=start, end=end)

    @app.get("/v1/costs/by-project")
    async def cost_by_project(
        user_id: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> Dict[str, float]:
        """Total cost per project, highest first."""
        return await get_tracker().get_cost_by_project(user_id=user_id, start=start, end=end)

    @app.get("/v1/costs/threshold", response_model=ThresholdStatus)
    async def cost_threshold(
        user_id: Optional[str] = None,
        threshold: Optional[float] = Query(default=None, ge=0),
    ):
        """Compare trailing 30-day spend with the alert threshold."""
        return await get_tracker().check_cost_threshold(user_id=user_id, threshold=threshold)

    @app.get("/v1/cache/stats")
    async def cache_stats():
        """Response cache statistics."""
        stats = await get_gateway().get_cache_stats()
        if stats is None:
            return {"enabled": False}
        return {"enabled": True, **stats.model_dump()}

    return app


setup_tracing()
app = create_app()


def main() -> None:
    import uvicorn
    uvicorn.run(app, host=os.getenv("HOST", "0.0.0.0"), port=int(os.getenv("PORT", "8080")))


if __name__ == "__main__":
    main()
