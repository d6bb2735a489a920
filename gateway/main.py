# Load .env file BEFORE other imports (so env vars are available)
from dotenv import load_dotenv
load_dotenv()

import time
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.background import BackgroundTask
from starlette.exceptions import HTTPException as StarletteHTTPException

from gateway.config import GatewaySettings
from gateway.egress import EGRESS_HEADER, REGION_HEADER, egress_for
from gateway.error_codes import FORBIDDEN_URL, INTERNAL_ERROR, INVALID_INPUT, MALFORMED_URL, NOT_FOUND, PRIVATE_NETWORK
from gateway.errors import PipelineError, problem
from gateway.logging_utils import log_event
from gateway.middleware import elapsed_ms, request_id_middleware
from gateway.pipeline import GatewayPipeline
from gateway.schemas import FetchRequest, RegionStatus


GUARD_CODES = frozenset([MALFORMED_URL, FORBIDDEN_URL, PRIVATE_NETWORK])


def _error_response(request: Request, status: int, payload) -> JSONResponse:
    rid = getattr(request.state, "request_id", None)
    resp = JSONResponse(status_code=status, content=payload.model_dump(exclude_none=True))
    if rid:
        resp.headers["X-Request-ID"] = rid
    return resp


def create_app(settings: GatewaySettings | None = None, pipeline: GatewayPipeline | None = None) -> FastAPI:
    if settings is None:
        settings = pipeline.settings if pipeline is not None else GatewaySettings.from_env()

    app = FastAPI(title="content-gateway")
    app.state.settings = settings
    app.state.pipeline = pipeline if pipeline is not None else GatewayPipeline(settings=settings)
    app.state.started_at = time.monotonic()

    #Register middleware
    app.middleware("http")(request_id_middleware)

    @app.get("/api/status")
    def status(request: Request):
        log_event("health_check", request_id=request.state.request_id)
        return {
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "uptime": round(time.monotonic() - request.app.state.started_at, 3),
            "cache": request.app.state.pipeline.cache.stats(),
        }

    @app.get("/api/regions")
    def regions(request: Request):
        """Simulated ping per known region, for the region picker."""
        statuses = request.app.state.pipeline.region_statuses()
        return {"regions": [RegionStatus(**s).model_dump() for s in statuses]}

    @app.post("/api/proxy/fetch")
    async def proxy_fetch(payload: FetchRequest, request: Request):
        gateway: GatewayPipeline = request.app.state.pipeline
        user_agent = request.headers.get("user-agent") or settings.user_agent

        result = await gateway.fetch_page(payload.url, payload.region_hint, user_agent=user_agent)

        # Regional egress is simulated; say so instead of hiding it
        egress = egress_for(result.region, gateway.advertiser.profiles)
        resp = JSONResponse(content=result.to_payload())
        resp.headers[REGION_HEADER] = result.region
        resp.headers[EGRESS_HEADER] = "simulated" if egress.simulated else "direct"
        return resp

    @app.get("/api/proxy/resource")
    async def proxy_resource(request: Request, url: str | None = None):
        """Binary passthrough for images and stylesheets referenced by rewritten pages."""
        if not url:
            raise PipelineError(INVALID_INPUT, "URL parameter required")

        gateway: GatewayPipeline = request.app.state.pipeline
        user_agent = request.headers.get("user-agent") or settings.user_agent
        try:
            stream = await gateway.open_resource(url, user_agent=user_agent)
        except PipelineError as exc:
            if exc.code in GUARD_CODES:
                raise
            raise PipelineError(exc.code, exc.message, status=500) from exc

        headers = {"Content-Type": stream.content_type} if stream.content_type else None
        return StreamingResponse(stream.chunks, headers=headers, background=BackgroundTask(stream.aclose))

    @app.exception_handler(PipelineError)
    async def pipeline_error_handler(request: Request, exc: PipelineError):
        rid = getattr(request.state, "request_id", None)
        payload = problem(
            code=exc.code,
            message=exc.message,
            processing_time_ms=elapsed_ms(request),
            request_id=rid,
        )
        log_event("http_error", request_id=rid, status=exc.status, code=exc.code, message=exc.message)
        return _error_response(request, exc.status, payload)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        rid = getattr(request.state, "request_id", None)
        if exc.status_code == 404:
            payload = problem(code=NOT_FOUND, error="Endpoint not found", request_id=rid, path=request.url.path)
        else:
            payload = problem(code="HTTP_ERROR", error=str(exc.detail), request_id=rid)
        log_event("http_error", request_id=rid, status=exc.status_code, message=str(exc.detail))
        return _error_response(request, exc.status_code, payload)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Missing or wrong-typed url -> 400 INVALID_INPUT."""
        rid = getattr(request.state, "request_id", None)

        # Extract first error for a clean message
        errors = exc.errors()
        if errors:
            first = errors[0]
            loc = ".".join(str(x) for x in first.get("loc", []))  #e.g., "body.url"
            msg = first.get("msg", "Validation error")
            message = f"{loc}: {msg}"
        else:
            message = "Validation error"

        payload = problem(
            code=INVALID_INPUT,
            message=message,
            processing_time_ms=elapsed_ms(request),
            request_id=rid,
        )
        log_event("validation_error", request_id=rid, message=message)
        return _error_response(request, 400, payload)

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        rid = getattr(request.state, "request_id", None)
        payload = problem(code=INTERNAL_ERROR, request_id=rid, processing_time_ms=elapsed_ms(request))
        # Don't leak details to the client, but do log them
        log_event("internal_error", request_id=rid, error_type=type(exc).__name__)
        return _error_response(request, 500, payload)

    return app


app = create_app()
