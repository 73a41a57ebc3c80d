"""HTTP REST server for field-subst."""

import logging
import os
import time
from typing import Any, Optional

from fastapi import FastAPI, HTTPException, Request
from pydantic import BaseModel, Field
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response
import yaml

from fieldsubst import __version__
from fieldsubst.engine import DEFAULT_MAX_VALUE_LENGTH, Engine
from fieldsubst.errors import FieldNotFoundError, FieldSubstError
from fieldsubst.serialization import from_record, load_ruleset, record_from_dict

logger = logging.getLogger(__name__)

# Prometheus metrics
REQUEST_COUNT = Counter(
    "fieldsubst_requests_total",
    "Total requests",
    ["endpoint", "status"],
)
REQUEST_DURATION = Histogram(
    "fieldsubst_request_duration_seconds",
    "Request duration in seconds",
    ["endpoint"],
)
FIELD_FAILURES = Counter(
    "fieldsubst_field_failures_total",
    "Rules skipped because their substitution failed",
    ["ruleset"],
)

INLINE_RULESET = "<inline>"

# Path of the YAML config read by create_app_from_env
CONFIG_ENV = "FIELDSUBST_CONFIG"


# Request/Response models
class ApplyRequest(BaseModel):
    """Request model for /apply endpoint."""

    ruleset: Optional[str] = None
    rules: Optional[dict[str, Any]] = None
    values: dict[str, Optional[str]] = Field(default_factory=dict)


class FailureModel(BaseModel):
    """A skipped field in an /apply response."""

    field: Any
    pattern: str
    template: str
    reason: str


class ApplyResponse(BaseModel):
    """Response model for /apply endpoint."""

    text: str
    fields_applied: int
    failures: list[FailureModel]


class ValidateRequest(BaseModel):
    """Request model for /validate endpoint."""

    rules: dict[str, Any]


class ValidateResponse(BaseModel):
    """Response model for /validate endpoint."""

    ok: bool
    field_count: int = 0
    error: Optional[str] = None


class RulesetInfo(BaseModel):
    """Summary of a preloaded rule set."""

    name: str
    fields: list[Any]


class HealthResponse(BaseModel):
    """Response model for /health endpoint."""

    status: str
    version: str
    rulesets_loaded: int


class ReloadResponse(BaseModel):
    """Response model for /reload endpoint."""

    status: str
    rulesets_loaded: int
    message: str


class FieldSubstServer:
    """Server wrapper for managing preloaded rule sets."""

    def __init__(self, config: Optional[dict[str, Any]] = None) -> None:
        """Initialize server with configuration."""
        self.config = config or {}
        self.max_value_length: Optional[int] = self.config.get("engine", {}).get(
            "max_value_length", DEFAULT_MAX_VALUE_LENGTH
        )
        self.engines: dict[str, Engine] = {}
        self._load_rulesets()

    def _load_rulesets(self) -> None:
        """Load rule sets named in the configuration."""
        paths = self.config.get("rulesets") or {}

        engines = {}
        for name, path in paths.items():
            engines[name] = load_ruleset(path, max_value_length=self.max_value_length)

        self.engines = engines
        logger.info(f"Loaded {len(self.engines)} rule sets")

    def reload_rulesets(self) -> dict[str, Any]:
        """Reload rule sets from files."""
        try:
            self._load_rulesets()
        except (OSError, FieldSubstError) as e:
            logger.error(f"Failed to reload rule sets: {e}")
            raise HTTPException(status_code=500, detail=f"Reload failed: {str(e)}")

        return {
            "status": "ok",
            "rulesets_loaded": len(self.engines),
            "message": f"Reloaded {len(self.engines)} rule sets",
        }

    def resolve(self, request: ApplyRequest) -> tuple[str, Engine]:
        """Pick the engine an /apply request refers to."""
        if request.rules is not None:
            return INLINE_RULESET, self.build_inline(request.rules)

        if request.ruleset is None:
            raise HTTPException(status_code=400, detail="Must provide ruleset or rules")

        engine = self.engines.get(request.ruleset)
        if engine is None:
            raise HTTPException(status_code=404, detail=f"Rule set not found: {request.ruleset}")
        return request.ruleset, engine

    def build_inline(self, rules: dict[str, Any]) -> Engine:
        """Build an engine from rules sent in a request body."""
        try:
            return from_record(record_from_dict(rules), max_value_length=self.max_value_length)
        except FieldSubstError as e:
            raise HTTPException(status_code=400, detail=str(e))


def create_app(config: Optional[dict[str, Any]] = None) -> FastAPI:
    """
    Create FastAPI application.

    Args:
        config: Server configuration dictionary

    Returns:
        FastAPI application instance
    """
    app = FastAPI(
        title="field-subst",
        description="Multi-field pattern substitution service",
        version=__version__,
    )

    server = FieldSubstServer(config)

    # Middleware for metrics and timing
    @app.middleware("http")
    async def metrics_middleware(request: Request, call_next: Any) -> Response:
        """Record metrics for each request."""
        start_time = time.time()
        endpoint = request.url.path

        response = await call_next(request)

        duration = time.time() - start_time
        REQUEST_COUNT.labels(endpoint=endpoint, status=response.status_code).inc()
        REQUEST_DURATION.labels(endpoint=endpoint).observe(duration)

        return response

    @app.post("/apply", response_model=ApplyResponse)
    async def apply(request: ApplyRequest) -> ApplyResponse:
        """Apply a rule set to field values."""
        name, engine = server.resolve(request)

        try:
            result = engine.apply_detailed(request.values)
        except FieldNotFoundError as e:
            raise HTTPException(status_code=422, detail=str(e))

        if result.failures:
            FIELD_FAILURES.labels(ruleset=name).inc(result.failure_count)

        return ApplyResponse(
            text=result.text,
            fields_applied=result.fields_applied,
            failures=[
                FailureModel(
                    field=f.field_id,
                    pattern=f.pattern,
                    template=f.template,
                    reason=f.reason,
                )
                for f in result.failures
            ],
        )

    @app.post("/validate", response_model=ValidateResponse)
    async def validate(request: ValidateRequest) -> ValidateResponse:
        """Check that a rule set builds."""
        try:
            engine = from_record(record_from_dict(request.rules))
        except FieldSubstError as e:
            return ValidateResponse(ok=False, error=str(e))

        return ValidateResponse(ok=True, field_count=len(engine))

    @app.get("/rulesets", response_model=list[RulesetInfo])
    async def rulesets() -> list[RulesetInfo]:
        """List preloaded rule sets."""
        return [
            RulesetInfo(name=name, fields=engine.field_ids)
            for name, engine in server.engines.items()
        ]

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        """Health check endpoint."""
        return HealthResponse(
            status="healthy",
            version=__version__,
            rulesets_loaded=len(server.engines),
        )

    @app.post("/reload", response_model=ReloadResponse)
    async def reload() -> ReloadResponse:
        """Reload rule sets from files."""
        result = server.reload_rulesets()
        return ReloadResponse(**result)

    @app.get("/metrics")
    async def metrics() -> Response:
        """Prometheus metrics endpoint."""
        return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

    return app


def create_app_from_env() -> FastAPI:
    """
    Create FastAPI application from the config file named in FIELDSUBST_CONFIG.

    Used as a uvicorn factory so the server can be started from an import
    string, which auto-reload requires.
    """
    config: dict[str, Any] = {}
    path = os.environ.get(CONFIG_ENV)
    if path:
        logger.info(f"Loading server config from {path}")
        with open(path, "r", encoding="utf-8") as f:
            config = yaml.safe_load(f) or {}
    return create_app(config)
