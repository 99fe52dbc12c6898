"""
FastAPI REST API for the Banking Fraud Sandbox

Architecture:
- POST /users, /login, /transfers: simulated banking
- /controls, /blacklist, /users/{id}/unlock: defense configuration
- /attacks: scripted attack scenarios, streamed as log lines
- /threat-intel: IOC correlation and management
- /alerts: SOC review queue
- GET /events, /metrics, /detection-metrics, /health
- POST /reset: back to the seed state

Every request runs against one in-process FraudSandbox.
"""
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Dict, Optional
import logging
import time

from fastapi import FastAPI, Query, status
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.background import BackgroundTask

from fraud_sandbox.api.config import settings
from fraud_sandbox.api.models import (
    BlacklistRequest,
    BlacklistResponse,
    ControlConfigUpdate,
    ControlToggle,
    DetectionMetricsResponse,
    ErrorResponse,
    EventLogResponse,
    HealthCheckResponse,
    IndicatorRequest,
    LoginRequest,
    MetricsResponse,
    RegisterRequest,
    RegisterResponse,
    ReviewRequest,
    StepUpRequest,
    TransferRequest,
    UserView,
)
from fraud_sandbox.api.service import SandboxService
from fraud_sandbox.errors import (
    AlreadyRunningError,
    ControlDeniedError,
    FrozenAccountError,
    InsufficientFundsError,
    InvalidCodeError,
    LockedAccountError,
    NotFoundError,
    SandboxError,
    ValidationError,
)
from fraud_sandbox.ledger.schema import LoginOutcome, TransferOutcome

# Setup logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Global service instance (initialized at startup)
sandbox_service: SandboxService = None
startup_time: float = None

# Most specific first: LockedAccountError is a ControlDeniedError
ERROR_STATUS = [
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (InvalidCodeError, status.HTTP_401_UNAUTHORIZED),
    (LockedAccountError, status.HTTP_423_LOCKED),
    (ControlDeniedError, status.HTTP_403_FORBIDDEN),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (InsufficientFundsError, status.HTTP_409_CONFLICT),
    (FrozenAccountError, status.HTTP_409_CONFLICT),
    (AlreadyRunningError, status.HTTP_409_CONFLICT),
]

ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Invalid request"},
    404: {"model": ErrorResponse, "description": "Unknown id"},
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifecycle manager.

    Startup:
    - Build the sandbox from settings and load the seed data
    - Verify system health

    Shutdown:
    - Stop any running attack scenario
    - Log final metrics
    """
    global sandbox_service, startup_time

    logger.info("="*70)
    logger.info("🚀 STARTING BANKING FRAUD SANDBOX API")
    logger.info("="*70)

    startup_time = time.time()

    try:
        logger.info("Loading sandbox seed data...")
        sandbox_service = SandboxService.from_settings(settings)

        logger.info("✅ Sandbox loaded")
        logger.info(f"   - Timezone: {settings.TIMEZONE}")
        logger.info(f"   - Random seed: {settings.RANDOM_SEED}")
        logger.info(f"   - Attack pacing scale: {settings.ATTACK_PACING_SCALE}")

        health = sandbox_service.health_check()
        if health["status"] != "healthy":
            raise RuntimeError(f"Service unhealthy: {health}")

        logger.info("✅ Health check passed")
        logger.info("="*70)
        logger.info(f"🎯 API ready at http://{settings.API_HOST}:{settings.API_PORT}")
        logger.info("="*70)

        yield

    except Exception as e:
        logger.error(f"❌ Startup failed: {e}")
        raise

    finally:
        logger.info("Shutting down API...")
        if sandbox_service:
            sandbox_service.close()
        logger.info("✅ Shutdown complete")


app = FastAPI(
    title=settings.API_TITLE,
    version=settings.API_VERSION,
    description=(
        "Banking fraud simulation sandbox\n\n"
        "Features:\n"
        "- Rule-based risk scoring + simulated ML model\n"
        "- Behavioral deviation profiling\n"
        "- Configurable security controls (blacklist, rate limit, lockout, limits, step-up)\n"
        "- Scripted attack scenarios mapped to MITRE ATT&CK\n"
        "- Threat intel correlation and SOC alert review\n"
    ),
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc"
)


@app.exception_handler(SandboxError)
async def sandbox_exception_handler(request, exc: SandboxError):
    """Map expected sandbox failures to HTTP status codes."""
    code = next((c for cls, c in ERROR_STATUS if isinstance(exc, cls)), status.HTTP_400_BAD_REQUEST)
    logger.info(f"{type(exc).__name__} on {request.url.path}: {exc.reason}")
    body = ErrorResponse(
        error=type(exc).__name__,
        message=exc.reason,
        transaction_id=getattr(exc, "transaction_id", None),
    )
    return JSONResponse(status_code=code, content=body.model_dump(mode="json"))


@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Handle all uncaught exceptions gracefully."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "InternalServerError",
            "message": "An unexpected error occurred. Please try again.",
            "timestamp": datetime.utcnow().isoformat()
        }
    )


# ============================================================================
# BANKING
# ============================================================================

@app.post(
    "/users",
    response_model=RegisterResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register Customer",
    description="Create a user and one account with the default opening balance.",
    responses={400: ERROR_RESPONSES[400]}
)
def register_user(req: RegisterRequest) -> RegisterResponse:
    user, account = sandbox_service.register_user(req.username, req.full_name, req.email, req.password)
    return RegisterResponse(user=UserView.from_user(user), account=account)


@app.post(
    "/login",
    response_model=LoginOutcome,
    summary="Customer Login",
    description=(
        "Attempt a login. A wrong password returns success=false; a login "
        "refused by a security control answers 403 (423 when locked out)."
    ),
    responses={
        403: {"model": ErrorResponse, "description": "Blocked by a security control"},
        404: ERROR_RESPONSES[404],
        423: {"model": ErrorResponse, "description": "Account locked"},
    }
)
def login(req: LoginRequest) -> LoginOutcome:
    return sandbox_service.login(req.username, req.password, req.context)


@app.post(
    "/transfers",
    response_model=TransferOutcome,
    summary="Transfer Funds",
    description=(
        "Submit a transfer for scoring.\n\n"
        "**Process:**\n"
        "1. Rule-based risk score + ML probability + behavior deviation\n"
        "2. Security control gate\n"
        "3. Commit (completed / flagged), hold for step-up, or block\n\n"
        "Blocked transfers are recorded and answered with 403 plus the "
        "transaction_id of the record."
    ),
    responses={
        400: ERROR_RESPONSES[400],
        403: {"model": ErrorResponse, "description": "Blocked by a security control"},
        404: ERROR_RESPONSES[404],
        409: {"model": ErrorResponse, "description": "Insufficient funds or frozen account"},
    }
)
def transfer(req: TransferRequest) -> TransferOutcome:
    outcome = sandbox_service.transfer(req.from_account, req.to_account, req.amount, req.context)
    logger.info(f"✅ Transfer {outcome.transaction_id or outcome.pending_id}: "
                f"status={outcome.status}, risk={outcome.risk_score}")
    return outcome


@app.post(
    "/transfers/{pending_id}/confirm",
    response_model=TransferOutcome,
    summary="Confirm Step-Up",
    responses={
        401: {"model": ErrorResponse, "description": "Invalid one-time code"},
        404: ERROR_RESPONSES[404],
    }
)
def confirm_step_up(pending_id: str, req: StepUpRequest) -> TransferOutcome:
    return sandbox_service.confirm_step_up(pending_id, req.code)


@app.get("/transactions", summary="Transaction History")
def list_transactions():
    return sandbox_service.sandbox.transactions()


# ============================================================================
# DEFENSE
# ============================================================================

@app.get("/controls", summary="Security Controls")
def list_controls():
    return sandbox_service.sandbox.security_controls()


@app.post("/controls/{control_id}/toggle", summary="Enable / Disable Control", responses={404: ERROR_RESPONSES[404]})
def toggle_control(control_id: str, req: Optional[ControlToggle] = None):
    if req is None or req.enabled is None:
        return sandbox_service.call("toggle_control", control_id)
    return sandbox_service.call("set_control_enabled", control_id, req.enabled)


@app.put("/controls/{control_id}/config", summary="Update Control Setting", responses=ERROR_RESPONSES)
def update_control_config(control_id: str, req: ControlConfigUpdate):
    return sandbox_service.call("update_control_config", control_id, req.key, req.value)


@app.post("/blacklist", response_model=BlacklistResponse, summary="Blacklist IP", responses=ERROR_RESPONSES)
def add_blacklist_ip(req: BlacklistRequest) -> BlacklistResponse:
    return BlacklistResponse(blacklisted_ips=sandbox_service.call("add_blacklist_ip", req.ip))


@app.delete("/blacklist/{ip}", response_model=BlacklistResponse, summary="Remove Blacklisted IP",
            responses={404: ERROR_RESPONSES[404]})
def remove_blacklist_ip(ip: str) -> BlacklistResponse:
    return BlacklistResponse(blacklisted_ips=sandbox_service.call("remove_blacklist_ip", ip))


@app.post("/users/{user_id}/unlock", response_model=UserView, summary="Unlock Account",
          responses={404: ERROR_RESPONSES[404]})
def unlock_user(user_id: str) -> UserView:
    return UserView.from_user(sandbox_service.call("unlock_user", user_id))


# ============================================================================
# ATTACKS
# ============================================================================

@app.get("/attacks", summary="Attack Scenarios")
def list_scenarios():
    return sandbox_service.orchestrator.scenarios()


@app.post(
    "/attacks/{scenario_id}/run",
    summary="Run Attack Scenario",
    description="Streams the scenario log as text lines. Only one scenario runs at a time.",
    responses={
        404: ERROR_RESPONSES[404],
        409: {"model": ErrorResponse, "description": "A scenario is already running"},
    }
)
def run_scenario(scenario_id: str):
    # Start before streaming so a busy orchestrator answers 409, not a broken stream
    run = sandbox_service.start_scenario(scenario_id)

    def stream():
        with run:
            for line in run:
                yield line + "\n"

    # A stream dropped before its first chunk never enters `with run`;
    # the background close releases the guard in that case too.
    return StreamingResponse(stream(), media_type="text/plain", background=BackgroundTask(run.close))


# ============================================================================
# THREAT INTEL
# ============================================================================

@app.get("/threat-intel/indicators", summary="Threat Intel Indicators")
def list_indicators():
    return sandbox_service.sandbox.indicators()


@app.get("/threat-intel/correlate", summary="Correlate Observables")
def correlate(
        ip: Optional[str] = Query(None),
        device: Optional[str] = Query(None),
        email: Optional[str] = Query(None),
        account: Optional[str] = Query(None)):
    return sandbox_service.call("correlate_threat_intel", ip=ip, device=device, email=email, account=account)


@app.post("/threat-intel/indicators", status_code=status.HTTP_201_CREATED, summary="Add Indicator",
          responses={400: ERROR_RESPONSES[400]})
def add_indicator(req: IndicatorRequest):
    return sandbox_service.call(
        "add_indicator",
        type=req.type,
        value=req.value,
        threat_actor=req.threat_actor,
        severity=req.severity,
        confidence=req.confidence,
        tags=req.tags,
        description=req.description,
    )


@app.post("/threat-intel/indicators/{indicator_id}/toggle", summary="Activate / Deactivate Indicator",
          responses={404: ERROR_RESPONSES[404]})
def toggle_indicator(indicator_id: str):
    return sandbox_service.call("toggle_indicator", indicator_id)


# ============================================================================
# SOC
# ============================================================================

@app.get("/alerts", summary="Fraud Alerts")
def list_alerts(alert_status: Optional[str] = Query(None, alias="status")):
    alerts = sandbox_service.sandbox.fraud_alerts()
    if alert_status:
        alerts = [a for a in alerts if a.status == alert_status]
    return alerts


@app.post("/alerts/{alert_id}/review", summary="Review Alert", responses=ERROR_RESPONSES)
def review_alert(alert_id: str, req: ReviewRequest):
    return sandbox_service.call("review_alert", alert_id, req.action, req.note)


@app.get("/events", response_model=EventLogResponse, summary="Event Log")
def events(
        category: Optional[str] = Query(None),
        limit: int = Query(200, ge=1, le=10000)) -> EventLogResponse:
    entries = sandbox_service.sandbox.event_log(category)
    return EventLogResponse(total=len(entries), lines=[e.format() for e in entries[-limit:]])


# ============================================================================
# MONITORING
# ============================================================================

@app.get(
    "/health",
    response_model=HealthCheckResponse,
    summary="Health Check",
    description="Store status, open alerts and whether an attack scenario is running."
)
def health_check() -> HealthCheckResponse:
    health = sandbox_service.health_check()
    health["uptime_seconds"] = time.time() - startup_time
    return HealthCheckResponse(**health)


@app.get("/metrics", response_model=MetricsResponse, summary="Request Metrics")
def get_metrics() -> MetricsResponse:
    return MetricsResponse(**sandbox_service.get_metrics())


@app.get(
    "/detection-metrics",
    response_model=DetectionMetricsResponse,
    summary="Detection Metrics",
    description=(
        "ML model vs rule engine confusion matrix and SOC dashboard counters.\n\n"
        "**Note:** the ML model is scored against the rule engine's flags, "
        "not against independent fraud labels."
    )
)
def detection_metrics() -> DetectionMetricsResponse:
    return DetectionMetricsResponse(**sandbox_service.detection_metrics())


@app.post("/reset", summary="Reset Sandbox")
def reset() -> Dict:
    sandbox_service.reset()
    return {"status": "reset", "generation": sandbox_service.sandbox.generation}


@app.get("/", summary="Root Endpoint")
def root() -> Dict:
    return {
        "service": settings.API_TITLE,
        "version": settings.API_VERSION,
        "status": "running",
        "uptime_seconds": time.time() - startup_time,
        "scenarios": [s.id for s in sandbox_service.orchestrator.scenarios()],
        "documentation": "/docs",
    }


# ============================================================================
# STARTUP MESSAGE
# ============================================================================

if __name__ == "__main__":
    import uvicorn

    print("\n" + "="*70)
    print("🚀 STARTING BANKING FRAUD SANDBOX API")
    print("="*70)
    print(f"📍 Host: {settings.API_HOST}")
    print(f"🔌 Port: {settings.API_PORT}")
    print(f"🕒 Timezone: {settings.TIMEZONE}")
    print(f"🎲 Random seed: {settings.RANDOM_SEED}")
    print("="*70)
    print("\n💡 Tips:")
    print("   - API Docs: http://localhost:8000/docs")
    print("   - Health Check: http://localhost:8000/health")
    print("   - Run an attack: curl -N -X POST http://localhost:8000/attacks/ato/run")
    print("\n" + "="*70 + "\n")

    uvicorn.run(
        "fraud_sandbox.api.main:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        reload=True,
        log_level=settings.LOG_LEVEL.lower()
    )
