import logging
from contextlib import asynccontextmanager
from datetime import date, timezone

from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware

from attendance.errors import (
    AttendanceError,
    ChargeNotFound,
    ConfigMissing,
    IntegrityCheckTimeout,
    InvalidChargeTransition,
    SinkWriteFailed,
)
from attendance.authorizer import load_active_rule
from attendance.types import (
    ClockInRequest,
    ClockOutRequest,
    DeviceFingerprint,
    LocationSample,
    ViolationType,
)
from auth import Actor, get_current_actor, require_hr, validate_auth_config
from db import AttendanceServices, build_services, init_db
from db.database import close_db
from schemas import (
    AbsenceSweepRequest,
    AbsenceSweepResponse,
    AutoClockoutSweepRequest,
    AutoClockoutSweepResponse,
    ChargeActionRequest,
    ChargePreviewRequest,
    ChargePreviewResponse,
    ChargeSchema,
    ClockInBody,
    ClockOutBody,
    ClockResultResponse,
    LocationSampleSchema,
    ResolveDisputeRequest,
    ShiftResolutionResponse,
)
from settings import validate_settings
from utils import ensure_aware, setup_logging, utc_now

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    validate_settings()
    validate_auth_config()
    await init_db()
    yield
    await close_db()


app = FastAPI(title="attendance-engine", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_services: AttendanceServices | None = None


def get_services() -> AttendanceServices:
    global _services
    if _services is None:
        _services = build_services()
    return _services


def to_http_error(e: AttendanceError) -> HTTPException:
    """Map operational engine failures to HTTP errors."""
    if isinstance(e, ConfigMissing):
        return HTTPException(status_code=503, detail=str(e))
    if isinstance(e, IntegrityCheckTimeout):
        return HTTPException(status_code=504, detail=str(e))
    if isinstance(e, SinkWriteFailed):
        return HTTPException(status_code=502, detail=str(e))
    if isinstance(e, ChargeNotFound):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, InvalidChargeTransition):
        return HTTPException(status_code=409, detail=str(e))
    logger.error(f"Unhandled attendance error: {e}")
    return HTTPException(status_code=500, detail=str(e))


def _location(schema: LocationSampleSchema | None, default_time) -> LocationSample | None:
    if schema is None:
        return None
    return LocationSample(
        latitude=schema.latitude,
        longitude=schema.longitude,
        accuracy_meters=schema.accuracy_meters,
        captured_at=ensure_aware(schema.captured_at) or default_time,
        altitude=schema.altitude,
        speed_mps=schema.speed_mps,
        is_mock=schema.is_mock,
    )


@app.get("/health")
async def health():
    return {"status": "ok"}


# ============================================================================
# Attendance
# ============================================================================


@app.post("/attendance/clock-in", response_model=ClockResultResponse)
async def clock_in(
    body: ClockInBody,
    actor: Actor = Depends(get_current_actor),
    services: AttendanceServices = Depends(get_services),
):
    timestamp = ensure_aware(body.timestamp) or utc_now()
    request = ClockInRequest(
        employee_id=actor.user_id,
        mode=body.mode,
        timestamp=timestamp,
        fingerprint=DeviceFingerprint(**body.fingerprint.model_dump()),
        location=_location(body.location, timestamp),
        purpose=body.purpose,
    )

    try:
        result = await services.authorizer.clock_in(request, actor=actor.user_id)
    except AttendanceError as e:
        raise to_http_error(e)
    return result.to_dict()


@app.post("/attendance/clock-out", response_model=ClockResultResponse)
async def clock_out(
    body: ClockOutBody,
    actor: Actor = Depends(get_current_actor),
    services: AttendanceServices = Depends(get_services),
):
    if body.forced and not actor.is_hr:
        raise HTTPException(status_code=403, detail="Only HR can force a clock-out")

    timestamp = ensure_aware(body.timestamp) or utc_now()
    request = ClockOutRequest(
        employee_id=actor.user_id,
        timestamp=timestamp,
        location=_location(body.location, timestamp),
        mode=body.mode,
        overtime_approved=body.overtime_approved,
        overtime_start_time=ensure_aware(body.overtime_start_time),
        forced=body.forced,
    )

    try:
        result = await services.authorizer.clock_out(request, actor=actor.user_id)
    except AttendanceError as e:
        raise to_http_error(e)
    return result.to_dict()


@app.get("/attendance/shift/{employee_id}", response_model=ShiftResolutionResponse)
async def get_shift(
    employee_id: str,
    on: str | None = Query(default=None, alias="date"),
    actor: Actor = Depends(get_current_actor),
    services: AttendanceServices = Depends(get_services),
):
    if employee_id != actor.user_id and not actor.is_hr:
        raise HTTPException(status_code=403, detail="You can only view your own shift")

    try:
        day = date.fromisoformat(on) if on else utc_now().date()
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid date format. Use YYYY-MM-DD")

    try:
        rule = await load_active_rule(services.provider)
        resolution = await services.shift_resolver.resolve_detailed(employee_id, day, rule, timezone.utc)
    except AttendanceError as e:
        raise to_http_error(e)

    return {
        "employee_id": employee_id,
        "date": day.isoformat(),
        "shift_type": resolution.shift_type,
        "source": resolution.source,
        "warnings": [w.message for w in resolution.warnings],
        "night_ratio": resolution.night_ratio,
    }


# ============================================================================
# Charges
# ============================================================================


@app.post("/charges/preview", response_model=ChargePreviewResponse)
async def preview_charge(
    body: ChargePreviewRequest,
    actor: Actor = Depends(require_hr),
    services: AttendanceServices = Depends(get_services),
):
    base_amount = body.base_amount
    if base_amount is None:
        try:
            rule = await load_active_rule(services.provider)
        except ConfigMissing as e:
            raise to_http_error(e)
        rule_amounts = {
            ViolationType.LATE_ARRIVAL: rule.late_charge_amount,
            ViolationType.ABSENCE: rule.absence_charge_amount,
            ViolationType.EARLY_DEPARTURE: rule.early_closure_charge_amount,
        }
        if body.violation_type not in rule_amounts:
            raise HTTPException(
                status_code=400,
                detail=f"base_amount is required for {body.violation_type.value}",
            )
        base_amount = rule_amounts[body.violation_type]

    result = await services.escalation.compute_charge(
        body.employee_id,
        body.violation_type,
        ensure_aware(body.occurred_at),
        base_amount,
    )
    return {
        "employee_id": body.employee_id,
        "violation_type": body.violation_type,
        **result.to_dict(),
    }


@app.post("/charges/{charge_id}/waive", response_model=ChargeSchema)
async def waive_charge(
    charge_id: str,
    body: ChargeActionRequest,
    actor: Actor = Depends(require_hr),
    services: AttendanceServices = Depends(get_services),
):
    if not body.reason:
        raise HTTPException(status_code=400, detail="A waiver reason is required")
    try:
        charge = await services.ledger.waive(charge_id, actor.user_id, body.reason)
    except AttendanceError as e:
        raise to_http_error(e)
    return charge.to_dict()


@app.post("/charges/{charge_id}/dispute", response_model=ChargeSchema)
async def dispute_charge(
    charge_id: str,
    body: ChargeActionRequest,
    actor: Actor = Depends(get_current_actor),
    services: AttendanceServices = Depends(get_services),
):
    if not body.reason:
        raise HTTPException(status_code=400, detail="A dispute reason is required")

    existing = await services.store.get_charge(charge_id)
    if existing is None:
        raise HTTPException(status_code=404, detail=f"Charge {charge_id} not found")
    if existing.employee_id != actor.user_id and not actor.is_hr:
        raise HTTPException(status_code=403, detail="You can only dispute your own charges")

    try:
        charge = await services.ledger.dispute(charge_id, actor.user_id, body.reason)
    except AttendanceError as e:
        raise to_http_error(e)
    return charge.to_dict()


@app.post("/charges/{charge_id}/resolve", response_model=ChargeSchema)
async def resolve_dispute(
    charge_id: str,
    body: ResolveDisputeRequest,
    actor: Actor = Depends(require_hr),
    services: AttendanceServices = Depends(get_services),
):
    try:
        charge = await services.ledger.resolve_dispute(charge_id, actor.user_id, body.resolution, body.waive)
    except AttendanceError as e:
        raise to_http_error(e)
    return charge.to_dict()


@app.post("/charges/{charge_id}/pay", response_model=ChargeSchema)
async def pay_charge(
    charge_id: str,
    actor: Actor = Depends(require_hr),
    services: AttendanceServices = Depends(get_services),
):
    try:
        charge = await services.ledger.mark_paid(charge_id, actor.user_id)
    except AttendanceError as e:
        raise to_http_error(e)
    return charge.to_dict()


# ============================================================================
# Sweeps
# ============================================================================


@app.post("/sweeps/absences", response_model=AbsenceSweepResponse)
async def run_absence_sweep(
    body: AbsenceSweepRequest,
    actor: Actor = Depends(require_hr),
    services: AttendanceServices = Depends(get_services),
):
    try:
        report = await services.absence_sweep.run(body.target_date, body.employee_ids, actor=actor.user_id)
    except AttendanceError as e:
        raise to_http_error(e)
    return report.to_dict()


@app.post("/sweeps/auto-clockout", response_model=AutoClockoutSweepResponse)
async def run_auto_clockout_sweep(
    body: AutoClockoutSweepRequest,
    actor: Actor = Depends(require_hr),
    services: AttendanceServices = Depends(get_services),
):
    now = ensure_aware(body.now) or utc_now()
    try:
        report = await services.auto_clockout_sweep.run(now, actor=actor.user_id)
    except AttendanceError as e:
        raise to_http_error(e)
    return report.to_dict()
