"""FastAPI routes for ingestion and the monitoring dashboard."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from vitals_monitor.api.dependencies import (
    get_ingestion_gateway,
    get_query_service,
    ingest_principal,
    require_reader
)
from vitals_monitor.api.schemas import (
    AlertsResponse,
    DashboardResponse,
    ErrorResponse,
    HistoryResponse,
    IngestResponse,
    LatestResponse
)
from vitals_monitor.core.errors import StorageFailure, VitalsError
from vitals_monitor.core.ingestion import IngestionGateway
from vitals_monitor.core.models import Principal
from vitals_monitor.core.queries import QueryService

logger = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGE = "Server error"

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    401: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
}

# Create router
router = APIRouter(prefix="/api", responses=ERROR_RESPONSES)


def _to_http(error: VitalsError) -> HTTPException:
    """Translate a domain error; storage details never reach the caller."""
    if isinstance(error, StorageFailure):
        logger.error(f"{error.code.value}: {error.message}")
        return HTTPException(status_code=error.status_code, detail=GENERIC_ERROR_MESSAGE)
    logger.info(f"Rejected request ({error.code.value}): {error.message}")
    return HTTPException(status_code=error.status_code, detail=error.message)


def parse_limit(raw: Optional[str]) -> Optional[int]:
    """Integer limit from a query string; anything unparsable means "use the default"."""
    if raw is None:
        return None
    try:
        return int(raw.strip())
    except ValueError:
        return None


@router.post("/ingest/readings", response_model=IngestResponse, tags=["ingestion"])
async def ingest_reading(
    request: Request,
    principal: Optional[Principal] = Depends(ingest_principal),
    gateway: IngestionGateway = Depends(get_ingestion_gateway)
) -> IngestResponse:
    """
    Ingest one vitals reading from a monitoring device.

    Updates the patient registry and current state, appends to history and,
    when the reading is alert-worthy, to the alert ledger.

    - **patientId**: Stable patient identifier
    - **patientName** (or **name**): Display name
    - **vitals**: heartRate, spo2, temperature, fallDetected (each optional)
    - **severityReport**: Per-channel severity labels
    - **finalSeverity**, **alertActive**, **message**, **timestamp**: Optional

    The body is read raw and decoded only after the device is authorized.
    """
    try:
        return await gateway.ingest(await request.body(), principal)
    except VitalsError as e:
        raise _to_http(e)


@router.get("/dashboard/patients", response_model=DashboardResponse, tags=["dashboard"])
async def list_patients(
    only_warnings: str = Query(default="", alias="onlyWarnings"),
    _principal: Principal = Depends(require_reader),
    service: QueryService = Depends(get_query_service)
) -> DashboardResponse:
    """
    Current state of every patient, newest reading first.

    - **onlyWarnings**: `true` keeps WARNING/CRITICAL states and active alerts
    """
    try:
        patients = await service.list_current_states(
            only_warnings=only_warnings.strip().lower() == "true"
        )
        return DashboardResponse(patients=patients)
    except VitalsError as e:
        raise _to_http(e)


@router.get("/patients/{patient_id}/latest", response_model=LatestResponse, tags=["patients"])
async def get_latest(
    patient_id: str,
    _principal: Principal = Depends(require_reader),
    service: QueryService = Depends(get_query_service)
) -> LatestResponse:
    """Latest reading for one patient."""
    try:
        latest = await service.get_current_state(patient_id)
        return LatestResponse(latest=latest)
    except VitalsError as e:
        raise _to_http(e)


@router.get("/patients/{patient_id}/history", response_model=HistoryResponse, tags=["patients"])
async def get_history(
    patient_id: str,
    limit: Optional[str] = Query(default=None),
    _principal: Principal = Depends(require_reader),
    service: QueryService = Depends(get_query_service)
) -> HistoryResponse:
    """
    Past readings for one patient, newest first.

    - **limit**: 1-2000, default 200
    """
    try:
        history = await service.list_history(patient_id, parse_limit(limit))
        return HistoryResponse(history=history)
    except VitalsError as e:
        raise _to_http(e)


@router.get("/patients/{patient_id}/alerts", response_model=AlertsResponse, tags=["patients"])
async def get_alerts(
    patient_id: str,
    limit: Optional[str] = Query(default=None),
    _principal: Principal = Depends(require_reader),
    service: QueryService = Depends(get_query_service)
) -> AlertsResponse:
    """
    Alert events for one patient, newest first.

    - **limit**: 1-2000, default 50
    """
    try:
        alerts = await service.list_alerts(patient_id, parse_limit(limit))
        return AlertsResponse(alerts=alerts)
    except VitalsError as e:
        raise _to_http(e)
