"""REST API routes."""

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import ORJSONResponse
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from app.storage import cache
from core.audit import ExpirationAuditor
from core.errors import ReconciliationError
from core.reconciler import OutcomeReconciler
from core.verification import OutcomeSystemVerifier, VerificationReport

logger = logging.getLogger(__name__)

router = APIRouter()


# Response models (camelCase on the wire)
class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RepairResponse(CamelModel):
    """Outcome repair run response."""

    repaired_count: int
    total_without_outcomes: int
    examined: int
    skipped: int
    already_recorded: int
    repaired_signal_ids: list[str]
    message: str


class AuditResponse(CamelModel):
    """Single signal audit response."""

    signal_id: str
    has_outcome: bool


class ReconcilerStatus(CamelModel):
    last_run_at: Optional[datetime] = None
    last_repaired_count: Optional[int] = None
    last_total_without_outcomes: Optional[int] = None


class AuditorStatus(CamelModel):
    listening: bool
    notifications_received: int
    connections_lost: int
    pending_audits: int
    audited: int
    missing_outcomes: int


class SystemStatus(CamelModel):
    """Service status response."""

    status: str
    version: str
    reconciler: ReconcilerStatus
    auditor: AuditorStatus
    cache: dict


# Dependencies (services live on app.state, set up in the lifespan)
def get_reconciler(request: Request) -> OutcomeReconciler:
    return request.app.state.reconciler


def get_verifier(request: Request) -> OutcomeSystemVerifier:
    return request.app.state.verifier


def get_auditor(request: Request) -> ExpirationAuditor:
    return request.app.state.auditor


@router.get("/status", response_model=SystemStatus)
async def get_status(
    request: Request,
    reconciler: OutcomeReconciler = Depends(get_reconciler),
    auditor: ExpirationAuditor = Depends(get_auditor),
):
    """Get service status."""
    listener = getattr(request.app.state, "listener", None)
    last = reconciler.last_result

    return SystemStatus(
        status="running",
        version=request.app.version,
        reconciler=ReconcilerStatus(
            last_run_at=reconciler.last_run_at,
            last_repaired_count=last.repaired if last else None,
            last_total_without_outcomes=last.total_without_outcomes if last else None,
        ),
        auditor=AuditorStatus(
            listening=listener.is_listening if listener else False,
            notifications_received=listener.notifications_received if listener else 0,
            connections_lost=listener.connections_lost if listener else 0,
            pending_audits=auditor.pending_count,
            audited=auditor.audited_count,
            missing_outcomes=auditor.missing_count,
        ),
        cache=await cache.get_info(),
    )


@router.post("/outcomes/repair", response_model=RepairResponse)
async def repair_outcomes(reconciler: OutcomeReconciler = Depends(get_reconciler)):
    """Backfill outcomes for expired signals that have none."""
    try:
        result = await reconciler.investigate_and_repair()
    except ReconciliationError as e:
        raise HTTPException(status_code=503, detail=str(e))

    return RepairResponse(
        repaired_count=result.repaired,
        total_without_outcomes=result.total_without_outcomes,
        examined=result.examined,
        skipped=result.skipped,
        already_recorded=result.already_recorded,
        repaired_signal_ids=result.repaired_signal_ids,
        message=result.message,
    )


@router.get("/outcomes/verify", response_model=VerificationReport)
async def verify_outcomes(verifier: OutcomeSystemVerifier = Depends(get_verifier)):
    """Point-in-time health report of the outcome pipeline."""
    try:
        return await verifier.verify()
    except Exception as e:
        logger.error(f"Outcome system verification failed: {e}")
        return ORJSONResponse(
            status_code=500,
            content={
                "error": str(e),
                "timestamp": datetime.now(timezone.utc).isoformat(),
            },
        )


@router.get("/outcomes/audit/{signal_id}", response_model=AuditResponse)
async def audit_signal(
    signal_id: str,
    auditor: ExpirationAuditor = Depends(get_auditor),
):
    """Check whether an expired signal has its outcome record."""
    has_outcome = await auditor.audit_signal_expiration(
        signal_id, reason="Manual audit", source="api"
    )
    return AuditResponse(signal_id=signal_id, has_outcome=has_outcome)
