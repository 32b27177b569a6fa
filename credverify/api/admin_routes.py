from fastapi import APIRouter, Depends

from credverify.api.auth import require_admin
from credverify.api.routes import get_orchestrator
from credverify.core.orchestrator import SessionOrchestrator
import credverify.observability.metrics as metrics

router = APIRouter(prefix="/admin", tags=["admin"])

@router.get("/sessions")
def list_active_sessions(orch: SessionOrchestrator = Depends(get_orchestrator), _=Depends(require_admin)):
    """Snapshot of every pending session, oldest first."""
    sessions = sorted(orch.store.active_sessions(), key=lambda s: s.createdAtMs)
    return {
        "count": len(sessions),
        "activeTimers": orch.active_timer_count(),
        "sessions": [
            {
                "identity": s.identity,
                "sessionId": s.sessionId,
                "mode": s.mode,
                "attempts": s.attempts,
                "maxAttempts": orch.max_attempts,
                "createdAtMs": s.createdAtMs,
                "lastPolledAtMs": s.lastPolledAtMs,
                "lastOutcome": s.lastOutcome,
            }
            for s in sessions
        ],
    }

@router.get("/metrics")
def metrics_snapshot(_=Depends(require_admin)):
    return metrics.get_snapshot()
