from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException, Request
from starlette.concurrency import run_in_threadpool

from credverify.api.auth import require_api_key
from credverify.api.schemas import (
    ActionResponse,
    SessionView,
    StartVerificationRequest,
    StartVerificationResponse,
    VerificationStatusResponse,
)
from credverify.core import state_machine as sm
from credverify.core.errors import CreationFailed
from credverify.core.orchestrator import SessionOrchestrator

router = APIRouter()

START_MESSAGES = {
    sm.START_ALREADY_VERIFIED: "You are already verified!",
    sm.START_IN_PROGRESS: "Verification already in progress...",
}
STARTED_MESSAGES = {
    sm.MODE_WEB: "Verification request sent to your wallet. Look for the proof request notification.",
    sm.MODE_MOBILE: "Verification session created. Scan the code with your mobile wallet.",
}


def get_orchestrator(request: Request) -> SessionOrchestrator:
    orch = getattr(request.app.state, "orchestrator", None)
    if orch is None:
        raise HTTPException(status_code=503, detail="Verification service is not ready")
    return orch


def _view(session):
    return SessionView(**asdict(session)) if session is not None else None


@router.post("/verify", response_model=StartVerificationResponse, dependencies=[Depends(require_api_key)])
async def start_verification(body: StartVerificationRequest, orch: SessionOrchestrator = Depends(get_orchestrator)):
    try:
        result = await run_in_threadpool(orch.start_session, body.identity, body.mode)
    except CreationFailed:
        # Details are in the logs; the requester only learns the backend is unavailable
        raise HTTPException(status_code=502, detail="Verification system unavailable. Try again later.")

    if result.status == sm.START_STARTED:
        message = STARTED_MESSAGES[body.mode]
    else:
        message = START_MESSAGES[result.status]
    return StartVerificationResponse(status=result.status, message=message, session=_view(result.session))


@router.get("/verify/{identity}", response_model=VerificationStatusResponse, dependencies=[Depends(require_api_key)])
def verification_status(identity: str, orch: SessionOrchestrator = Depends(get_orchestrator)):
    return VerificationStatusResponse(
        identity=identity,
        verified=orch.is_verified(identity),
        session=_view(orch.get_active(identity)),
    )


@router.post("/verify/{identity}/cancel", response_model=ActionResponse, dependencies=[Depends(require_api_key)])
async def cancel_verification(identity: str, orch: SessionOrchestrator = Depends(get_orchestrator)):
    ok = await run_in_threadpool(orch.cancel, identity)
    message = "Verification cancelled." if ok else "No verification in progress."
    return ActionResponse(identity=identity, ok=ok, message=message)


@router.post("/verify/{identity}/reset", response_model=ActionResponse, dependencies=[Depends(require_api_key)])
async def reset_verification(identity: str, orch: SessionOrchestrator = Depends(get_orchestrator)):
    was_verified = await run_in_threadpool(orch.reset, identity)
    message = "Verification status reset!" if was_verified else "You are not currently verified!"
    return ActionResponse(identity=identity, ok=was_verified, message=message)


@router.post("/verify/{identity}/restore", response_model=ActionResponse, dependencies=[Depends(require_api_key)])
async def restore_benefits(identity: str, orch: SessionOrchestrator = Depends(get_orchestrator)):
    restored = await run_in_threadpool(orch.restore, identity)
    message = "Welcome back! You are verified." if restored else "Not verified yet."
    return ActionResponse(identity=identity, ok=restored, message=message)
