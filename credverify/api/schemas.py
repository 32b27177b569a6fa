from typing import Literal, Optional
from pydantic import BaseModel, Field

Mode = Literal["web", "mobile"]
StartStatus = Literal["started", "already_verified", "in_progress"]

class StartVerificationRequest(BaseModel):
    identity: str = Field(min_length=1, max_length=128)
    mode: Mode = "web"

class SessionView(BaseModel):
    identity: str
    sessionId: str
    mode: str
    state: str
    attempts: int = 0
    createdAtMs: int = 0
    lastPolledAtMs: int = 0
    lastOutcome: Optional[str] = None

class StartVerificationResponse(BaseModel):
    status: StartStatus
    message: str
    session: Optional[SessionView] = None

class VerificationStatusResponse(BaseModel):
    identity: str
    verified: bool
    session: Optional[SessionView] = None

class ActionResponse(BaseModel):
    identity: str
    ok: bool
    message: str
