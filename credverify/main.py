from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.concurrency import run_in_threadpool

from credverify.api.routes import router
from credverify.api.admin_routes import router as admin_router
from credverify.core.orchestrator import build_orchestrator
from credverify.observability.logging import log
from credverify.settings import settings


@asynccontextmanager
async def lifespan(app: FastAPI):
    orch = build_orchestrator()
    app.state.orchestrator = orch
    # Boot snapshot: is the verifier reachable? Never blocks startup on failure.
    reachable = await run_in_threadpool(orch.client.ping)
    log(event="verifier_ping", url=settings.VERIFIER_BASE_URL, reachable=bool(reachable))
    try:
        yield
    finally:
        orch.shutdown()


app = FastAPI(title="Credential Verification Service", lifespan=lifespan)

origins = [x.strip() for x in settings.CORS_ORIGINS.split(",") if x.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router)
app.include_router(admin_router)


@app.get("/health")
def health():
    return {"status": "ok"}
