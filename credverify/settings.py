import os
from dotenv import load_dotenv

load_dotenv()

class Settings:
    API_KEY: str = os.getenv("API_KEY", "")
    # Used for the /admin endpoints; empty disables them
    ADMIN_API_KEY: str = os.getenv("ADMIN_API_KEY", "")
    CORS_ORIGINS: str = os.getenv("CORS_ORIGINS", "*")

    # Verifier backend (wallet / issuer service)
    VERIFIER_BASE_URL: str = os.getenv("VERIFIER_BASE_URL", "http://localhost:3001")
    VERIFIER_API_KEY: str = os.getenv("VERIFIER_API_KEY", "")
    # Must stay below POLL_INTERVAL_SEC so a hung call never overlaps the next tick
    VERIFIER_TIMEOUT_SEC: float = float(os.getenv("VERIFIER_TIMEOUT_SEC", "2.5"))

    # "web" mode: proof request delegated to the companion wallet app
    WEB_CREATE_PATH: str = os.getenv("WEB_CREATE_PATH", "/api/minecraft/verify")
    WEB_STATUS_PATH: str = os.getenv("WEB_STATUS_PATH", "/api/minecraft/verify/{session_id}")
    # "mobile" mode: scannable code flow
    MOBILE_CREATE_PATH: str = os.getenv("MOBILE_CREATE_PATH", "/api/verify-player")
    MOBILE_STATUS_PATH: str = os.getenv("MOBILE_STATUS_PATH", "/api/verify-player?sessionId={session_id}")

    REQUESTED_ATTRIBUTES: str = os.getenv("REQUESTED_ATTRIBUTES", "name,email,department,issuer_did,age")

    # Polling cadence & budget (100 * 3s = 5 minutes)
    POLL_INITIAL_DELAY_SEC: float = float(os.getenv("POLL_INITIAL_DELAY_SEC", "3.0"))
    POLL_INTERVAL_SEC: float = float(os.getenv("POLL_INTERVAL_SEC", "3.0"))
    POLL_MAX_ATTEMPTS: int = int(os.getenv("POLL_MAX_ATTEMPTS", "100"))
    # A pending session older than this is replaced on the next start; keep above the poll lifetime
    SESSION_EXPIRY_SEC: int = int(os.getenv("SESSION_EXPIRY_SEC", "600"))
    SCHEDULER_WORKERS: int = int(os.getenv("SCHEDULER_WORKERS", "8"))

    # Verified-record storage: "memory" (process lifetime) or "redis"
    VERIFIED_BACKEND: str = os.getenv("VERIFIED_BACKEND", "memory").lower()
    REDIS_URL: str = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    VERIFIED_KEY: str = os.getenv("VERIFIED_KEY", "credverify:verified")

    # Notifications
    # Modes:
    # - "log": emit a structured log line only
    # - "webhook": POST inline (bounded by NOTIFY_TIMEOUT_SEC)
    # - "rq": enqueue, a worker performs the POST
    NOTIFY_MODE: str = os.getenv("NOTIFY_MODE", "log").lower()
    NOTIFY_WEBHOOK_URL: str = os.getenv("NOTIFY_WEBHOOK_URL", "")
    NOTIFY_TIMEOUT_SEC: float = float(os.getenv("NOTIFY_TIMEOUT_SEC", "5"))
    RQ_QUEUE_NAME: str = os.getenv("RQ_QUEUE_NAME", "notifications")

    # Benefit collaborator; empty means no-op
    BENEFIT_WEBHOOK_URL: str = os.getenv("BENEFIT_WEBHOOK_URL", "")

    # Observability
    METRICS_ENABLED: bool = os.getenv("METRICS_ENABLED", "false").lower() == "true"
    ENABLE_PII_REDACTION: bool = os.getenv("ENABLE_PII_REDACTION", "true").lower() == "true"

settings = Settings()
