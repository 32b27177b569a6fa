import time
from datetime import datetime, timezone

def now_ms() -> int:
    return int(time.time() * 1000)

def iso_from_ms(ms: int) -> str:
    """Epoch milliseconds -> ISO-8601 UTC string with trailing 'Z'."""
    try:
        dt = datetime.fromtimestamp(int(ms) / 1000.0, tz=timezone.utc)
    except Exception:
        dt = datetime.now(timezone.utc)
    return dt.isoformat().replace("+00:00", "Z")
