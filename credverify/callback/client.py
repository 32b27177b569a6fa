import time
from typing import Any, Dict, Optional, Tuple

import httpx

from credverify.observability.logging import log


def post_json(url: str, payload: Dict[str, Any], *, timeout: float = 5.0,
              headers: Optional[Dict[str, str]] = None) -> Tuple[bool, int, Optional[str]]:
    """
    POST a JSON payload. Never raises.
    Returns (success, status_code, error_message); status_code is 0 on transport errors.
    """
    start = time.time()
    try:
        with httpx.Client(timeout=timeout) as client:
            resp = client.post(url, json=payload, headers=headers or {})
        elapsed_ms = int((time.time() - start) * 1000)
        if 200 <= resp.status_code < 300:
            return True, int(resp.status_code), None
        log(
            event="callback_post_non2xx",
            url=url,
            statusCode=int(resp.status_code),
            elapsedMs=elapsed_ms,
            responseText=(resp.text or "")[:300],
        )
        return False, int(resp.status_code), f"HTTP {resp.status_code}"
    except Exception as e:
        elapsed_ms = int((time.time() - start) * 1000)
        log(
            event="callback_post_exception",
            url=url,
            elapsedMs=elapsed_ms,
            errorType=type(e).__name__,
            error=str(e)[:300],
        )
        return False, 0, f"{type(e).__name__}: {str(e)[:200]}"
