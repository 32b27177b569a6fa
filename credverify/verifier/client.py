from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

from credverify.core import state_machine as sm
from credverify.core.errors import VerifierError
from credverify.settings import settings


class VerifierClient(ABC):
    """
    The external verifier as the orchestrator sees it.
    Implementations must be safe to call concurrently from independent sessions.
    Every failure is raised as VerifierError.
    """

    @abstractmethod
    def create(self, identity: str, mode: str) -> str:
        """Open a verification session; returns the verifier's session id."""

    @abstractmethod
    def poll(self, session_id: str, mode: str = sm.MODE_WEB) -> Any:
        """One status round trip; returns the raw payload."""

    def ping(self) -> bool:
        return True


def _requested_attributes() -> List[str]:
    raw = getattr(settings, "REQUESTED_ATTRIBUTES", "") or ""
    return [a.strip().lower() for a in raw.split(",") if a.strip()]


class HttpVerifierClient(VerifierClient):
    """Wallet backend over HTTP.

    web:    POST {base}{WEB_CREATE_PATH}     -> {"success": true, "verificationId": ...}
            GET  {base}{WEB_STATUS_PATH}
    mobile: POST {base}{MOBILE_CREATE_PATH}  -> {"success": true, "sessionId": ..., "qrUrl": ...}
            GET  {base}{MOBILE_STATUS_PATH}
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        timeout_sec: Optional[float] = None,
        api_key: Optional[str] = None,
        http: Optional[httpx.Client] = None,
    ):
        self.base_url = (base_url if base_url is not None else settings.VERIFIER_BASE_URL).rstrip("/")
        self.timeout_sec = float(timeout_sec if timeout_sec is not None else settings.VERIFIER_TIMEOUT_SEC)
        self.api_key = api_key if api_key is not None else settings.VERIFIER_API_KEY
        self._http = http or httpx.Client(timeout=self.timeout_sec)

    def _headers(self) -> dict:
        h = {"Content-Type": "application/json"}
        if self.api_key:
            h["Authorization"] = f"Bearer {self.api_key}"
        return h

    def _request(self, method: str, path: str, body: Optional[Dict[str, Any]] = None) -> httpx.Response:
        url = f"{self.base_url}{path}"
        try:
            resp = self._http.request(method, url, headers=self._headers(), json=body)
        except httpx.HTTPError as e:
            raise VerifierError(f"{method} {url} failed: {type(e).__name__}: {e}") from e
        if not (200 <= resp.status_code < 300):
            raise VerifierError(
                f"{method} {url} -> HTTP {resp.status_code}: {(resp.text or '')[:200]}",
                status_code=resp.status_code,
            )
        return resp

    def _creation_body(self, identity: str, mode: str) -> Dict[str, Any]:
        if mode == sm.MODE_WEB:
            return {
                "type": "verification",
                "requester": {"playerUUID": identity, "playerName": identity},
                "requestedAttributes": _requested_attributes(),
                "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            }
        return {"playerName": identity}

    def create(self, identity: str, mode: str) -> str:
        mode = sm.normalize_mode(mode)
        path = settings.WEB_CREATE_PATH if mode == sm.MODE_WEB else settings.MOBILE_CREATE_PATH
        resp = self._request("POST", path, self._creation_body(identity, mode))
        try:
            data = resp.json()
        except ValueError as e:
            raise VerifierError(f"creation response is not JSON: {(resp.text or '')[:200]}") from e
        if not isinstance(data, dict) or data.get("success") is not True:
            raise VerifierError(f"verifier rejected creation: {str(data)[:200]}")

        id_key = "verificationId" if mode == sm.MODE_WEB else "sessionId"
        session_id = data.get(id_key) or data.get("sessionId") or data.get("verificationId")
        if not isinstance(session_id, str) or not session_id.strip():
            raise VerifierError(f"creation response missing {id_key}")
        return session_id.strip()

    def poll(self, session_id: str, mode: str = sm.MODE_WEB) -> str:
        template = settings.WEB_STATUS_PATH if mode == sm.MODE_WEB else settings.MOBILE_STATUS_PATH
        path = template.format(session_id=quote(str(session_id), safe=""))
        return self._request("GET", path).text

    def ping(self) -> bool:
        """Reachability check against the web create endpoint (GET lists sessions)."""
        try:
            self._request("GET", settings.WEB_CREATE_PATH)
            return True
        except VerifierError:
            return False

    def close(self) -> None:
        self._http.close()
