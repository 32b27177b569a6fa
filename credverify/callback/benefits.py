from abc import ABC, abstractmethod
from typing import Optional

from credverify.callback.client import post_json
from credverify.callback.payloads import build_benefit_payload
from credverify.core.errors import VerificationError
from credverify.settings import settings


class BenefitApplier(ABC):
    """Grants/withdraws what a verified identity is entitled to. Both calls must be idempotent."""

    @abstractmethod
    def apply(self, identity: str) -> None:
        ...

    @abstractmethod
    def revoke(self, identity: str) -> None:
        ...


class NullBenefitApplier(BenefitApplier):
    def apply(self, identity: str) -> None:
        return None

    def revoke(self, identity: str) -> None:
        return None


class WebhookBenefitApplier(BenefitApplier):
    """POSTs {"identity", "action": "apply"|"revoke"}; the receiver deduplicates."""

    def __init__(self, url: Optional[str] = None, timeout_sec: Optional[float] = None):
        self.url = url if url is not None else settings.BENEFIT_WEBHOOK_URL
        self.timeout_sec = float(timeout_sec if timeout_sec is not None else settings.NOTIFY_TIMEOUT_SEC)
        if not self.url:
            raise RuntimeError("BENEFIT_WEBHOOK_URL is not set")

    def _send(self, identity: str, action: str) -> None:
        ok, status_code, err = post_json(self.url, build_benefit_payload(identity, action), timeout=self.timeout_sec)
        if not ok:
            raise VerificationError(f"benefit {action} failed for {identity}: {status_code} {err}")

    def apply(self, identity: str) -> None:
        self._send(identity, "apply")

    def revoke(self, identity: str) -> None:
        self._send(identity, "revoke")


def build_benefit_applier() -> BenefitApplier:
    if getattr(settings, "BENEFIT_WEBHOOK_URL", ""):
        return WebhookBenefitApplier()
    return NullBenefitApplier()
