# Overview: Yoco hosted-checkout client and webhook signature verification.

from __future__ import annotations

import base64
import hashlib
import hmac
from dataclasses import dataclass
from typing import Mapping

import httpx
from flask import current_app

from ..errors import DomainError


class PaymentProviderError(DomainError):
    """Raised when the payment provider rejects or fails a request."""
    status_code = 502


@dataclass(frozen=True)
class HostedCheckout:
    id: str
    redirect_url: str


class YocoClient:
    """
    Thin client for the Yoco Checkout API.

    Only the call the storefront needs is implemented: creating a hosted
    checkout session the browser is redirected to.
    """

    def __init__(self, secret_key: str | None, *, api_base: str = "https://payments.yoco.com",
                 timeout: float = 15.0, transport: httpx.BaseTransport | None = None):
        self.secret_key = secret_key
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_config(cls, config: Mapping) -> "YocoClient":
        return cls(
            config.get("YOCO_SECRET_KEY"),
            api_base=config.get("YOCO_API_BASE", "https://payments.yoco.com"),
            timeout=float(config.get("HTTP_TIMEOUT_SECONDS", 15)),
        )

    def create_hosted_checkout(
        self,
        *,
        amount_cents: int,
        currency: str,
        success_url: str,
        cancel_url: str,
        failure_url: str,
        metadata: dict | None = None,
    ) -> HostedCheckout:
        if not self.secret_key:
            raise PaymentProviderError("missing_yoco_secret_key", "YOCO_SECRET_KEY is not configured",
                                       status_code=500)

        body = {
            "amount": amount_cents,
            "currency": currency,
            "successUrl": success_url,
            "cancelUrl": cancel_url,
            "failureUrl": failure_url,
            "metadata": metadata or {},
        }

        try:
            with httpx.Client(base_url=self.api_base, timeout=self.timeout, transport=self._transport) as client:
                response = client.post(
                    "/api/checkouts",
                    json=body,
                    headers={"Authorization": f"Bearer {self.secret_key}"},
                )
        except httpx.HTTPError as e:
            current_app.logger.warning("Yoco checkout request failed: %s", e)
            raise PaymentProviderError("yoco_checkout_create_failed", str(e),
                                       details={"message": str(e)}) from e

        try:
            payload = response.json()
        except ValueError:
            payload = None

        if response.is_error:
            raise PaymentProviderError(
                "yoco_checkout_create_failed",
                f"Yoco responded with HTTP {response.status_code}",
                details={"status": response.status_code, "response": payload},
            )

        checkout_id = payload.get("id") if isinstance(payload, dict) else None
        redirect_url = payload.get("redirectUrl") if isinstance(payload, dict) else None
        if not checkout_id or not redirect_url:
            raise PaymentProviderError("yoco_invalid_response", "Yoco response is missing id/redirectUrl",
                                       details={"response": payload})

        return HostedCheckout(id=str(checkout_id), redirect_url=str(redirect_url))


def verify_yoco_webhook(raw_body: bytes | str, headers: Mapping[str, str], secret: str) -> bool:
    """
    Check a Yoco webhook signature.

    signed content: "{webhook-id}.{webhook-timestamp}.{raw body}"
    key: base64-decoded part of the "whsec_<base64>" secret
    webhook-signature may hold several space-separated "v1,<sig>" entries;
    any matching v1 entry is accepted.
    """
    webhook_id = headers.get("webhook-id")
    timestamp = headers.get("webhook-timestamp")
    signature_header = headers.get("webhook-signature")
    if not webhook_id or not timestamp or not signature_header or not secret:
        return False

    if isinstance(raw_body, str):
        raw_body = raw_body.encode("utf-8")

    _, _, encoded_key = secret.partition("_")
    try:
        key = base64.b64decode(encoded_key)
    except ValueError:
        return False

    signed_content = f"{webhook_id}.{timestamp}.".encode("utf-8") + raw_body
    expected = base64.b64encode(hmac.new(key, signed_content, hashlib.sha256).digest())

    for entry in signature_header.split(" "):
        version, _, signature = entry.strip().partition(",")
        if version == "v1" and signature and hmac.compare_digest(expected, signature.encode("utf-8")):
            return True
    return False
