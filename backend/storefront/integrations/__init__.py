# Overview: Outbound collaborators (payment provider, mailer) and the interfaces services depend on.

from __future__ import annotations

from typing import Protocol

from .brevo import BrevoMailer, MailerError
from .yoco import HostedCheckout, PaymentProviderError, YocoClient, verify_yoco_webhook


class PaymentProvider(Protocol):
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
        ...


class Mailer(Protocol):
    def send_order_paid_email(self, order_id: int) -> None:
        ...

    def send_bank_transfer_order_email(self, order_id: int) -> None:
        ...


__all__ = [
    "BrevoMailer",
    "HostedCheckout",
    "Mailer",
    "MailerError",
    "PaymentProvider",
    "PaymentProviderError",
    "YocoClient",
    "verify_yoco_webhook",
]
