# Overview: Brevo transactional email client for order confirmations.

from __future__ import annotations

from typing import Mapping

import httpx
from flask import current_app, render_template

from ..errors import DomainError
from ..extensions import db
from ..models import Order
from ..services.pricing import format_zar


class MailerError(DomainError):
    """Raised when an email cannot be composed or delivered."""
    status_code = 502


class BrevoMailer:
    """
    Sends order emails through Brevo's /v3/smtp/email endpoint.

    Callers treat every send as best-effort: a MailerError is logged by
    the caller and never rolls back the order it describes.
    """

    def __init__(self, api_key: str | None, sender_email: str | None, sender_name: str | None, *,
                 api_base: str = "https://api.brevo.com", notify_email: str | None = None,
                 timeout: float = 15.0, transport: httpx.BaseTransport | None = None):
        self.api_key = api_key
        self.sender_email = sender_email
        self.sender_name = sender_name
        self.api_base = api_base.rstrip("/")
        self.notify_email = notify_email
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_config(cls, config: Mapping) -> "BrevoMailer":
        return cls(
            config.get("BREVO_API_KEY"),
            config.get("BREVO_SENDER_EMAIL"),
            config.get("BREVO_SENDER_NAME"),
            api_base=config.get("BREVO_API_BASE", "https://api.brevo.com"),
            notify_email=config.get("BREVO_NOTIFY_EMAIL"),
            timeout=float(config.get("HTTP_TIMEOUT_SECONDS", 15)),
        )

    @property
    def configured(self) -> bool:
        return bool(self.api_key and self.sender_email and self.sender_name)

    def _load_order(self, order_id: int) -> Order:
        order = db.session.get(Order, order_id)
        if order is None:
            raise MailerError("order_not_found", f"Order {order_id} not found", status_code=404)
        return order

    def _recipients(self, order: Order) -> list[dict]:
        recipients = []
        customer_email = (order.customer_email or "").strip().lower()
        if customer_email:
            entry = {"email": customer_email}
            if order.customer_name:
                entry["name"] = order.customer_name
            recipients.append(entry)

        notify = (self.notify_email or "").strip().lower()
        if notify and notify != customer_email:
            recipients.append({"email": notify})
        return recipients

    def _send(self, *, to: list[dict], subject: str, html: str) -> None:
        if not self.configured:
            raise MailerError("mailer_not_configured",
                              "Missing BREVO_API_KEY or BREVO_SENDER_EMAIL or BREVO_SENDER_NAME")
        if not to:
            raise MailerError("no_recipients", "Order has no email recipients", status_code=400)

        body = {
            "sender": {"email": self.sender_email, "name": self.sender_name},
            "to": to,
            "subject": subject,
            "htmlContent": html,
        }
        try:
            with httpx.Client(base_url=self.api_base, timeout=self.timeout, transport=self._transport) as client:
                response = client.post(
                    "/v3/smtp/email",
                    json=body,
                    headers={"api-key": self.api_key, "accept": "application/json"},
                )
        except httpx.HTTPError as e:
            raise MailerError("email_send_failed", str(e), details={"message": str(e)}) from e

        if response.is_error:
            raise MailerError(
                "email_send_failed",
                f"Brevo responded with HTTP {response.status_code}",
                details={"status": response.status_code, "response": response.text[:500]},
            )
        current_app.logger.info("Sent %r to %d recipient(s)", subject, len(to))

    def _render(self, template: str, order: Order) -> str:
        return render_template(template, order=order, items=order.items, format_zar=format_zar,
                               bank=current_app.config.get("BANK_TRANSFER_DETAILS") or {})

    def send_order_paid_email(self, order_id: int) -> None:
        order = self._load_order(order_id)
        self._send(
            to=self._recipients(order),
            subject=f"Payment received - Order {order.order_number}",
            html=self._render("emails/order_paid.html", order),
        )

    def send_bank_transfer_order_email(self, order_id: int) -> None:
        order = self._load_order(order_id)
        self._send(
            to=self._recipients(order),
            subject=f"Order received - Bank Transfer - Order {order.order_number}",
            html=self._render("emails/bank_transfer_order.html", order),
        )
