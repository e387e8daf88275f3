# backend/storefront/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/storefront.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///storefront.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Money and shipping
    STORE_CURRENCY = os.environ.get("STORE_CURRENCY", "ZAR")
    DEFAULT_SHIPPING_CENTS = int(os.environ.get("DEFAULT_SHIPPING_CENTS", "6000"))

    # Checkout
    PENDING_CHECKOUT_MAX_AGE_HOURS = int(os.environ.get("PENDING_CHECKOUT_MAX_AGE_HOURS", "24"))
    BANK_TRANSFER_RESERVES_STOCK = _env_bool("BANK_TRANSFER_RESERVES_STOCK", False)
    SITE_URL = os.environ.get("SITE_URL", "http://localhost:3000")

    # Yoco hosted checkout
    YOCO_API_BASE = os.environ.get("YOCO_API_BASE", "https://payments.yoco.com")
    YOCO_SECRET_KEY = os.environ.get("YOCO_SECRET_KEY")
    YOCO_WEBHOOK_SECRET = os.environ.get("YOCO_WEBHOOK_SECRET")

    # Brevo transactional email
    BREVO_API_BASE = os.environ.get("BREVO_API_BASE", "https://api.brevo.com")
    BREVO_API_KEY = os.environ.get("BREVO_API_KEY")
    BREVO_SENDER_EMAIL = os.environ.get("BREVO_SENDER_EMAIL")
    BREVO_SENDER_NAME = os.environ.get("BREVO_SENDER_NAME")
    # Optional shop-owner copy of every order email
    BREVO_NOTIFY_EMAIL = os.environ.get("BREVO_NOTIFY_EMAIL")

    # Printed on bank-transfer order emails
    BANK_TRANSFER_DETAILS = {
        "bank_name": os.environ.get("BANK_NAME"),
        "account_name": os.environ.get("BANK_ACCOUNT_NAME"),
        "account_number": os.environ.get("BANK_ACCOUNT_NUMBER"),
        "branch_code": os.environ.get("BANK_BRANCH_CODE"),
    }

    HTTP_TIMEOUT_SECONDS = float(os.environ.get("HTTP_TIMEOUT_SECONDS", "15"))

    # Back-office bearer token (the admin UI sits behind its own login)
    ADMIN_API_TOKEN = os.environ.get("ADMIN_API_TOKEN")
