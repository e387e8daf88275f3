# Overview: Point-in-time value types captured onto orders, checkouts and invoices.

"""
Snapshot value types.

A snapshot is copied onto a document at the moment of an order/invoice
action and never follows later edits to the live catalog or customer rows.
They are stored in JSON columns, but every read and write goes through
these frozen records so the stored shape stays fixed and versioned.

SNAPSHOT_VERSION is written under the "_v" key. Readers accept rows
without it (treated as version 1).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


SNAPSHOT_VERSION = 1


def _clean(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass(frozen=True)
class ShippingAddress:
    line1: str
    city: str
    province: str
    postal_code: str
    country: str = "ZA"
    line2: str | None = None

    def to_dict(self) -> dict:
        return {
            "_v": SNAPSHOT_VERSION,
            "line1": self.line1,
            "line2": self.line2,
            "city": self.city,
            "province": self.province,
            "postal_code": self.postal_code,
            "country": self.country,
        }

    @classmethod
    def from_dict(cls, data: dict | None) -> "ShippingAddress":
        data = data or {}
        return cls(
            line1=_clean(data.get("line1")) or "",
            line2=_clean(data.get("line2")),
            city=_clean(data.get("city")) or "",
            province=_clean(data.get("province")) or "",
            postal_code=_clean(data.get("postal_code")) or "",
            country=_clean(data.get("country")) or "ZA",
        )


@dataclass(frozen=True)
class CustomerContact:
    email: str
    name: str | None = None
    phone: str | None = None

    def to_dict(self) -> dict:
        return {
            "_v": SNAPSHOT_VERSION,
            "email": self.email,
            "name": self.name,
            "phone": self.phone,
        }

    @classmethod
    def from_dict(cls, data: dict | None) -> "CustomerContact":
        data = data or {}
        return cls(
            email=_clean(data.get("email")) or "",
            name=_clean(data.get("name")),
            phone=_clean(data.get("phone")),
        )


@dataclass(frozen=True)
class VariantSnapshot:
    """Variant identity at sale time; attributes flattened to sorted string pairs."""
    sku: str
    name: str | None = None
    attributes: tuple[tuple[str, str], ...] = field(default_factory=tuple)

    @staticmethod
    def normalize_attributes(raw: Any) -> tuple[tuple[str, str], ...]:
        if not isinstance(raw, dict):
            return ()
        pairs = []
        for key, value in raw.items():
            k = _clean(key)
            v = _clean(value) if isinstance(value, (str, int, float)) and not isinstance(value, bool) else None
            if k and v:
                pairs.append((k, v))
        return tuple(sorted(pairs))

    @property
    def attribute_map(self) -> dict[str, str]:
        return dict(self.attributes)

    @property
    def label(self) -> str:
        """Human-readable variant description, e.g. 'M / Red' or the SKU."""
        if self.name:
            return self.name
        if self.attributes:
            return " / ".join(v for _, v in self.attributes)
        return self.sku

    def to_dict(self) -> dict:
        return {
            "_v": SNAPSHOT_VERSION,
            "sku": self.sku,
            "name": self.name,
            "attributes": self.attribute_map,
        }

    @classmethod
    def from_dict(cls, data: dict | None) -> "VariantSnapshot | None":
        if not data:
            return None
        return cls(
            sku=_clean(data.get("sku")) or "",
            name=_clean(data.get("name")),
            attributes=cls.normalize_attributes(data.get("attributes")),
        )


@dataclass(frozen=True)
class InvoiceCustomer:
    """Billing party printed on a manually issued invoice."""
    name: str | None = None
    email: str | None = None
    phone: str | None = None
    company: str | None = None
    address: str | None = None
    vat_number: str | None = None

    def to_dict(self) -> dict:
        return {
            "_v": SNAPSHOT_VERSION,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "company": self.company,
            "address": self.address,
            "vat_number": self.vat_number,
        }

    @classmethod
    def from_dict(cls, data: dict | None) -> "InvoiceCustomer":
        data = data or {}
        return cls(
            name=_clean(data.get("name")),
            email=_clean(data.get("email")),
            phone=_clean(data.get("phone")),
            company=_clean(data.get("company")),
            address=_clean(data.get("address")),
            vat_number=_clean(data.get("vat_number")),
        )
