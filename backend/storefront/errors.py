# Overview: Base exception for business-rule failures surfaced to API callers.

from __future__ import annotations


class DomainError(Exception):
    """
    A rule violation the caller can act on.

    code is the stable machine-readable identifier returned to clients
    (e.g. "out_of_stock"); status_code is the HTTP status routes answer with.
    Storage failures are never wrapped in DomainError: they propagate as-is
    and become opaque 500s.
    """
    status_code = 400

    def __init__(self, code: str, message: str | None = None, *, status_code: int | None = None,
                 details: dict | None = None):
        super().__init__(message or code)
        self.code = code
        self.details = details or {}
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> dict:
        payload = {"error": self.code}
        if self.details:
            payload["details"] = self.details
        return payload


class NotFoundError(DomainError):
    status_code = 404

    def __init__(self, code: str = "not_found", message: str | None = None, **kwargs):
        super().__init__(code, message, **kwargs)
