# Overview: Service-layer operations for document numbers; atomic per-type sequences.

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..errors import DomainError
from ..extensions import db
from ..models import DocumentSequence


ORDER_SEQUENCE = "ORDER"
INVOICE_SEQUENCE = "INVOICE"


class DocumentSequenceError(DomainError):
    """Raised when document sequence operations fail."""

    def __init__(self, message: str):
        super().__init__("document_sequence_error", message, status_code=500)


def next_document_number(
    *,
    document_type: str,
    prefix: str,
    pad: int = 4,
    start: int = 1,
) -> str:
    """
    Atomically allocate the next document number for a type.

    Runs inside the caller's transaction (no commit): the number is only
    consumed if the document that uses it is committed. The increment is a
    single UPDATE on the sequence row; the first allocation inserts the row
    inside a SAVEPOINT and falls back to the UPDATE if a concurrent request
    created it first.
    """
    if not document_type:
        raise DocumentSequenceError("document_type is required")

    stmt = (
        update(DocumentSequence)
        .where(DocumentSequence.document_type == document_type)
        .values(next_number=DocumentSequence.next_number + 1)
    )

    def _allocated() -> int:
        current = (
            db.session.query(DocumentSequence.next_number)
            .filter_by(document_type=document_type)
            .scalar()
        )
        return current - 1

    result = db.session.execute(stmt)
    if result.rowcount:
        next_num = _allocated()
    else:
        try:
            with db.session.begin_nested():
                db.session.add(DocumentSequence(document_type=document_type, next_number=start + 1))
            next_num = start
        except IntegrityError:
            result = db.session.execute(stmt)
            if not result.rowcount:
                raise
            next_num = _allocated()

    return f"{prefix}-{next_num:0{pad}d}"


def next_order_number() -> str:
    """ORD-1001, ORD-1002, ..."""
    return next_document_number(document_type=ORDER_SEQUENCE, prefix="ORD", pad=4, start=1001)


def next_invoice_number() -> str:
    """INV-000001, INV-000002, ..."""
    return next_document_number(document_type=INVOICE_SEQUENCE, prefix="INV", pad=6, start=1)
