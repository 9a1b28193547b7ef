# hms_pharmacy/services/number_series.py
from __future__ import annotations

from datetime import date

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from hms_pharmacy.models import DocumentNumberSeries


def _date_key(d: date) -> int:
    return int(d.strftime("%Y%m%d"))


def series_key(prefix: str, hospital_id: int) -> str:
    return f"{prefix}-H{hospital_id}"[:30]


def next_document_number(
    db: Session,
    key: str,          # e.g. "MED-H1"
    prefix: str,       # e.g. "MED", "CRN", "DRN"
    doc_date: date,
    pad: int = 3,      # 001, 002...
) -> str:
    """
    Concurrency-safe number generator using DocumentNumberSeries with UNIQUE(key, date_key).

    Example: MED20260115001
    """
    dk = _date_key(doc_date)

    row = (
        db.query(DocumentNumberSeries)
        .filter(DocumentNumberSeries.key == key, DocumentNumberSeries.date_key == dk)
        .with_for_update()
        .first()
    )

    if not row:
        # Two first-of-the-day documents may race on the insert; the loser
        # only rolls back its savepoint and re-reads the winner's row.
        try:
            with db.begin_nested():
                row = DocumentNumberSeries(key=key, date_key=dk, next_seq=1)
                db.add(row)
        except IntegrityError:
            row = (
                db.query(DocumentNumberSeries)
                .filter(DocumentNumberSeries.key == key, DocumentNumberSeries.date_key == dk)
                .with_for_update()
                .first()
            )
            if not row:
                raise

    seq = int(row.next_seq or 1)
    row.next_seq = seq + 1
    db.flush()

    return f"{prefix}{doc_date.strftime('%Y%m%d')}{seq:0{pad}d}"
