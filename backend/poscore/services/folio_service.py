# Overview: Folio (document number) allocation shared by sales and returns.

from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..errors import InvalidRequest
from ..extensions import db
from ..models import FolioSequence, Return, Sale
from ..time_utils import folio_day_key


KIND_SALE = "SALE"
KIND_RETURN = "RETURN"

FOLIO_PREFIXES = {
    KIND_SALE: "V",
    KIND_RETURN: "DEV",
}


def _folio_column(document_kind: str):
    if document_kind == KIND_SALE:
        return Sale.folio
    return Return.folio_return


def _check_kind(document_kind: str) -> None:
    if document_kind not in FOLIO_PREFIXES:
        raise InvalidRequest(f"Unknown document kind: {document_kind}")


def format_folio(document_kind: str, day_key: str, number: int, pad: int | None = None) -> str:
    _check_kind(document_kind)
    if pad is None:
        pad = current_app.config.get("FOLIO_PAD", 4)
    # No cap: past 10**pad - 1 the suffix simply grows wider
    return f"{FOLIO_PREFIXES[document_kind]}-{day_key}-{number:0{pad}d}"


def parse_folio(folio: str) -> tuple[str, str, int]:
    """Split 'V-20260101-0001' into ('V', '20260101', 1)."""
    parts = (folio or "").strip().split("-")
    if len(parts) != 3:
        raise InvalidRequest(f"Malformed folio: {folio!r}")
    prefix, day_key, suffix = parts
    if prefix not in FOLIO_PREFIXES.values() or len(day_key) != 8 or not day_key.isdigit() or not suffix.isdigit():
        raise InvalidRequest(f"Malformed folio: {folio!r}")
    return prefix, day_key, int(suffix)


def max_existing_suffix(document_kind: str, day_key: str) -> int:
    """
    Highest numeric suffix already used for this kind and day (0 if none).

    Scans the documents themselves, so folios written outside the counter
    (imports, older data) are never reissued.
    """
    _check_kind(document_kind)
    column = _folio_column(document_kind)
    prefix = f"{FOLIO_PREFIXES[document_kind]}-{day_key}-"

    best = 0
    for (folio,) in db.session.query(column).filter(column.like(f"{prefix}%")).all():
        suffix = folio[len(prefix):]
        if suffix.isdigit():
            best = max(best, int(suffix))
    return best


def _current_counter(document_kind: str, day_key: str) -> int:
    return (
        db.session.query(FolioSequence.next_number)
        .filter_by(document_kind=document_kind, day_key=day_key)
        .scalar()
    )


def next_folio(document_kind: str, now: datetime | None = None) -> str:
    """
    Allocate the next folio for a document kind on the current day.

    Must run inside the caller's open transaction: the counter increment
    commits or rolls back together with the document that uses it.
    """
    _check_kind(document_kind)
    day_key = folio_day_key(now)

    stmt = (
        update(FolioSequence)
        .where(
            FolioSequence.document_kind == document_kind,
            FolioSequence.day_key == day_key,
        )
        .values(next_number=FolioSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        number = _current_counter(document_kind, day_key) - 1
        floor = max_existing_suffix(document_kind, day_key) + 1
        if number < floor:
            # Counter fell behind folios written elsewhere; jump past them
            db.session.execute(
                update(FolioSequence)
                .where(
                    FolioSequence.document_kind == document_kind,
                    FolioSequence.day_key == day_key,
                )
                .values(next_number=floor + 1)
                .execution_options(synchronize_session=False)
            )
            number = floor
    else:
        start = max_existing_suffix(document_kind, day_key) + 1
        seq = FolioSequence(document_kind=document_kind, day_key=day_key, next_number=start + 1)
        try:
            with db.session.begin_nested():
                db.session.add(seq)
            number = start
        except IntegrityError:
            # Another unit seeded today's counter first
            result = db.session.execute(stmt)
            if not result.rowcount:
                raise
            number = _current_counter(document_kind, day_key) - 1

    return format_folio(document_kind, day_key, number)
