"""Invoice numbering.

Numbers look like ``INV-2025-JD-0007``. The sequence is scoped to the user and
keeps counting across calendar years; it does not restart at 0001 in January.
Sequences are reserved from a per-user counter row, locked for the duration of
the caller's transaction, so two concurrent creations cannot read the same
"last" number.
"""

from contextlib import contextmanager
from datetime import datetime
from typing import Iterator

from sqlalchemy.orm import Session

from backend.app.core.locks import KeyedLock
from backend.app.core.logging import log
from backend.app.core.time import utc_now
from backend.app.models.invoice import Invoice
from backend.app.models.invoice_counter import InvoiceCounter
from backend.app.models.user import User

DEFAULT_INITIALS = "USR"

_owner_locks = KeyedLock()


@contextmanager
def numbering_lock(owner_id: int) -> Iterator[None]:
    """Serialize invoice creation for one user within this process."""
    with _owner_locks.hold(owner_id):
        yield


def get_user_initials(full_name: str | None) -> str:
    if not full_name or not full_name.strip():
        return DEFAULT_INITIALS
    return "".join(token[0].upper() for token in full_name.split())


def parse_sequence(invoice_number: str | None) -> int:
    """Return the sequence embedded in an invoice number, or 0 if unparseable."""
    if not invoice_number:
        return 0
    parts = invoice_number.split("-")
    if len(parts) < 4:
        return 0
    try:
        return int(parts[3])
    except ValueError:
        return 0


def _seed_from_history(db: Session, owner_id: int) -> int:
    last_invoice = (
        db.query(Invoice)
        .filter(Invoice.owner_id == owner_id)
        .order_by(Invoice.created_at.desc(), Invoice.id.desc())
        .first()
    )
    if last_invoice is None:
        return 0
    return parse_sequence(last_invoice.invoice_number)


def reserve_next_sequence(db: Session, owner_id: int) -> int:
    """Increment and return the user's sequence inside the current transaction."""
    counter = (
        db.query(InvoiceCounter)
        .filter(InvoiceCounter.owner_id == owner_id)
        .with_for_update()
        .first()
    )
    if counter is None:
        counter = InvoiceCounter(owner_id=owner_id, last_sequence=_seed_from_history(db, owner_id))
        db.add(counter)
    counter.last_sequence += 1
    db.flush()
    return counter.last_sequence


def format_invoice_number(year: int, initials: str, sequence: int) -> str:
    return f"INV-{year}-{initials}-{sequence:04d}"


def next_invoice_number(db: Session, owner: User, now: datetime | None = None) -> str:
    current = now or utc_now()
    sequence = reserve_next_sequence(db, owner.id)
    number = format_invoice_number(current.year, get_user_initials(owner.full_name), sequence)
    log.debug("Reserved invoice number {} for user {}", number, owner.id)
    return number
