"""Ledger events and the notification sink.

Handlers run after the ledger transaction has committed. A failing handler is
logged and skipped; it never affects the ledger write that produced the event.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Callable, List

from sqlalchemy.orm import Session

from backend.app.core.logging import log
from backend.app.models.invoice import Invoice
from backend.app.models.notification import Notification

PAYMENT_RECEIVED = "payment_received"
INVOICE_PAID = "invoice_paid"
INVOICE_OVERDUE = "invoice_overdue"


@dataclass
class LedgerEvent:
    type: str
    owner_id: int
    invoice_id: int | None
    title: str
    message: str
    data: dict = field(default_factory=dict)


EventHandler = Callable[[Session, LedgerEvent], None]


class LedgerEventDispatcher:
    def __init__(self):
        self._handlers: List[EventHandler] = []

    def subscribe(self, handler: EventHandler) -> None:
        if handler not in self._handlers:
            self._handlers.append(handler)

    def unsubscribe(self, handler: EventHandler) -> None:
        if handler in self._handlers:
            self._handlers.remove(handler)

    def publish(self, db: Session, event: LedgerEvent) -> None:
        for handler in list(self._handlers):
            try:
                handler(db, event)
            except Exception:
                db.rollback()
                log.exception("Notification handler {} failed for {} event", getattr(handler, "__name__", handler), event.type)


def record_notification(db: Session, event: LedgerEvent) -> None:
    """Default sink: persist an in-app notification."""
    db.add(
        Notification(
            owner_id=event.owner_id,
            type=event.type,
            title=event.title,
            message=event.message,
            invoice_id=event.invoice_id,
        )
    )
    db.commit()


def payment_event(invoice: Invoice, amount: Decimal) -> LedgerEvent:
    if invoice.status == "paid":
        return LedgerEvent(
            type=INVOICE_PAID,
            owner_id=invoice.owner_id,
            invoice_id=invoice.id,
            title=f"Invoice {invoice.invoice_number} marked as paid",
            message=f"Full payment received for invoice {invoice.invoice_number}",
            data={"amount": str(amount)},
        )
    return LedgerEvent(
        type=PAYMENT_RECEIVED,
        owner_id=invoice.owner_id,
        invoice_id=invoice.id,
        title=f"Payment of {amount} {invoice.currency} received",
        message=f"Partial payment of {amount} received for invoice {invoice.invoice_number}",
        data={"amount": str(amount)},
    )


def overdue_event(invoice: Invoice) -> LedgerEvent:
    return LedgerEvent(
        type=INVOICE_OVERDUE,
        owner_id=invoice.owner_id,
        invoice_id=invoice.id,
        title=f"Invoice {invoice.invoice_number} is overdue",
        message=f"Payment is overdue. Due date was {invoice.due_date.isoformat()}.",
    )


ledger_events = LedgerEventDispatcher()
ledger_events.subscribe(record_notification)
