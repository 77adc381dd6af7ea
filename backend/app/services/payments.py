"""Payment ledger: apply and reverse payments against invoices.

The invoice's ``amount_paid`` always equals the sum of its payments. Both
operations write the payment row and the invoice in one transaction, under the
invoice's lock, reading the balance fresh once the lock is held.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import List

from sqlalchemy import func
from sqlalchemy.orm import Session

from backend.app.core.exceptions import NotFoundError, ValidationError
from backend.app.core.locks import invoice_lock
from backend.app.core.logging import log
from backend.app.core.time import utc_now
from backend.app.models.invoice import Invoice
from backend.app.models.payment import PAYMENT_METHODS, Payment
from backend.app.services.billing import ZERO, refresh_invoice_status, to_money
from backend.app.services.notifications import ledger_events, payment_event


def _locked_invoice(db: Session, invoice_id: int, owner_id: int | None = None) -> Invoice | None:
    query = db.query(Invoice).filter(Invoice.id == invoice_id)
    if owner_id is not None:
        query = query.filter(Invoice.owner_id == owner_id)
    return query.populate_existing().with_for_update().first()


def create_payment(
    db: Session,
    owner_id: int,
    invoice_id: int,
    amount: Decimal | float | str,
    payment_date: datetime | None = None,
    payment_method: str | None = None,
    reference_number: str | None = None,
    notes: str | None = None,
) -> Payment:
    """Record a payment and add it to the invoice's amount paid."""
    payment_amount = to_money(amount)
    if payment_amount <= ZERO:
        raise ValidationError("Payment amount must be greater than 0")
    method = payment_method or "other"
    if method not in PAYMENT_METHODS:
        raise ValidationError("Invalid payment method", {"allowed": list(PAYMENT_METHODS)})

    with invoice_lock(invoice_id):
        try:
            invoice = _locked_invoice(db, invoice_id, owner_id)
            if invoice is None:
                raise NotFoundError("Invoice", invoice_id)

            amount_due = invoice.amount_due
            if payment_amount > amount_due:
                raise ValidationError(
                    f"Payment amount ({payment_amount}) exceeds amount due ({amount_due})",
                    {"amount_due": str(amount_due)},
                )

            payment = Payment(
                owner_id=owner_id,
                invoice_id=invoice.id,
                amount=payment_amount,
                payment_date=payment_date or utc_now(),
                payment_method=method,
                reference_number=reference_number,
                notes=notes,
            )
            db.add(payment)
            invoice.amount_paid = to_money(invoice.amount_paid) + payment_amount
            refresh_invoice_status(invoice)
            db.commit()
        except Exception:
            db.rollback()
            raise

    db.refresh(payment)
    db.refresh(invoice)
    log.info(
        "Applied payment {} of {} to invoice {} (status={}, amount_due={})",
        payment.id,
        payment_amount,
        invoice.invoice_number,
        invoice.status,
        invoice.amount_due,
    )
    ledger_events.publish(db, payment_event(invoice, payment_amount))
    return payment


def delete_payment(db: Session, owner_id: int, payment_id: int) -> Invoice | None:
    """Reverse a payment; returns the updated invoice, or None if it no longer exists."""
    payment = get_payment(db, owner_id, payment_id)
    invoice_id = payment.invoice_id

    with invoice_lock(invoice_id):
        try:
            # Another reversal may have won the lock first
            payment = (
                db.query(Payment)
                .filter(Payment.id == payment_id, Payment.owner_id == owner_id)
                .populate_existing()
                .with_for_update()
                .first()
            )
            if payment is None:
                raise NotFoundError("Payment", payment_id)

            payment_amount = to_money(payment.amount)
            invoice = _locked_invoice(db, invoice_id)
            if invoice is not None:
                remaining = to_money(invoice.amount_paid) - payment_amount
                invoice.amount_paid = remaining if remaining > ZERO else ZERO
                refresh_invoice_status(invoice)
            else:
                log.warning("Payment {} references missing invoice {}", payment_id, invoice_id)
            db.delete(payment)
            db.commit()
        except Exception:
            db.rollback()
            raise

    if invoice is not None:
        db.refresh(invoice)
        log.info(
            "Reversed payment {} of {} on invoice {} (status={})",
            payment_id,
            payment_amount,
            invoice.invoice_number,
            invoice.status,
        )
    return invoice


def get_payment(db: Session, owner_id: int, payment_id: int) -> Payment:
    payment = db.query(Payment).filter(Payment.id == payment_id, Payment.owner_id == owner_id).first()
    if payment is None:
        raise NotFoundError("Payment", payment_id)
    return payment


def list_payments(
    db: Session,
    owner_id: int,
    start_date: date | None = None,
    end_date: date | None = None,
    invoice_id: int | None = None,
    payment_method: str | None = None,
    min_amount: Decimal | None = None,
    max_amount: Decimal | None = None,
    sort_by: str = "payment_date",
    sort_order: str = "desc",
    skip: int = 0,
    limit: int = 50,
) -> List[Payment]:
    query = db.query(Payment).filter(Payment.owner_id == owner_id)

    if invoice_id is not None:
        query = query.filter(Payment.invoice_id == invoice_id)
    if payment_method:
        query = query.filter(Payment.payment_method == payment_method)
    if min_amount is not None:
        query = query.filter(Payment.amount >= min_amount)
    if max_amount is not None:
        query = query.filter(Payment.amount <= max_amount)
    if start_date is not None:
        query = query.filter(func.date(Payment.payment_date) >= start_date)
    if end_date is not None:
        query = query.filter(func.date(Payment.payment_date) <= end_date)

    supported_sort_fields = {
        "payment_date": Payment.payment_date,
        "amount": Payment.amount,
        "id": Payment.id,
    }
    if sort_by not in supported_sort_fields:
        raise ValidationError("Invalid sort_by field")
    sort_order_normalized = (sort_order or "desc").lower()
    if sort_order_normalized not in {"asc", "desc"}:
        raise ValidationError("Invalid sort_order value")

    sort_column = supported_sort_fields[sort_by]
    if sort_order_normalized == "asc":
        query = query.order_by(sort_column.asc(), Payment.id.asc())
    else:
        query = query.order_by(sort_column.desc(), Payment.id.desc())

    return query.offset(skip).limit(limit).all()


def list_invoice_payments(db: Session, owner_id: int, invoice_id: int) -> dict:
    invoice = db.query(Invoice).filter(Invoice.id == invoice_id, Invoice.owner_id == owner_id).first()
    if invoice is None:
        raise NotFoundError("Invoice", invoice_id)

    payments = (
        db.query(Payment)
        .filter(Payment.invoice_id == invoice.id)
        .order_by(Payment.payment_date.desc(), Payment.id.desc())
        .all()
    )
    return {
        "payments": payments,
        "summary": {
            "total_paid": to_money(invoice.amount_paid),
            "amount_due": invoice.amount_due,
            "payment_count": len(payments),
        },
    }
