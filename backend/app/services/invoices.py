"""Invoice ledger: creation, listing with overdue sweep, updates and deletion."""

from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Iterable, List, Mapping

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from backend.app.core.exceptions import ConflictError, NotFoundError, ValidationError
from backend.app.core.locks import invoice_lock
from backend.app.core.logging import log
from backend.app.core.settings import get_settings
from backend.app.core.time import utc_now, utc_today
from backend.app.models.client import Client
from backend.app.models.invoice import INVOICE_STATUSES, Invoice
from backend.app.models.invoice_item import InvoiceItem
from backend.app.models.payment import Payment
from backend.app.models.project import Project
from backend.app.models.time_entry import TimeEntry
from backend.app.models.user import User
from backend.app.services.billing import (
    ZERO,
    apply_late_fee,
    calculate_late_fee,
    calculate_line_amount,
    calculate_totals,
    effective_status,
    refresh_invoice_status,
    to_money,
    today_for,
    validate_late_fee_terms,
)
from backend.app.services.notifications import ledger_events, overdue_event
from backend.app.services.numbering import next_invoice_number, numbering_lock

DELETION_POLICIES = ("block", "cascade")
UPDATABLE_FIELDS = {
    "due_date",
    "issue_date",
    "notes",
    "items",
    "tax_rate",
    "discount_amount",
    "late_fee_rate",
    "late_fee_type",
    "currency",
}


def _build_items(raw_items: Iterable[Mapping[str, Any]]) -> List[InvoiceItem]:
    items: List[InvoiceItem] = []
    for position, raw in enumerate(raw_items):
        quantity = raw.get("quantity")
        if quantity is None:
            quantity = raw.get("hours")
        if quantity is None:
            quantity = 1
        rate = raw.get("rate") or 0
        amount = raw.get("amount")
        if amount is None:
            amount = calculate_line_amount(quantity, rate)
        items.append(
            InvoiceItem(
                position=position,
                description=raw.get("description") or "",
                quantity=Decimal(str(quantity)),
                rate=to_money(rate),
                amount=to_money(amount),
                time_entry_id=raw.get("time_entry_id"),
            )
        )
    return items


def get_unbilled_time_entries(db: Session, owner_id: int, project_id: int) -> List[TimeEntry]:
    """Return billable entries for the project that no invoice has claimed yet."""
    return (
        db.query(TimeEntry)
        .filter(
            TimeEntry.owner_id == owner_id,
            TimeEntry.project_id == project_id,
            TimeEntry.billable.is_(True),
            TimeEntry.invoiced.is_(False),
        )
        .order_by(TimeEntry.date.asc(), TimeEntry.id.asc())
        .all()
    )


def _items_from_time_entries(entries: List[TimeEntry], rate: Decimal) -> List[InvoiceItem]:
    return [
        InvoiceItem(
            position=position,
            description=entry.description,
            quantity=Decimal(str(entry.hours)),
            rate=rate,
            amount=calculate_line_amount(entry.hours, rate),
            time_entry_id=entry.id,
        )
        for position, entry in enumerate(entries)
    ]


def _load_client_and_project(db: Session, owner_id: int, client_id: int, project_id: int | None):
    client = db.query(Client).filter(Client.id == client_id, Client.owner_id == owner_id).first()
    if client is None:
        raise NotFoundError("Client", client_id)
    project = None
    if project_id is not None:
        project = db.query(Project).filter(Project.id == project_id, Project.owner_id == owner_id).first()
        if project is None:
            raise NotFoundError("Project", project_id)
        if project.client_id != client.id:
            raise ValidationError("Project does not belong to the selected client")
    return client, project


def create_invoice(
    db: Session,
    owner: User,
    client_id: int,
    project_id: int | None = None,
    items: list[Mapping[str, Any]] | None = None,
    due_date: date | None = None,
    rate: Decimal | float | None = None,
    issue_date: date | None = None,
    tax_rate: Decimal | float = 0,
    discount_amount: Decimal | float = 0,
    notes: str | None = None,
    currency: str | None = None,
    late_fee_rate: Decimal | float = 0,
    late_fee_type: str = "percentage",
    now: datetime | None = None,
) -> Invoice:
    """Create an invoice from explicit line items or from unbilled time entries."""
    settings = get_settings()
    validate_late_fee_terms(late_fee_rate, late_fee_type)
    _, project = _load_client_and_project(db, owner.id, client_id, project_id)

    entries: List[TimeEntry] = []
    if items:
        invoice_items = _build_items(items)
    else:
        if project is not None:
            entries = get_unbilled_time_entries(db, owner.id, project.id)
        if not entries:
            raise ValidationError("no line items and no time entries")
        if rate is not None:
            hourly = to_money(rate)
        else:
            hourly = to_money(project.hourly_rate)
        invoice_items = _items_from_time_entries(entries, hourly)

    totals = calculate_totals((item.amount for item in invoice_items), tax_rate, discount_amount)
    issued = issue_date or today_for(now)
    due = due_date or issued + timedelta(days=settings.default_due_days)
    if due < issued:
        raise ValidationError("Due date cannot be before the issue date")

    with numbering_lock(owner.id):
        try:
            invoice = Invoice(
                owner_id=owner.id,
                client_id=client_id,
                project_id=project_id,
                invoice_number=next_invoice_number(db, owner, now),
                amount_paid=Decimal("0.00"),
                issue_date=issued,
                due_date=due,
                currency=currency or settings.currency,
                notes=notes,
                late_fee_rate=Decimal(str(late_fee_rate or 0)),
                late_fee_type=late_fee_type,
                **totals,
            )
            invoice.items = invoice_items
            apply_late_fee(invoice, today_for(now))
            refresh_invoice_status(invoice, today_for(now))
            db.add(invoice)
            db.flush()
            for entry in entries:
                entry.invoiced = True
                entry.invoice_id = invoice.id
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            raise ConflictError("Invoice number already in use", {"owner_id": owner.id}) from exc
        except Exception:
            db.rollback()
            raise

    db.refresh(invoice)
    log.info(
        "Created invoice {} for user {} total={} items={}",
        invoice.invoice_number,
        owner.id,
        invoice.total_amount,
        len(invoice_items),
    )
    return invoice


def _get_owned_invoice(db: Session, owner_id: int, invoice_id: int, for_update: bool = False) -> Invoice:
    query = db.query(Invoice).filter(Invoice.id == invoice_id, Invoice.owner_id == owner_id)
    if for_update:
        query = query.populate_existing().with_for_update()
    invoice = query.first()
    if invoice is None:
        raise NotFoundError("Invoice", invoice_id)
    return invoice


def refresh_derived_fields(invoice: Invoice, today: date | None = None) -> bool:
    """Accrue late fees, then re-derive the cached status."""
    fee_changed = apply_late_fee(invoice, today)
    status_changed = refresh_invoice_status(invoice, today)
    return fee_changed or status_changed


def sweep_invoice_statuses(db: Session, invoices: List[Invoice], today: date | None = None) -> List[Invoice]:
    """Refresh late fees and cached statuses, persisting the ones that moved.

    This is a side-effecting read: listing invoices writes back any invoice
    whose derived fields changed, most commonly unpaid -> overdue. Stale
    invoices are reloaded under their lock before being written.
    """
    as_of = today or utc_today()
    newly_overdue: List[Invoice] = []
    changed = 0
    for invoice in invoices:
        if not refresh_derived_fields(invoice, as_of):
            continue
        with invoice_lock(invoice.id):
            db.refresh(invoice, with_for_update=True)
            previous_status = invoice.status
            if not refresh_derived_fields(invoice, as_of):
                db.rollback()
                continue
            db.commit()
        changed += 1
        if invoice.status == "overdue" and previous_status != "overdue":
            newly_overdue.append(invoice)
    if changed:
        log.info("Status sweep updated {} invoice(s), {} now overdue", changed, len(newly_overdue))
        for invoice in newly_overdue:
            ledger_events.publish(db, overdue_event(invoice))
    return invoices


def list_invoices(
    db: Session,
    owner_id: int,
    status: str | None = None,
    client_id: int | None = None,
    project_id: int | None = None,
    skip: int = 0,
    limit: int = 50,
    sort_by: str = "created_at",
    sort_order: str = "desc",
    today: date | None = None,
) -> List[Invoice]:
    supported_sort_fields = {
        "created_at": Invoice.created_at,
        "issue_date": Invoice.issue_date,
        "due_date": Invoice.due_date,
        "total_amount": Invoice.total_amount,
        "status": Invoice.status,
    }
    if sort_by not in supported_sort_fields:
        raise ValidationError("Invalid sort_by value")
    sort_order_normalized = (sort_order or "desc").lower()
    if sort_order_normalized not in {"asc", "desc"}:
        raise ValidationError("Invalid sort_order value")
    if status is not None and status not in INVOICE_STATUSES:
        raise ValidationError("Invalid status filter")

    # Sweep the whole set first so a status filter sees derived values
    owned = db.query(Invoice).filter(Invoice.owner_id == owner_id).all()
    sweep_invoice_statuses(db, owned, today)

    query = db.query(Invoice).filter(Invoice.owner_id == owner_id)
    if status:
        query = query.filter(Invoice.status == status)
    if client_id is not None:
        query = query.filter(Invoice.client_id == client_id)
    if project_id is not None:
        query = query.filter(Invoice.project_id == project_id)

    sort_column = supported_sort_fields[sort_by]
    if sort_order_normalized == "asc":
        order_by_clause = [sort_column.asc(), Invoice.id.asc()]
    else:
        order_by_clause = [sort_column.desc(), Invoice.id.desc()]
    return query.order_by(*order_by_clause).offset(skip).limit(limit).all()


def get_invoice(db: Session, owner_id: int, invoice_id: int, today: date | None = None) -> Invoice:
    invoice = _get_owned_invoice(db, owner_id, invoice_id)
    sweep_invoice_statuses(db, [invoice], today)
    return invoice


def update_invoice(db: Session, owner_id: int, invoice_id: int, changes: Mapping[str, Any]) -> Invoice:
    """Apply editable field changes; amounts paid and status stay ledger-controlled."""
    unknown = set(changes) - UPDATABLE_FIELDS
    if unknown:
        raise ValidationError("Fields cannot be updated", {"fields": sorted(unknown)})
    validate_late_fee_terms(changes.get("late_fee_rate"), changes.get("late_fee_type"))

    with invoice_lock(invoice_id):
        invoice = _get_owned_invoice(db, owner_id, invoice_id, for_update=True)
        try:
            for field_name in ("due_date", "issue_date", "notes", "currency", "late_fee_rate", "late_fee_type"):
                if field_name in changes and changes[field_name] is not None:
                    setattr(invoice, field_name, changes[field_name])
            if invoice.due_date < invoice.issue_date:
                raise ValidationError("Due date cannot be before the issue date")

            if changes.get("items") is not None:
                new_items = _build_items(changes["items"])
                if not new_items:
                    raise ValidationError("An invoice needs at least one line item")
                invoice.items = new_items
            tax_rate = changes.get("tax_rate")
            discount = changes.get("discount_amount")
            totals = calculate_totals(
                (item.amount for item in invoice.items),
                invoice.tax_rate if tax_rate is None else tax_rate,
                invoice.discount_amount if discount is None else discount,
            )
            late_fee = to_money(invoice.late_fee_amount)
            if effective_status(invoice) != "paid":
                # Terms or due date may have changed, so the fee is re-accrued from scratch
                late_fee = calculate_late_fee(
                    totals["total_amount"],
                    invoice.late_fee_rate,
                    invoice.late_fee_type,
                    invoice.due_date,
                    utc_today(),
                )
            totals["late_fee_amount"] = late_fee
            totals["total_amount"] += late_fee
            if totals["total_amount"] < to_money(invoice.amount_paid):
                raise ValidationError(
                    "Total amount cannot drop below the amount already paid",
                    {"amount_paid": str(invoice.amount_paid), "total_amount": str(totals["total_amount"])},
                )
            for key, value in totals.items():
                setattr(invoice, key, value)

            refresh_invoice_status(invoice)
            db.commit()
        except Exception:
            db.rollback()
            raise
    db.refresh(invoice)
    return invoice


def mark_invoice_paid(db: Session, owner_id: int, invoice_id: int) -> Invoice:
    """Administrative override: force the invoice to paid without a payment record."""
    with invoice_lock(invoice_id):
        invoice = _get_owned_invoice(db, owner_id, invoice_id, for_update=True)
        invoice.marked_paid_at = utc_now()
        refresh_invoice_status(invoice)
        db.commit()
    db.refresh(invoice)
    log.info("Invoice {} marked as paid by override (amount_paid={})", invoice.invoice_number, invoice.amount_paid)
    return invoice


def delete_invoice(db: Session, owner_id: int, invoice_id: int, policy: str | None = None) -> None:
    """Delete an invoice under the configured payment policy.

    ``block`` refuses while payments reference the invoice; ``cascade`` removes
    those payments in the same transaction. Claimed time entries are released
    either way.
    """
    policy = policy or get_settings().invoice_deletion_policy
    if policy not in DELETION_POLICIES:
        raise ValidationError(f"Unknown invoice deletion policy: {policy}")

    with invoice_lock(invoice_id):
        invoice = _get_owned_invoice(db, owner_id, invoice_id, for_update=True)
        payments = db.query(Payment).filter(Payment.invoice_id == invoice.id).all()
        if payments and policy == "block":
            db.rollback()
            raise ConflictError(
                "Invoice has recorded payments and cannot be deleted",
                {"payment_count": len(payments)},
            )

        invoice_number = invoice.invoice_number
        try:
            for payment in payments:
                db.delete(payment)
            db.query(TimeEntry).filter(TimeEntry.invoice_id == invoice.id).update(
                {TimeEntry.invoiced: False, TimeEntry.invoice_id: None},
                synchronize_session=False,
            )
            db.delete(invoice)
            db.commit()
        except Exception:
            db.rollback()
            raise
    log.info("Deleted invoice {} (policy={}, payments removed={})", invoice_number, policy, len(payments))


def get_invoice_stats(db: Session, owner_id: int, today: date | None = None) -> dict:
    """Count invoices per derived status, with billed and paid sums per status."""
    result = {"total": 0, "urgent": 0}
    amounts = {}
    for status in INVOICE_STATUSES:
        result[status] = 0
        amounts[status] = {"total_amount": ZERO, "paid_amount": ZERO}
    for invoice in db.query(Invoice).filter(Invoice.owner_id == owner_id).all():
        status = effective_status(invoice, today)
        result[status] += 1
        result["total"] += 1
        amounts[status]["total_amount"] += to_money(invoice.total_amount)
        amounts[status]["paid_amount"] += to_money(invoice.amount_paid)
    result["urgent"] = result["overdue"] + result["partial"]
    result["amounts"] = amounts
    return result
