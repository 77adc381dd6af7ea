"""Invoice routes."""

from typing import List

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from backend.app.core.security import get_current_user
from backend.app.db.session import get_db
from backend.app.models.user import User
from backend.app.schemas.invoice import InvoiceCreate, InvoiceRead, InvoiceStats, InvoiceUpdate
from backend.app.schemas.payment import InvoicePayments
from backend.app.services.invoices import (
    create_invoice,
    delete_invoice,
    get_invoice,
    get_invoice_stats,
    list_invoices,
    mark_invoice_paid,
    update_invoice,
)
from backend.app.services.payments import list_invoice_payments

router = APIRouter(prefix="/invoices", tags=["invoices"])


@router.post("/", response_model=InvoiceRead, status_code=status.HTTP_201_CREATED)
def create_invoice_route(
    payload: InvoiceCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    items = [item.model_dump() for item in payload.items] if payload.items else None
    return create_invoice(
        db,
        current_user,
        client_id=payload.client_id,
        project_id=payload.project_id,
        items=items,
        due_date=payload.due_date,
        rate=payload.rate,
        issue_date=payload.issue_date,
        tax_rate=payload.tax_rate,
        discount_amount=payload.discount_amount,
        currency=payload.currency,
        notes=payload.notes,
        late_fee_rate=payload.late_fee_rate,
        late_fee_type=payload.late_fee_type,
    )


@router.get("/", response_model=List[InvoiceRead])
def list_invoices_route(
    status: str | None = None,
    client_id: int | None = None,
    project_id: int | None = None,
    skip: int = 0,
    limit: int = 50,
    sort_by: str = "created_at",
    sort_order: str = "desc",
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return list_invoices(
        db,
        current_user.id,
        status=status,
        client_id=client_id,
        project_id=project_id,
        skip=skip,
        limit=limit,
        sort_by=sort_by,
        sort_order=sort_order,
    )


@router.get("/stats", response_model=InvoiceStats)
def invoice_stats(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return get_invoice_stats(db, current_user.id)


@router.get("/{invoice_id}", response_model=InvoiceRead)
def get_invoice_route(invoice_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return get_invoice(db, current_user.id, invoice_id)


@router.patch("/{invoice_id}", response_model=InvoiceRead)
def update_invoice_route(
    invoice_id: int,
    payload: InvoiceUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    changes = payload.model_dump(exclude_unset=True)
    if payload.items is not None:
        changes["items"] = [item.model_dump() for item in payload.items]
    return update_invoice(db, current_user.id, invoice_id, changes)


@router.delete("/{invoice_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_invoice_route(
    invoice_id: int,
    policy: str | None = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    delete_invoice(db, current_user.id, invoice_id, policy=policy)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{invoice_id}/mark-paid", response_model=InvoiceRead)
def mark_paid_route(invoice_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return mark_invoice_paid(db, current_user.id, invoice_id)


@router.get("/{invoice_id}/payments", response_model=InvoicePayments)
def invoice_payments(invoice_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return list_invoice_payments(db, current_user.id, invoice_id)
