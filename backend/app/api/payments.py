"""Payment routes."""

from datetime import date
from decimal import Decimal
from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from backend.app.core.security import get_current_user
from backend.app.db.session import get_db
from backend.app.models.user import User
from backend.app.schemas.payment import PaymentCreate, PaymentRead, PaymentReversal
from backend.app.services.payments import create_payment, delete_payment, get_payment, list_payments

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post("/", response_model=PaymentRead, status_code=status.HTTP_201_CREATED)
def create_payment_route(
    payload: PaymentCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return create_payment(
        db,
        current_user.id,
        payload.invoice_id,
        payload.amount,
        payment_date=payload.payment_date,
        payment_method=payload.payment_method,
        reference_number=payload.reference_number,
        notes=payload.notes,
    )


@router.get("/", response_model=List[PaymentRead])
def list_payments_route(
    invoice_id: int | None = None,
    payment_method: str | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
    min_amount: Decimal | None = None,
    max_amount: Decimal | None = None,
    skip: int = 0,
    limit: int = 50,
    sort_by: str = "payment_date",
    sort_order: str = "desc",
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return list_payments(
        db,
        current_user.id,
        start_date=start_date,
        end_date=end_date,
        invoice_id=invoice_id,
        payment_method=payment_method,
        min_amount=min_amount,
        max_amount=max_amount,
        sort_by=sort_by,
        sort_order=sort_order,
        skip=skip,
        limit=limit,
    )


@router.get("/{payment_id}", response_model=PaymentRead)
def get_payment_route(payment_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return get_payment(db, current_user.id, payment_id)


@router.delete("/{payment_id}", response_model=PaymentReversal)
def delete_payment_route(payment_id: int, db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    invoice = delete_payment(db, current_user.id, payment_id)
    return {"message": "Payment deleted and invoice updated", "invoice": invoice}
