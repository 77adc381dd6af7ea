"""Payment schemas."""

from datetime import datetime
from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict

PaymentMethod = Literal["bank_transfer", "upi", "cash", "credit_card", "debit_card", "cheque", "other"]


class PaymentBase(BaseModel):
    amount: Decimal
    payment_method: Optional[PaymentMethod] = None
    reference_number: Optional[str] = None
    notes: Optional[str] = None
    payment_date: Optional[datetime] = None


class PaymentCreate(PaymentBase):
    invoice_id: int


class PaymentRead(PaymentBase):
    id: int
    owner_id: int
    invoice_id: int
    payment_method: str
    payment_date: datetime
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class InvoiceBalance(BaseModel):
    id: int
    invoice_number: str
    total_amount: Decimal
    amount_paid: Decimal
    amount_due: Decimal
    status: str

    model_config = ConfigDict(from_attributes=True)


class PaymentReversal(BaseModel):
    message: str
    invoice: Optional[InvoiceBalance] = None


class InvoicePaymentSummary(BaseModel):
    total_paid: Decimal
    amount_due: Decimal
    payment_count: int


class InvoicePayments(BaseModel):
    payments: List[PaymentRead]
    summary: InvoicePaymentSummary
