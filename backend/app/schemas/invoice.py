"""Invoice schemas."""

from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

LateFeeType = Literal["percentage", "fixed"]


class InvoiceItemIn(BaseModel):
    description: str = ""
    quantity: Optional[Decimal] = Field(default=None, gt=0)
    hours: Optional[Decimal] = Field(default=None, gt=0)
    rate: Decimal = Decimal("0.00")
    amount: Optional[Decimal] = None


class InvoiceItemRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    position: int
    description: str
    quantity: Decimal
    rate: Decimal
    amount: Decimal
    time_entry_id: Optional[int] = None


class InvoiceCreate(BaseModel):
    client_id: int
    project_id: Optional[int] = None
    items: Optional[List[InvoiceItemIn]] = None
    rate: Optional[Decimal] = Field(default=None, ge=0)
    issue_date: Optional[date] = None
    due_date: Optional[date] = None
    tax_rate: Decimal = Field(default=Decimal("0"), ge=0, le=100)
    discount_amount: Decimal = Field(default=Decimal("0"), ge=0)
    late_fee_rate: Decimal = Field(default=Decimal("0"), ge=0)
    late_fee_type: LateFeeType = "percentage"
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
    notes: Optional[str] = None


class InvoiceUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    items: Optional[List[InvoiceItemIn]] = None
    issue_date: Optional[date] = None
    due_date: Optional[date] = None
    tax_rate: Optional[Decimal] = Field(default=None, ge=0, le=100)
    discount_amount: Optional[Decimal] = Field(default=None, ge=0)
    late_fee_rate: Optional[Decimal] = Field(default=None, ge=0)
    late_fee_type: Optional[LateFeeType] = None
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
    notes: Optional[str] = None


class InvoiceRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    owner_id: int
    client_id: int
    project_id: Optional[int]
    invoice_number: str

    status: str
    subtotal: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    discount_amount: Decimal
    late_fee_rate: Decimal
    late_fee_type: str
    late_fee_amount: Decimal
    total_amount: Decimal
    amount_paid: Decimal
    amount_due: Decimal
    currency: str
    notes: Optional[str]
    marked_paid_at: Optional[datetime]

    issue_date: date
    due_date: date
    items: List[InvoiceItemRead] = []

    created_at: datetime
    updated_at: datetime


class StatusAmounts(BaseModel):
    total_amount: Decimal
    paid_amount: Decimal


class InvoiceStats(BaseModel):
    total: int
    unpaid: int
    partial: int
    paid: int
    overdue: int
    urgent: int
    amounts: Dict[str, StatusAmounts]
