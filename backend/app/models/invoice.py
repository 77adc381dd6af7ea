"""Invoice model for billing."""

from decimal import Decimal

from sqlalchemy import Column, Date, DateTime, ForeignKey, Integer, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from backend.app.core.time import utc_now
from backend.app.db.base_class import Base

INVOICE_STATUSES = ("unpaid", "partial", "paid", "overdue")
OUTSTANDING_STATUSES = ("unpaid", "partial", "overdue")
LATE_FEE_TYPES = ("percentage", "fixed")


class Invoice(Base):
    __tablename__ = "invoices"
    __table_args__ = (UniqueConstraint("owner_id", "invoice_number", name="uq_invoices_owner_number"),)

    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=False, index=True)
    project_id = Column(Integer, ForeignKey("projects.id"), nullable=True, index=True)

    invoice_number = Column(String(50), nullable=False)
    status = Column(String(20), default="unpaid", nullable=False)
    marked_paid_at = Column(DateTime(timezone=True), nullable=True)

    subtotal = Column(Numeric(10, 2), default=0.00, nullable=False)
    tax_rate = Column(Numeric(5, 2), default=0.00, nullable=False)
    tax_amount = Column(Numeric(10, 2), default=0.00, nullable=False)
    discount_amount = Column(Numeric(10, 2), default=0.00, nullable=False)
    late_fee_rate = Column(Numeric(7, 2), default=0.00, nullable=False)
    late_fee_type = Column(String(20), default="percentage", nullable=False)
    late_fee_amount = Column(Numeric(10, 2), default=0.00, nullable=False)
    total_amount = Column(Numeric(10, 2), default=0.00, nullable=False)
    amount_paid = Column(Numeric(10, 2), default=0.00, nullable=False)
    currency = Column(String(3), nullable=False, default="USD")
    notes = Column(Text, nullable=True)

    issue_date = Column(Date, nullable=False)
    due_date = Column(Date, nullable=False)

    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False)

    owner = relationship("User", back_populates="invoices")
    client = relationship("Client")
    project = relationship("Project")
    items = relationship(
        "InvoiceItem",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceItem.position",
    )

    @property
    def amount_due(self) -> Decimal:
        total = Decimal(str(self.total_amount or 0))
        paid = Decimal(str(self.amount_paid or 0))
        return (total - paid).quantize(Decimal("0.01"))
