"""Business expense model."""

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Integer, Numeric, String, Text

from backend.app.core.time import utc_now
from backend.app.db.base_class import Base

EXPENSE_CATEGORIES = (
    "Software & Tools",
    "Hardware & Equipment",
    "Marketing & Advertising",
    "Office Supplies",
    "Travel & Transportation",
    "Meals & Entertainment",
    "Professional Services",
    "Utilities & Internet",
    "Training & Education",
    "Subscriptions",
    "Taxes & Fees",
    "Other",
)


class Expense(Base):
    __tablename__ = "expenses"

    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=True, index=True)
    project_id = Column(Integer, ForeignKey("projects.id"), nullable=True, index=True)
    category = Column(String(50), nullable=False, default="Other")
    description = Column(String(255), nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)
    date = Column(Date, nullable=False)
    tax_deductible = Column(Boolean, nullable=False, default=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
