"""Per-user invoice sequence counter."""

from sqlalchemy import Column, ForeignKey, Integer

from backend.app.db.base_class import Base


class InvoiceCounter(Base):
    __tablename__ = "invoice_counters"

    owner_id = Column(Integer, ForeignKey("users.id"), primary_key=True)
    last_sequence = Column(Integer, nullable=False, default=0)
