from datetime import UTC, date, datetime, timedelta
from decimal import Decimal

import pytest

from backend.app.core.exceptions import ConflictError, NotFoundError, ValidationError
from backend.app.core.time import utc_today
from backend.app.db.base import Base
from backend.app.db.session import SessionLocal, engine
from backend.app.models.client import Client
from backend.app.models.notification import Notification
from backend.app.models.payment import Payment
from backend.app.models.project import Project
from backend.app.models.time_entry import TimeEntry
from backend.app.models.user import User
from backend.app.services.invoices import (
    create_invoice,
    delete_invoice,
    get_invoice,
    get_invoice_stats,
    list_invoices,
    mark_invoice_paid,
    update_invoice,
)
from backend.app.services.payments import create_payment


@pytest.fixture(autouse=True)
def setup_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


def create_owner(db, email="owner@example.com", full_name="Jane Doe"):
    user = User(email=email, full_name=full_name)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def create_client(db, owner, name="Acme"):
    client = Client(owner_id=owner.id, name=name, email=f"{name.lower()}@example.com")
    db.add(client)
    db.commit()
    db.refresh(client)
    return client


def create_project(db, owner, client, hourly_rate="50.00"):
    project = Project(owner_id=owner.id, client_id=client.id, title="Website", hourly_rate=Decimal(hourly_rate))
    db.add(project)
    db.commit()
    db.refresh(project)
    return project


def log_time(db, owner, project, hours, day=date(2030, 1, 2), billable=True):
    entry = TimeEntry(
        owner_id=owner.id,
        project_id=project.id,
        date=day,
        hours=Decimal(hours),
        description=f"{hours}h of work",
        billable=billable,
    )
    db.add(entry)
    db.commit()
    db.refresh(entry)
    return entry


def simple_invoice(db, owner, client, amount="500.00", **kwargs):
    return create_invoice(
        db,
        owner,
        client_id=client.id,
        items=[{"description": "Design", "quantity": 1, "rate": amount}],
        **kwargs,
    )


def test_create_invoice_from_line_items():
    db = SessionLocal()
    try:
        owner = create_owner(db)
        client = create_client(db, owner)
        invoice = create_invoice(
            db,
            owner,
            client_id=client.id,
            items=[
                {"description": "Design", "quantity": 2, "rate": "150.00"},
                {"description": "Hosting", "rate": "40.00"},
                {"description": "Support", "hours": "1.5", "rate": "60.00"},
            ],
            tax_rate=10,
        )
        assert invoice.subtotal == Decimal("430.00")
        assert invoice.tax_amount == Decimal("43.00")
        assert invoice.total_amount == Decimal("473.00")
        assert invoice.amount_paid == Decimal("0.00")
        assert invoice.status == "unpaid"
        assert [item.amount for item in invoice.items] == [
            Decimal("300.00"),
            Decimal("40.00"),
            Decimal("90.00"),
        ]
        assert invoice.due_date == invoice.issue_date + timedelta(days=30)
    finally:
        db.close()


def test_create_invoice_from_unbilled_time_entries():
    db = SessionLocal()
    try:
        owner = create_owner(db)
        client = create_client(db, owner)
        project = create_project(db, owner, client)
        first = log_time(db, owner, project, "2.00")
        second = log_time(db, owner, project, "1.50")
        log_time(db, owner, project, "3.00", billable=False)

        invoice = create_invoice(db, owner, client_id=client.id, project_id=project.id)
        assert invoice.total_amount == Decimal("175.00")
        assert [item.time_entry_id for item in invoice.items] == [first.id, second.id]

        db.refresh(first)
        db.refresh(second)
        assert first.invoiced and first.invoice_id == invoice.id
        assert second.invoiced and second.invoice_id == invoice.id

        # Entries are billed at most once
        with pytest.raises(ValidationError):
            create_invoice(db, owner, client_id=client.id, project_id=project.id)
    finally:
        db.close()


def test_explicit_rate_overrides_project_rate():
    db = SessionLocal()
    try:
        owner = create_owner(db)
        client = create_client(db, owner)
        project = create_project(db, owner, client)
        log_time(db, owner, project, "2.00")
        log_time(db, owner, project, "1.50")

        invoice = create_invoice(db, owner, client_id=client.id, project_id=project.id, rate="80.00")
        assert invoice.total_amount == Decimal("280.00")
        assert all(item.rate == Decimal("80.00") for item in invoice.items)
    finally:
        db.close()


def test_create_invoice_without_items_or_time_is_rejected():
    db = SessionLocal()
    try:
        owner = create_owner(db)
        client = create_client(db, owner)
        project = create_project(db, owner, client)
        with pytest.raises(ValidationError) as exc:
            create_invoice(db, owner, client_id=client.id, project_id=project.id)
        assert "no line items" in exc.value.message
        with pytest.raises(ValidationError):
            create_invoice(db, owner, client_id=client.id)
    finally:
        db.close()


def test_create_invoice_checks_client_and_project_ownership():
    db = SessionLocal()
    try:
        owner = create_owner(db)
        other = create_owner(db, email="other@example.com", full_name="Other Person")
        client = create_client(db, owner)
        second_client = create_client(db, owner, name="Globex")
        foreign_client = create_client(db, other, name="Initech")
        project = create_project(db, owner, second_client)

        with pytest.raises(NotFoundError):
            simple_invoice(db, owner, foreign_client)
        with pytest.raises(NotFoundError):
            create_invoice(db, owner, client_id=client.id, project_id=9999, items=[{"rate": 10}])
        with pytest.raises(ValidationError):
            create_invoice(db, owner, client_id=client.id, project_id=project.id, items=[{"rate": 10}])
    finally:
        db.close()


def test_due_date_before_issue_date_is_rejected():
    db = SessionLocal()
    try:
        owner = create_owner(db)
        client = create_client(db, owner)
        with pytest.raises(ValidationError):
            simple_invoice(db, owner, client, issue_date=date(2030, 5, 10), due_date=date(2030, 5, 1))
    finally:
        db.close()


def test_listing_marks_past_due_invoice_overdue_once():
    db = SessionLocal()
    try:
        owner = create_owner(db)
        client = create_client(db, owner)
        invoice = simple_invoice(
            db,
            owner,
            client,
            issue_date=date(2020, 1, 1),
            due_date=date(2020, 1, 31),
            now=datetime(2020, 1, 1, tzinfo=UTC),
        )
        assert invoice.status == "unpaid"

        listed = list_invoices(db, owner.id)
        assert [inv.status for inv in listed] == ["overdue"]
        list_invoices(db, owner.id)

        notifications = db.query(Notification).filter(Notification.type == "invoice_overdue").all()
        assert len(notifications) == 1
        assert notifications[0].invoice_id == invoice.id
    finally:
        db.close()


def test_list_filters_by_derived_status():
    db = SessionLocal()
    try:
        owner = create_owner(db)
        client = create_client(db, owner)
        simple_invoice(db, owner, client, issue_date=date(2020, 1, 1), due_date=date(2020, 1, 31))
        current = simple_invoice(db, owner, client)

        unpaid = list_invoices(db, owner.id, status="unpaid")
        assert [inv.id for inv in unpaid] == [current.id]
        assert len(list_invoices(db, owner.id, status="overdue")) == 1
        with pytest.raises(ValidationError):
            list_invoices(db, owner.id, status="sent")
        with pytest.raises(ValidationError):
            list_invoices(db, owner.id, sort_by="owner_id")
    finally:
        db.close()


def test_list_is_owner_scoped():
    db = SessionLocal()
    try:
        owner = create_owner(db)
        other = create_owner(db, email="other@example.com", full_name="Other Person")
        simple_invoice(db, owner, create_client(db, owner))
        simple_invoice(db, other, create_client(db, other, name="Initech"))

        assert len(list_invoices(db, owner.id)) == 1
        assert len(list_invoices(db, other.id)) == 1
    finally:
        db.close()


def test_get_invoice_refreshes_status():
    db = SessionLocal()
    try:
        owner = create_owner(db)
        client = create_client(db, owner)
        invoice = simple_invoice(db, owner, client, due_date=utc_today() + timedelta(days=5))

        later = utc_today() + timedelta(days=6)
        assert get_invoice(db, owner.id, invoice.id, today=later).status == "overdue"
        with pytest.raises(NotFoundError):
            get_invoice(db, owner.id, 9999)
    finally:
        db.close()


def test_update_invoice_recomputes_totals():
    db = SessionLocal()
    try:
        owner = create_owner(db)
        client = create_client(db, owner)
        invoice = simple_invoice(db, owner, client, amount="500.00")

        updated = update_invoice(
            db,
            owner.id,
            invoice.id,
            {"items": [{"description": "Design", "quantity": 3, "rate": "200.00"}], "discount_amount": "100"},
        )
        assert updated.subtotal == Decimal("600.00")
        assert updated.total_amount == Decimal("500.00")
        assert len(updated.items) == 1

        updated = update_invoice(db, owner.id, invoice.id, {"notes": "Thanks!"})
        assert updated.notes == "Thanks!"
        assert updated.total_amount == Decimal("500.00")
    finally:
        db.close()


def test_update_invoice_rejects_ledger_fields_and_underpaid_totals():
    db = SessionLocal()
    try:
        owner = create_owner(db)
        client = create_client(db, owner)
        invoice = simple_invoice(db, owner, client, amount="500.00")
        create_payment(db, owner.id, invoice.id, "300.00")

        with pytest.raises(ValidationError):
            update_invoice(db, owner.id, invoice.id, {"amount_paid": "0"})
        with pytest.raises(ValidationError):
            update_invoice(db, owner.id, invoice.id, {"status": "paid"})
        with pytest.raises(ValidationError):
            update_invoice(db, owner.id, invoice.id, {"items": [{"description": "Cheap", "rate": "100.00"}]})

        db.refresh(invoice)
        assert invoice.total_amount == Decimal("500.00")
        assert invoice.amount_paid == Decimal("300.00")
    finally:
        db.close()


def test_mark_paid_override_sticks():
    db = SessionLocal()
    try:
        owner = create_owner(db)
        client = create_client(db, owner)
        invoice = simple_invoice(db, owner, client, issue_date=date(2020, 1, 1), due_date=date(2020, 1, 31))

        marked = mark_invoice_paid(db, owner.id, invoice.id)
        assert marked.status == "paid"
        assert marked.marked_paid_at is not None
        assert marked.amount_paid == Decimal("0.00")

        # A later sweep must not flip it back to overdue
        assert list_invoices(db, owner.id)[0].status == "paid"
        assert db.query(Notification).filter(Notification.type == "invoice_overdue").count() == 0
    finally:
        db.close()


def test_delete_invoice_blocked_by_payments():
    db = SessionLocal()
    try:
        owner = create_owner(db)
        client = create_client(db, owner)
        invoice = simple_invoice(db, owner, client)
        create_payment(db, owner.id, invoice.id, "100.00")

        with pytest.raises(ConflictError):
            delete_invoice(db, owner.id, invoice.id, policy="block")
        assert get_invoice(db, owner.id, invoice.id).amount_paid == Decimal("100.00")
    finally:
        db.close()


def test_delete_invoice_cascade_removes_payments_and_releases_time():
    db = SessionLocal()
    try:
        owner = create_owner(db)
        client = create_client(db, owner)
        project = create_project(db, owner, client)
        entry = log_time(db, owner, project, "2.00")
        invoice = create_invoice(db, owner, client_id=client.id, project_id=project.id)
        invoice_id = invoice.id
        create_payment(db, owner.id, invoice_id, "50.00")

        delete_invoice(db, owner.id, invoice_id, policy="cascade")

        assert db.query(Payment).count() == 0
        with pytest.raises(NotFoundError):
            get_invoice(db, owner.id, invoice_id)
        db.refresh(entry)
        assert entry.invoiced is False
        assert entry.invoice_id is None
    finally:
        db.close()


def test_delete_invoice_unknown_policy():
    db = SessionLocal()
    try:
        owner = create_owner(db)
        invoice = simple_invoice(db, owner, create_client(db, owner))
        with pytest.raises(ValidationError):
            delete_invoice(db, owner.id, invoice.id, policy="archive")
    finally:
        db.close()


def test_invoice_stats_counts_derived_statuses():
    db = SessionLocal()
    try:
        owner = create_owner(db)
        client = create_client(db, owner)
        simple_invoice(db, owner, client)
        partial = simple_invoice(db, owner, client)
        create_payment(db, owner.id, partial.id, "100.00")
        paid = simple_invoice(db, owner, client)
        create_payment(db, owner.id, paid.id, "500.00")
        simple_invoice(db, owner, client, issue_date=date(2020, 1, 1), due_date=date(2020, 1, 31))

        stats = get_invoice_stats(db, owner.id)
        counts = {key: stats[key] for key in ("total", "unpaid", "partial", "paid", "overdue", "urgent")}
        assert counts == {"total": 4, "unpaid": 1, "partial": 1, "paid": 1, "overdue": 1, "urgent": 2}
        assert stats["amounts"]["partial"] == {"total_amount": Decimal("500.00"), "paid_amount": Decimal("100.00")}
        assert stats["amounts"]["paid"] == {"total_amount": Decimal("500.00"), "paid_amount": Decimal("500.00")}
        assert stats["amounts"]["unpaid"]["paid_amount"] == Decimal("0.00")
    finally:
        db.close()


def test_zero_total_invoice_is_settled_on_creation():
    db = SessionLocal()
    try:
        owner = create_owner(db)
        client = create_client(db, owner)
        invoice = simple_invoice(db, owner, client, amount="0", issue_date=date(2020, 1, 1), due_date=date(2020, 1, 31))
        assert invoice.total_amount == Decimal("0.00")
        assert invoice.status == "paid"
        assert list_invoices(db, owner.id)[0].status == "paid"
        assert db.query(Notification).filter(Notification.type == "invoice_overdue").count() == 0
    finally:
        db.close()


def test_time_entry_invoice_without_any_rate_is_settled():
    db = SessionLocal()
    try:
        owner = create_owner(db)
        client = create_client(db, owner)
        project = Project(owner_id=owner.id, client_id=client.id, title="Pro bono")
        db.add(project)
        db.commit()
        log_time(db, owner, project, "4.00")

        invoice = create_invoice(db, owner, client_id=client.id, project_id=project.id)
        assert invoice.total_amount == Decimal("0.00")
        assert invoice.status == "paid"
    finally:
        db.close()


def test_percentage_late_fee_accrues_during_sweep():
    db = SessionLocal()
    try:
        owner = create_owner(db)
        client = create_client(db, owner)
        invoice = simple_invoice(
            db,
            owner,
            client,
            amount="1000.00",
            issue_date=date(2020, 1, 1),
            due_date=date(2020, 1, 31),
            late_fee_rate="1",
            now=datetime(2020, 1, 1, tzinfo=UTC),
        )
        assert invoice.late_fee_amount == Decimal("0.00")
        invoice_id = invoice.id

        swept = get_invoice(db, owner.id, invoice_id, today=date(2020, 2, 10))
        assert swept.late_fee_amount == Decimal("100.00")
        assert swept.total_amount == Decimal("1100.00")
        assert swept.status == "overdue"

        # Fees never shrink on a later sweep with an earlier date
        again = get_invoice(db, owner.id, invoice_id, today=date(2020, 2, 5))
        assert again.late_fee_amount == Decimal("100.00")

        create_payment(db, owner.id, invoice_id, "1100.00")
        settled = get_invoice(db, owner.id, invoice_id)
        assert settled.status == "paid"
        assert settled.total_amount == Decimal("1100.00")
    finally:
        db.close()


def test_fixed_late_fee_accrues_on_partially_paid_invoice():
    db = SessionLocal()
    try:
        owner = create_owner(db)
        client = create_client(db, owner)
        invoice = simple_invoice(
            db,
            owner,
            client,
            issue_date=date(2020, 1, 1),
            due_date=date(2020, 1, 31),
            late_fee_rate="5",
            late_fee_type="fixed",
            now=datetime(2020, 1, 1, tzinfo=UTC),
        )
        invoice_id = invoice.id
        create_payment(db, owner.id, invoice_id, "100.00")

        swept = get_invoice(db, owner.id, invoice_id, today=date(2020, 2, 3))
        assert swept.late_fee_amount == Decimal("15.00")
        assert swept.total_amount == Decimal("515.00")
        assert swept.amount_due == Decimal("415.00")
        assert swept.status == "partial"
    finally:
        db.close()


def test_moving_due_date_forward_drops_accrued_late_fee():
    db = SessionLocal()
    try:
        owner = create_owner(db)
        client = create_client(db, owner)
        invoice = simple_invoice(
            db,
            owner,
            client,
            amount="100.00",
            issue_date=date(2020, 1, 1),
            due_date=date(2020, 1, 31),
            late_fee_rate="1",
        )
        assert invoice.late_fee_amount > Decimal("0.00")
        assert invoice.total_amount == Decimal("100.00") + invoice.late_fee_amount

        updated = update_invoice(db, owner.id, invoice.id, {"due_date": utc_today() + timedelta(days=10)})
        assert updated.late_fee_amount == Decimal("0.00")
        assert updated.total_amount == Decimal("100.00")
        assert updated.status == "unpaid"
    finally:
        db.close()


def test_invalid_late_fee_terms_are_rejected():
    db = SessionLocal()
    try:
        owner = create_owner(db)
        client = create_client(db, owner)
        with pytest.raises(ValidationError):
            simple_invoice(db, owner, client, late_fee_type="weekly")
        invoice = simple_invoice(db, owner, client)
        with pytest.raises(ValidationError):
            update_invoice(db, owner.id, invoice.id, {"late_fee_rate": Decimal("-2")})
    finally:
        db.close()
