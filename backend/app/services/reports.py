"""Read-only reporting over the ledger and the peripheral collections.

Every report takes an optional inclusive ``start_date``/``end_date`` window.
Groupings are sorted by their metric, descending, with ties broken by the
ascending id (or name for categories) so output is reproducible.
"""

from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Tuple

from sqlalchemy.orm import Session

from backend.app.core.settings import get_settings
from backend.app.core.time import as_utc, utc_today
from backend.app.models.client import Client
from backend.app.models.expense import Expense
from backend.app.models.invoice import OUTSTANDING_STATUSES, Invoice
from backend.app.models.project import Project
from backend.app.models.time_entry import TimeEntry
from backend.app.services.billing import CENTS, ZERO, effective_status, to_money

MONTH_NAMES = ["Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]
DAILY_TREND_DAYS = 30


def _fmt(value: Decimal) -> str:
    return str(Decimal(value).quantize(CENTS))


def _percent(part: Decimal, whole: Decimal) -> Decimal:
    if whole <= 0:
        return ZERO
    return (part / whole * Decimal("100")).quantize(CENTS)


def _in_window(value: date | None, start_date: date | None, end_date: date | None) -> bool:
    if value is None:
        return False
    if start_date is not None and value < start_date:
        return False
    if end_date is not None and value > end_date:
        return False
    return True


def _updated_on(invoice: Invoice) -> date:
    return as_utc(invoice.updated_at).date()


def _paid_invoices(
    db: Session,
    owner_id: int,
    start_date: date | None,
    end_date: date | None,
    today: date,
) -> List[Invoice]:
    """Paid invoices whose last update falls inside the window."""
    invoices = db.query(Invoice).filter(Invoice.owner_id == owner_id).order_by(Invoice.id.asc()).all()
    return [
        inv
        for inv in invoices
        if effective_status(inv, today) == "paid" and _in_window(_updated_on(inv), start_date, end_date)
    ]


def _outstanding_invoices(db: Session, owner_id: int, today: date) -> List[Invoice]:
    invoices = db.query(Invoice).filter(Invoice.owner_id == owner_id).order_by(Invoice.id.asc()).all()
    return [inv for inv in invoices if effective_status(inv, today) in OUTSTANDING_STATUSES]


def _expenses(db: Session, owner_id: int, start_date: date | None, end_date: date | None) -> List[Expense]:
    query = db.query(Expense).filter(Expense.owner_id == owner_id)
    if start_date is not None:
        query = query.filter(Expense.date >= start_date)
    if end_date is not None:
        query = query.filter(Expense.date <= end_date)
    return query.order_by(Expense.id.asc()).all()


def _category_breakdown(expenses: Iterable[Expense]) -> List[dict]:
    totals: Dict[str, Dict[str, Decimal | int]] = {}
    for exp in expenses:
        entry = totals.setdefault(exp.category, {"total": ZERO, "count": 0})
        entry["total"] += to_money(exp.amount)
        entry["count"] += 1
    ordered = sorted(totals.items(), key=lambda kv: (-kv[1]["total"], kv[0]))
    return [{"category": name, "total": _fmt(vals["total"]), "count": vals["count"]} for name, vals in ordered]


def merge_monthly_series(
    revenue: Dict[Tuple[int, int], Decimal],
    expenses: Dict[Tuple[int, int], Decimal],
) -> List[dict]:
    """Merge two sparse (year, month) series.

    Only months present on at least one side appear; missing months are not
    zero-filled.
    """
    keys = sorted(set(revenue) | set(expenses))
    rows = []
    for year, month in keys:
        rev = revenue.get((year, month), ZERO)
        exp = expenses.get((year, month), ZERO)
        rows.append(
            {
                "year": year,
                "month": month,
                "month_name": MONTH_NAMES[month - 1],
                "revenue": _fmt(rev),
                "expenses": _fmt(exp),
                "profit": _fmt(rev - exp),
            }
        )
    return rows


def get_financial_report(
    db: Session,
    owner_id: int,
    start_date: date | None = None,
    end_date: date | None = None,
    today: date | None = None,
) -> dict:
    as_of = today or utc_today()
    paid = _paid_invoices(db, owner_id, start_date, end_date, as_of)
    expenses = _expenses(db, owner_id, start_date, end_date)
    outstanding = _outstanding_invoices(db, owner_id, as_of)

    total_revenue = sum((to_money(inv.amount_paid) for inv in paid), ZERO)
    total_expenses = sum((to_money(exp.amount) for exp in expenses), ZERO)
    tax_deductible = sum((to_money(exp.amount) for exp in expenses if exp.tax_deductible), ZERO)
    outstanding_amount = sum((inv.amount_due for inv in outstanding), ZERO)
    net_profit = total_revenue - total_expenses

    monthly_revenue: Dict[Tuple[int, int], Decimal] = defaultdict(lambda: ZERO)
    for inv in paid:
        updated = _updated_on(inv)
        monthly_revenue[(updated.year, updated.month)] += to_money(inv.amount_paid)
    monthly_expenses: Dict[Tuple[int, int], Decimal] = defaultdict(lambda: ZERO)
    for exp in expenses:
        monthly_expenses[(exp.date.year, exp.date.month)] += to_money(exp.amount)

    return {
        "start_date": start_date.isoformat() if start_date else None,
        "end_date": end_date.isoformat() if end_date else None,
        "currency": get_settings().currency,
        "summary": {
            "total_revenue": _fmt(total_revenue),
            "total_expenses": _fmt(total_expenses),
            "net_profit": _fmt(net_profit),
            "profit_margin": _fmt(_percent(net_profit, total_revenue)),
            "invoice_count": len(paid),
            "expense_count": len(expenses),
            "tax_deductible": _fmt(tax_deductible),
            "outstanding_amount": _fmt(outstanding_amount),
            "outstanding_count": len(outstanding),
        },
        "monthly_trend": merge_monthly_series(monthly_revenue, monthly_expenses),
        "expense_by_category": _category_breakdown(expenses),
    }


def get_time_report(
    db: Session,
    owner_id: int,
    start_date: date | None = None,
    end_date: date | None = None,
    project_id: int | None = None,
    client_id: int | None = None,
) -> dict:
    projects = {p.id: p for p in db.query(Project).filter(Project.owner_id == owner_id).all()}
    clients = {c.id: c for c in db.query(Client).filter(Client.owner_id == owner_id).all()}

    query = db.query(TimeEntry).filter(TimeEntry.owner_id == owner_id)
    if start_date is not None:
        query = query.filter(TimeEntry.date >= start_date)
    if end_date is not None:
        query = query.filter(TimeEntry.date <= end_date)
    if project_id is not None:
        query = query.filter(TimeEntry.project_id == project_id)
    entries = query.order_by(TimeEntry.date.asc(), TimeEntry.id.asc()).all()
    if client_id is not None:
        entries = [e for e in entries if e.project_id in projects and projects[e.project_id].client_id == client_id]

    total_hours = ZERO
    billable_hours = ZERO
    billed_hours = ZERO
    unbilled_hours = ZERO
    by_project: Dict[int, Dict[str, Decimal | int]] = {}
    by_client: Dict[int | None, Dict[str, Decimal | int]] = {}
    by_day: Dict[date, Decimal] = defaultdict(lambda: ZERO)

    for entry in entries:
        hours = to_money(entry.hours)
        total_hours += hours
        if entry.billable:
            billable_hours += hours
            if not entry.invoiced:
                unbilled_hours += hours
        if entry.invoiced:
            billed_hours += hours

        project_row = by_project.setdefault(entry.project_id, {"hours": ZERO, "entries": 0})
        project_row["hours"] += hours
        project_row["entries"] += 1

        project = projects.get(entry.project_id)
        owning_client = project.client_id if project else None
        client_row = by_client.setdefault(owning_client, {"hours": ZERO, "entries": 0})
        client_row["hours"] += hours
        client_row["entries"] += 1

        by_day[entry.date] += hours

    hours_by_project = [
        {
            "project_id": pid,
            "project_name": projects[pid].title if pid in projects else "Unknown",
            "hours": _fmt(vals["hours"]),
            "entries": vals["entries"],
        }
        for pid, vals in sorted(by_project.items(), key=lambda kv: (-kv[1]["hours"], kv[0]))
    ]
    hours_by_client = [
        {
            "client_id": cid,
            "client_name": clients[cid].name if cid in clients else "Unknown",
            "hours": _fmt(vals["hours"]),
            "entries": vals["entries"],
        }
        for cid, vals in sorted(
            by_client.items(),
            key=lambda kv: (-kv[1]["hours"], kv[0] is None, kv[0] or 0),
        )
    ]
    recent_days = sorted(by_day)[-DAILY_TREND_DAYS:]
    daily_trend = [{"date": day.isoformat(), "hours": _fmt(by_day[day])} for day in recent_days]

    return {
        "summary": {
            "total_hours": _fmt(total_hours),
            "total_entries": len(entries),
            "billable_hours": _fmt(billable_hours),
            "non_billable_hours": _fmt(total_hours - billable_hours),
            "billed_hours": _fmt(billed_hours),
            "unbilled_hours": _fmt(unbilled_hours),
            "billable_percentage": _fmt(_percent(billable_hours, total_hours)),
        },
        "hours_by_project": hours_by_project,
        "hours_by_client": hours_by_client,
        "daily_trend": daily_trend,
    }


def get_client_report(
    db: Session,
    owner_id: int,
    start_date: date | None = None,
    end_date: date | None = None,
    today: date | None = None,
) -> dict:
    as_of = today or utc_today()
    clients = {c.id: c for c in db.query(Client).filter(Client.owner_id == owner_id).all()}

    revenue: Dict[int, Dict[str, Decimal | int]] = {}
    for inv in _paid_invoices(db, owner_id, start_date, end_date, as_of):
        row = revenue.setdefault(inv.client_id, {"metric": ZERO, "invoice_count": 0})
        row["metric"] += to_money(inv.amount_paid)
        row["invoice_count"] += 1

    outstanding: Dict[int, Dict[str, Decimal | int]] = {}
    for inv in _outstanding_invoices(db, owner_id, as_of):
        row = outstanding.setdefault(inv.client_id, {"metric": ZERO, "invoice_count": 0})
        row["metric"] += inv.amount_due
        row["invoice_count"] += 1

    active_projects: Dict[int, int] = defaultdict(int)
    for project in db.query(Project).filter(Project.owner_id == owner_id, Project.status == "active").all():
        active_projects[project.client_id] += 1

    def _rows(groups: Dict[int, Dict[str, Decimal | int]], metric_name: str) -> List[dict]:
        ordered = sorted(
            ((cid, vals) for cid, vals in groups.items() if cid in clients),
            key=lambda kv: (-kv[1]["metric"], kv[0]),
        )
        return [
            {
                "client_id": cid,
                "client_name": clients[cid].name,
                "company": clients[cid].company,
                metric_name: _fmt(vals["metric"]),
                "invoice_count": vals["invoice_count"],
            }
            for cid, vals in ordered
        ]

    projects_rows = [
        {"client_id": cid, "client_name": clients[cid].name, "project_count": count}
        for cid, count in sorted(active_projects.items(), key=lambda kv: (-kv[1], kv[0]))
        if cid in clients
    ]

    return {
        "revenue_by_client": _rows(revenue, "revenue"),
        "outstanding_by_client": _rows(outstanding, "outstanding"),
        "active_projects": projects_rows,
    }


def get_project_report(
    db: Session,
    owner_id: int,
    start_date: date | None = None,
    end_date: date | None = None,
    today: date | None = None,
) -> dict:
    as_of = today or utc_today()
    projects = db.query(Project).filter(Project.owner_id == owner_id).order_by(Project.id.asc()).all()
    clients = {c.id: c for c in db.query(Client).filter(Client.owner_id == owner_id).all()}

    hours: Dict[int, Decimal] = defaultdict(lambda: ZERO)
    for entry in db.query(TimeEntry).filter(TimeEntry.owner_id == owner_id).all():
        if _in_window(entry.date, start_date, end_date):
            hours[entry.project_id] += to_money(entry.hours)

    revenue: Dict[int, Decimal] = defaultdict(lambda: ZERO)
    for inv in _paid_invoices(db, owner_id, start_date, end_date, as_of):
        if inv.project_id is not None:
            revenue[inv.project_id] += to_money(inv.amount_paid)

    expenses: Dict[int, Decimal] = defaultdict(lambda: ZERO)
    for exp in _expenses(db, owner_id, start_date, end_date):
        if exp.project_id is not None:
            expenses[exp.project_id] += to_money(exp.amount)

    computed = []
    for project in projects:
        project_hours = hours[project.id]
        project_revenue = revenue[project.id]
        project_expenses = expenses[project.id]
        profit = project_revenue - project_expenses
        hourly = (project_revenue / project_hours).quantize(CENTS) if project_hours > 0 else ZERO
        client = clients.get(project.client_id)
        computed.append(
            (
                profit,
                project.id,
                {
                    "project_id": project.id,
                    "project_name": project.title,
                    "client_name": client.name if client else "Unknown",
                    "status": project.status,
                    "hours": _fmt(project_hours),
                    "revenue": _fmt(project_revenue),
                    "expenses": _fmt(project_expenses),
                    "profit": _fmt(profit),
                    "profit_margin": _fmt(_percent(profit, project_revenue)),
                    "effective_hourly_rate": _fmt(hourly),
                },
            )
        )
    computed.sort(key=lambda row: (-row[0], row[1]))

    return {
        "projects": [row[2] for row in computed],
        "summary": {
            "total_projects": len(computed),
            "profitable_projects": sum(1 for row in computed if row[0] > 0),
            "total_revenue": _fmt(sum((revenue[p.id] for p in projects), ZERO)),
            "total_expenses": _fmt(sum((expenses[p.id] for p in projects), ZERO)),
            "total_profit": _fmt(sum((row[0] for row in computed), ZERO)),
        },
    }


def get_tax_report(db: Session, owner_id: int, year: int | None = None, today: date | None = None) -> dict:
    as_of = today or utc_today()
    tax_year = year or as_of.year
    start_of_year = date(tax_year, 1, 1)
    end_of_year = date(tax_year, 12, 31)

    paid = _paid_invoices(db, owner_id, start_of_year, end_of_year, as_of)
    gross_income = sum((to_money(inv.amount_paid) for inv in paid), ZERO)
    tax_collected = sum((to_money(inv.tax_amount) for inv in paid), ZERO)

    deductible = [exp for exp in _expenses(db, owner_id, start_of_year, end_of_year) if exp.tax_deductible]
    total_deductions = sum((to_money(exp.amount) for exp in deductible), ZERO)

    monthly_income: Dict[int, Decimal] = defaultdict(lambda: ZERO)
    for inv in paid:
        monthly_income[_updated_on(inv).month] += to_money(inv.amount_paid)

    return {
        "year": tax_year,
        "currency": get_settings().currency,
        "summary": {
            "gross_income": _fmt(gross_income),
            "total_deductions": _fmt(total_deductions),
            "taxable_income": _fmt(gross_income - total_deductions),
            "tax_collected": _fmt(tax_collected),
        },
        "deductible_expenses": _category_breakdown(deductible),
        "monthly_income": [
            {"month": month, "month_name": MONTH_NAMES[month - 1], "income": _fmt(monthly_income[month])}
            for month in sorted(monthly_income)
        ],
    }
