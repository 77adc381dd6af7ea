"""Reporting endpoints."""

from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from backend.app.core.security import get_current_user
from backend.app.db.session import get_db
from backend.app.models.user import User
from backend.app.schemas.reports import ClientReport, FinancialReport, ProjectReport, TaxReport, TimeReport
from backend.app.services.reports import (
    get_client_report,
    get_financial_report,
    get_project_report,
    get_tax_report,
    get_time_report,
)

router = APIRouter(prefix="/reports", tags=["reports"])


@router.get("/financial", response_model=FinancialReport)
def financial_report(
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return get_financial_report(db, current_user.id, start_date, end_date)


@router.get("/time", response_model=TimeReport)
def time_report(
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    project_id: int | None = None,
    client_id: int | None = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return get_time_report(db, current_user.id, start_date, end_date, project_id=project_id, client_id=client_id)


@router.get("/clients", response_model=ClientReport)
def client_report(
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return get_client_report(db, current_user.id, start_date, end_date)


@router.get("/projects", response_model=ProjectReport)
def project_report(
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return get_project_report(db, current_user.id, start_date, end_date)


@router.get("/tax", response_model=TaxReport)
def tax_report(
    year: int | None = Query(default=None, ge=1900, le=9999),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return get_tax_report(db, current_user.id, year)
