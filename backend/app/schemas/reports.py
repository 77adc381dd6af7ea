"""Report response schemas. Money and hours are 2-decimal strings."""

from typing import List, Optional

from pydantic import BaseModel


class CategoryTotal(BaseModel):
    category: str
    total: str
    count: int


class MonthlyTrendRow(BaseModel):
    year: int
    month: int
    month_name: str
    revenue: str
    expenses: str
    profit: str


class FinancialSummary(BaseModel):
    total_revenue: str
    total_expenses: str
    net_profit: str
    profit_margin: str
    invoice_count: int
    expense_count: int
    tax_deductible: str
    outstanding_amount: str
    outstanding_count: int


class FinancialReport(BaseModel):
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    currency: str
    summary: FinancialSummary
    monthly_trend: List[MonthlyTrendRow]
    expense_by_category: List[CategoryTotal]


class TimeSummary(BaseModel):
    total_hours: str
    total_entries: int
    billable_hours: str
    non_billable_hours: str
    billed_hours: str
    unbilled_hours: str
    billable_percentage: str


class ProjectHours(BaseModel):
    project_id: int
    project_name: str
    hours: str
    entries: int


class ClientHours(BaseModel):
    client_id: Optional[int]
    client_name: str
    hours: str
    entries: int


class DailyHours(BaseModel):
    date: str
    hours: str


class TimeReport(BaseModel):
    summary: TimeSummary
    hours_by_project: List[ProjectHours]
    hours_by_client: List[ClientHours]
    daily_trend: List[DailyHours]


class ClientRevenue(BaseModel):
    client_id: int
    client_name: str
    company: Optional[str] = None
    revenue: str
    invoice_count: int


class ClientOutstanding(BaseModel):
    client_id: int
    client_name: str
    company: Optional[str] = None
    outstanding: str
    invoice_count: int


class ClientProjects(BaseModel):
    client_id: int
    client_name: str
    project_count: int


class ClientReport(BaseModel):
    revenue_by_client: List[ClientRevenue]
    outstanding_by_client: List[ClientOutstanding]
    active_projects: List[ClientProjects]


class ProjectProfitability(BaseModel):
    project_id: int
    project_name: str
    client_name: str
    status: str
    hours: str
    revenue: str
    expenses: str
    profit: str
    profit_margin: str
    effective_hourly_rate: str


class ProjectReportSummary(BaseModel):
    total_projects: int
    profitable_projects: int
    total_revenue: str
    total_expenses: str
    total_profit: str


class ProjectReport(BaseModel):
    projects: List[ProjectProfitability]
    summary: ProjectReportSummary


class TaxSummary(BaseModel):
    gross_income: str
    total_deductions: str
    taxable_income: str
    tax_collected: str


class MonthlyIncome(BaseModel):
    month: int
    month_name: str
    income: str


class TaxReport(BaseModel):
    year: int
    currency: str
    summary: TaxSummary
    deductible_expenses: List[CategoryTotal]
    monthly_income: List[MonthlyIncome]
