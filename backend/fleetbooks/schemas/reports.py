"""Report payload schemas."""

from datetime import date, datetime

from fleetbooks.schemas.common import Money, Percent, ReportModel


# Revenue


class RevenueSummary(ReportModel):
    gross_revenue: Money
    discounts: Money
    tax: Money
    net_revenue: Money
    fines: Money
    booking_count: int
    average_booking_value: Money


class RevenueBucket(ReportModel):
    label: str
    start: date
    end: date
    gross_revenue: Money
    discounts: Money
    tax: Money
    net_revenue: Money
    booking_count: int


class RevenueGroup(ReportModel):
    key: str
    gross_revenue: Money
    net_revenue: Money
    booking_count: int


class RevenueReport(ReportModel):
    """Revenue totals for a range, per bucket and per grouping dimension."""

    currency: str
    date_from: date
    date_to: date
    granularity: str
    dimension: str
    summary: RevenueSummary
    by_period: list[RevenueBucket]
    breakdown: list[RevenueGroup]
    by_ownership: list[RevenueGroup]
    warnings: list[str] = []


# Costs


class CostLine(ReportModel):
    category_id: int | None
    category_name: str
    category_code: str
    amount: Money
    percentage: Percent


class MaintenanceLine(ReportModel):
    type: str
    amount: Money


class MaintenanceCosts(ReportModel):
    total: Money
    by_type: list[MaintenanceLine]


class FixedCostBreakdown(ReportModel):
    salaries: Money
    rent: Money
    utilities: Money
    other: Money
    total: Money


class CostReport(ReportModel):
    currency: str
    date_from: date
    date_to: date
    cogs_total: Money
    cogs_by_category: list[CostLine]
    opex_total: Money
    opex_by_category: list[CostLine]
    maintenance: MaintenanceCosts
    fixed_costs: FixedCostBreakdown
    warnings: list[str] = []


# Profit and loss


class PeriodInfo(ReportModel):
    date_from: date
    date_to: date
    type: str
    label: str


class PeriodAmount(ReportModel):
    label: str
    start: date
    end: date
    amount: Money


class RevenueSection(ReportModel):
    total: Money
    gross: Money
    discounts: Money
    tax: Money
    breakdown: list[PeriodAmount]


class CogsSection(ReportModel):
    total: Money
    by_category: list[CostLine]
    maintenance: MaintenanceCosts


class OpexSection(ReportModel):
    total: Money
    by_category: list[CostLine]
    fixed_costs: FixedCostBreakdown


class ProfitSection(ReportModel):
    gross_profit: Money
    net_profit: Money
    gross_margin: Percent
    net_margin: Percent


class MetricComparison(ReportModel):
    current: Money
    previous: Money
    change: Money
    change_percent: Percent


class MarginComparison(ReportModel):
    """Margins compare as a percentage-point delta only."""

    current: Percent
    previous: Percent
    change: Percent


class PnLComparison(ReportModel):
    mode: str
    previous_from: date
    previous_to: date
    before_data_floor: bool
    revenue: MetricComparison
    cogs: MetricComparison
    opex: MetricComparison
    gross_profit: MetricComparison
    net_profit: MetricComparison
    gross_margin: MarginComparison
    net_margin: MarginComparison


class ProfitAndLossReport(ReportModel):
    currency: str
    period: PeriodInfo
    revenue: RevenueSection
    cogs: CogsSection
    opex: OpexSection
    profit: ProfitSection
    comparison: PnLComparison | None = None
    warnings: list[str] = []


# Investor payouts


class VehicleContribution(ReportModel):
    vehicle_id: int
    plate_number: str
    brand: str
    model: str
    category: str
    bookings_count: int
    revenue: Money


class InvestorPayoutPreview(ReportModel):
    """Payout totals for one investor. Not persisted."""

    investor_id: int
    investor_name: str
    period_from: date
    period_to: date
    branch_id: str | None
    currency: str
    total_revenue: Money
    commission_percent: Percent
    commission_amount: Money
    net_payout: Money
    breakdown: list[VehicleContribution]
    warnings: list[str] = []


class InvestorPayoutRow(ReportModel):
    investor_id: int
    investor_name: str
    revenue: Money
    commission_percent: Percent
    commission: Money
    net_amount: Money
    bookings: int


class InvestorPayoutTotals(ReportModel):
    total_revenue: Money
    total_commission: Money
    total_payout: Money
    investor_count: int


class InvestorPayoutReport(ReportModel):
    currency: str
    date_from: date
    date_to: date
    commission_percent: Percent
    investors: list[InvestorPayoutRow]
    summary: InvestorPayoutTotals
    warnings: list[str] = []


# Accounts receivable


class AgingBucketTotal(ReportModel):
    bucket: str
    total: Money
    invoice_count: int


class OutstandingInvoice(ReportModel):
    invoice_id: int
    invoice_number: str
    customer_name: str
    issue_date: date
    due_date: date
    total: Money
    paid_amount: Money
    balance: Money
    days_overdue: int
    bucket: str


class ReceivablesReport(ReportModel):
    currency: str
    as_of: date
    branch_id: str | None
    total: Money
    buckets: list[AgingBucketTotal]
    invoices: list[OutstandingInvoice]
    warnings: list[str] = []


# Utilization


class UtilizationRow(ReportModel):
    vehicle_id: int
    plate_number: str
    brand: str
    model: str
    category: str
    ownership_type: str
    days_available: int
    days_rented: int
    utilization_percent: Percent
    revenue: Money
    revenue_per_day: Money


class CategoryUtilization(ReportModel):
    category: str
    total_vehicles: int
    avg_utilization: Percent
    total_revenue: Money


class UtilizationReport(ReportModel):
    currency: str
    date_from: date
    date_to: date
    vehicles: list[UtilizationRow]
    by_category: list[CategoryUtilization]
    warnings: list[str] = []


# Vehicle performance


class VehiclePeriodPerformance(ReportModel):
    label: str
    start: date
    end: date
    revenue: Money
    bookings: int
    days_rented: int


class BookingPerformance(ReportModel):
    booking_id: int
    start_at: datetime
    end_at: datetime | None
    status: str
    days_rented: int
    revenue: Money


class BreakEven(ReportModel):
    """Period revenue measured against the vehicle's purchase cost."""

    status: str
    purchase_cost: Money
    net_profit: Money
    remaining: Money
    profit_after_break_even: Money
    percent: Percent


class VehiclePerformanceReport(ReportModel):
    currency: str
    vehicle_id: int
    plate_number: str
    brand: str
    model: str
    category: str
    ownership_type: str
    date_from: date
    date_to: date
    granularity: str
    total_revenue: Money
    operating_expenses: Money
    operating_profit: Money
    bookings_count: int
    days_available: int
    days_rented: int
    days_idle: int
    utilization_percent: Percent
    average_daily_revenue: Money
    average_revenue_per_booking: Money
    break_even: BreakEven
    breakdown: list[VehiclePeriodPerformance]
    bookings: list[BookingPerformance]
    warnings: list[str] = []


# Investor performance


class InvestorVehiclePerformance(ReportModel):
    vehicle_id: int
    plate_number: str
    brand: str
    model: str
    category: str
    bookings_count: int
    revenue: Money
    commission: Money
    net_payout: Money


class InvestorPerformance(ReportModel):
    investor_id: int
    investor_name: str
    fleet_size: int
    earning_vehicles: int
    total_bookings: int
    total_revenue: Money
    total_commission: Money
    total_net_payout: Money
    revenue_per_vehicle: Money
    commission_per_vehicle: Money
    paid_to_date: Money
    vehicles: list[InvestorVehiclePerformance]


class PayoutHistoryEntry(ReportModel):
    payout_id: int
    investor_id: int
    period_from: date
    period_to: date
    total_revenue: Money
    commission_percent: Percent
    commission_amount: Money
    net_payout: Money
    status: str
    payment_status: str | None
    paid_at: datetime | None
    created_at: datetime


class InvestorPerformanceSummary(ReportModel):
    total_investors: int
    total_revenue: Money
    total_commission: Money
    total_net_payout: Money
    total_paid_out: Money


class InvestorPerformanceReport(ReportModel):
    currency: str
    date_from: date
    date_to: date
    branch_id: str | None
    commission_percent: Percent
    summary: InvestorPerformanceSummary
    investors: list[InvestorPerformance]
    payouts: list[PayoutHistoryEntry]
    warnings: list[str] = []


class FilterOptions(ReportModel):
    branches: list[str]
    vehicle_categories: list[str]
