"""SQLAlchemy models for the entity stores the reports read."""

from fleetbooks.models.booking import Booking, BookingStatus
from fleetbooks.models.customer import Customer, CustomerType
from fleetbooks.models.expense import Expense, ExpenseCategory, ExpenseCategoryType
from fleetbooks.models.investor import InvestorProfile
from fleetbooks.models.investor_payout import InvestorPayout, PayoutStatus
from fleetbooks.models.invoice import Invoice, InvoiceItem, InvoiceStatus
from fleetbooks.models.maintenance import MaintenanceRecord, MaintenanceStatus
from fleetbooks.models.payment import Payment, PaymentStatus
from fleetbooks.models.vehicle import OwnershipType, Vehicle

__all__ = [
    "Booking",
    "BookingStatus",
    "Customer",
    "CustomerType",
    "Expense",
    "ExpenseCategory",
    "ExpenseCategoryType",
    "InvestorPayout",
    "InvestorProfile",
    "Invoice",
    "InvoiceItem",
    "InvoiceStatus",
    "MaintenanceRecord",
    "MaintenanceStatus",
    "OwnershipType",
    "Payment",
    "PaymentStatus",
    "PayoutStatus",
    "Vehicle",
]
