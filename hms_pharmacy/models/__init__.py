# hms_pharmacy/models/__init__.py
from .hospital import Hospital
from .user import User
from .patient import Patient
from .medication import Medication, MedicationBatch
from .stock_ledger import StockLedgerEntry, StockEntryType, LedgerImmutableError
from .medicine_invoice import (
    MedicineInvoice,
    MedicineInvoiceItem,
    MedicineInvoiceReturn,
    MedicineInvoiceReturnItem,
    PaymentMode,
)
from .stock_purchase import Vendor, StockPurchase, StockPurchaseReturn
from .number_series import DocumentNumberSeries

__all__ = [
    "Hospital",
    "User",
    "Patient",
    "Medication",
    "MedicationBatch",
    "StockLedgerEntry",
    "StockEntryType",
    "LedgerImmutableError",
    "MedicineInvoice",
    "MedicineInvoiceItem",
    "MedicineInvoiceReturn",
    "MedicineInvoiceReturnItem",
    "PaymentMode",
    "Vendor",
    "StockPurchase",
    "StockPurchaseReturn",
    "DocumentNumberSeries",
]
