# hms_pharmacy/api/router.py
from fastapi import APIRouter

from hms_pharmacy.api import (
    routes_medications,
    routes_medicine_invoices,
    routes_stock_purchases,
)

api_router = APIRouter()

api_router.include_router(routes_medications.router)
api_router.include_router(routes_medicine_invoices.router)
api_router.include_router(routes_stock_purchases.router)
