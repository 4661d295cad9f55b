# app/api/router.py
from fastapi import APIRouter
from app.api import (
    routes_ipd_masters,
    routes_ipd_admissions,
    routes_ipd_orders,
    routes_ipd_medications,
    routes_ipd_nursing,
)

api_router = APIRouter()

# IPD
api_router.include_router(routes_ipd_masters.router,
                          prefix="/ipd",
                          tags=["IPD Masters"])
api_router.include_router(routes_ipd_admissions.router, prefix="/ipd")
api_router.include_router(routes_ipd_orders.router, prefix="/ipd")
api_router.include_router(routes_ipd_medications.router, prefix="/ipd")
api_router.include_router(routes_ipd_nursing.router, prefix="/ipd")
