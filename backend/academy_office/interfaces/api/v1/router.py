from fastapi import APIRouter

from academy_office.interfaces.api.v1.routes.health import router as health_router
from academy_office.interfaces.api.v1.routes.invoices import router as invoices_router
from academy_office.interfaces.api.v1.routes.payments import router as payments_router
from academy_office.interfaces.api.v1.routes.registrations import router as registrations_router
from academy_office.interfaces.api.v1.routes.students import router as students_router

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(health_router)
api_router.include_router(invoices_router)
api_router.include_router(payments_router)
api_router.include_router(registrations_router)
api_router.include_router(students_router)
