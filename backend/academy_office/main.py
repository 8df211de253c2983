from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError

from academy_office.application.errors import (
    ConflictError,
    DuplicateError,
    NotFoundError,
    TransientStorageError,
    ValidationError,
)
from academy_office.config import settings
from academy_office.infrastructure.logging import configure_logging, get_logger
from academy_office.interfaces.api.v1.router import api_router

logger = get_logger(__name__)

OPENAPI_DESCRIPTION = """
Back-office API for a seasonal academy program: registrations, enrollments,
tuition invoices and payment collection.

Amounts in requests and responses are decimal dollars; billing rules run on integral cents.
Access control is handled by the deployment in front of this service.
"""

OPENAPI_TAGS = [
    {"name": "health", "description": "Service health and connectivity checks."},
    {"name": "registrations", "description": "Student registration with enrollment selection and invoicing."},
    {"name": "students", "description": "Student deletion and student invoice views."},
    {"name": "invoices", "description": "Invoice reads, discount codes, deletion and outstanding totals."},
    {"name": "payments", "description": "Payments, split payments, refunds and payment reversal."},
]


@asynccontextmanager
async def lifespan(_: FastAPI):
    configure_logging()
    logger.info("app_startup", app_name=settings.app_name, version=settings.app_version)
    yield
    logger.info("app_shutdown", app_name=settings.app_name)


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description=OPENAPI_DESCRIPTION,
    openapi_tags=OPENAPI_TAGS,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.frontend_url, "http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/")
def root():
    return {"message": f"{settings.app_name} is running"}


@app.exception_handler(NotFoundError)
async def handle_not_found(_: Request, exc: NotFoundError):
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


@app.exception_handler(ConflictError)
async def handle_conflict(_: Request, exc: ConflictError):
    return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"detail": str(exc)})


@app.exception_handler(DuplicateError)
async def handle_duplicate(_: Request, exc: DuplicateError):
    return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"detail": str(exc)})


@app.exception_handler(ValidationError)
async def handle_validation(_: Request, exc: ValidationError):
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": str(exc)})


@app.exception_handler(TransientStorageError)
async def handle_transient_storage(_: Request, exc: TransientStorageError):
    return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content={"detail": str(exc)})


@app.exception_handler(OperationalError)
async def handle_storage_unavailable(_: Request, exc: OperationalError):
    logger.error("storage_unavailable", error=str(exc.orig) if exc.orig is not None else str(exc))
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "Storage is temporarily unavailable"},
    )


app.include_router(api_router)
