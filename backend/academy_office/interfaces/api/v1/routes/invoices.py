from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from academy_office.application.services.invoice_lifecycle_service import apply_discount_code, delete_invoice
from academy_office.application.services.invoice_service import get_invoice, serialize_invoice_detail
from academy_office.application.services.outstanding_balance_service import get_outstanding_summary
from academy_office.application.services.semester_service import get_semester
from academy_office.domain.money import to_major
from academy_office.infrastructure.db.session import get_db
from academy_office.interfaces.api.v1.schemas.invoice import (
    DiscountCodePayload,
    InvoiceDetailResponse,
    OutstandingSummaryResponse,
)

router = APIRouter(tags=["invoices"])


@router.get(
    "/invoices/{invoice_id}",
    response_model=InvoiceDetailResponse,
    summary="Get invoice detail",
    responses={404: {"description": "Invoice not found"}},
)
def get_invoice_detail(invoice_id: int, db: Session = Depends(get_db)):
    return serialize_invoice_detail(get_invoice(db=db, invoice_id=invoice_id))


@router.post(
    "/invoices/{invoice_id}/discount",
    response_model=InvoiceDetailResponse,
    summary="Apply discount code",
    description="Recompute the invoice discount from a code. A full discount exonerates the invoice.",
    responses={400: {"description": "Unknown discount code"}, 404: {"description": "Invoice not found"}},
)
def apply_invoice_discount(invoice_id: int, payload: DiscountCodePayload, db: Session = Depends(get_db)):
    invoice = apply_discount_code(db=db, invoice_id=invoice_id, code=payload.code)
    return serialize_invoice_detail(invoice)


@router.delete(
    "/invoices/{invoice_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete invoice",
    description="Delete an invoice with nothing paid on it. Payments must be reversed first.",
    responses={404: {"description": "Invoice not found"}, 409: {"description": "Invoice has payments"}},
)
def delete_invoice_endpoint(invoice_id: int, db: Session = Depends(get_db)):
    delete_invoice(db=db, invoice_id=invoice_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get(
    "/semesters/{semester_id}/outstanding",
    response_model=OutstandingSummaryResponse,
    summary="Outstanding balance summary",
    description="Totals over the latest invoice of each student in the semester.",
    responses={404: {"description": "Semester not found"}},
)
def get_semester_outstanding(semester_id: int, db: Session = Depends(get_db)):
    get_semester(db=db, semester_id=semester_id)
    summary = get_outstanding_summary(db=db, semester_id=semester_id)
    return {
        "semester_id": semester_id,
        "students_count": summary["students_count"],
        "students_with_balance": summary["students_with_balance"],
        "billed_total": to_major(summary["billed_total"]),
        "collected_total": to_major(summary["collected_total"]),
        "outstanding_total": to_major(summary["outstanding_total"]),
    }
