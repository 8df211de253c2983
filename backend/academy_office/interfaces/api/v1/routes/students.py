from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from academy_office.application.services.invoice_lifecycle_service import sync_invoice_for_student
from academy_office.application.services.invoice_service import (
    get_student,
    list_invoices_for_student,
    serialize_invoice_detail,
)
from academy_office.application.services.registration_service import delete_student
from academy_office.application.services.semester_service import get_active_semester
from academy_office.infrastructure.db.session import get_db
from academy_office.interfaces.api.v1.schemas.invoice import InvoiceDetailResponse, InvoiceListResponse

router = APIRouter(tags=["students"])


@router.delete(
    "/students/{student_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete student",
    description=(
        "Hard-delete a student together with any unpaid invoices. Rejected while the student "
        "still has enrollments or has payments on record."
    ),
    responses={404: {"description": "Student not found"}, 409: {"description": "Student has enrollments or payments"}},
)
def delete_student_endpoint(student_id: int, db: Session = Depends(get_db)):
    delete_student(db=db, student_id=student_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get(
    "/students/{student_id}/invoices",
    response_model=InvoiceListResponse,
    summary="List student invoices",
    description="Return every invoice of a student, newest first, optionally limited to one semester.",
    responses={404: {"description": "Student not found"}},
)
def get_student_invoices(student_id: int, semester_id: int | None = None, db: Session = Depends(get_db)):
    get_student(db=db, student_id=student_id)
    invoices = list_invoices_for_student(db=db, student_id=student_id, semester_id=semester_id)
    return {"items": [serialize_invoice_detail(invoice) for invoice in invoices]}


@router.post(
    "/students/{student_id}/invoices/sync",
    response_model=InvoiceDetailResponse | None,
    summary="Sync student invoice",
    description=(
        "Rebuild the student's invoice for the semester from current enrollments. "
        "Academies already covered by a paid or exonerated invoice are not billed again."
    ),
    responses={404: {"description": "Student not found"}},
)
def sync_student_invoice(student_id: int, semester_id: int | None = None, db: Session = Depends(get_db)):
    if semester_id is None:
        semester_id = get_active_semester(db=db).id
    invoice = sync_invoice_for_student(db=db, student_id=student_id, semester_id=semester_id)
    return serialize_invoice_detail(invoice) if invoice is not None else None
