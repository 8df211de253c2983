from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from academy_office.application.services.invoice_service import serialize_invoice_detail
from academy_office.application.services.registration_service import register_student
from academy_office.application.services.semester_service import get_active_semester
from academy_office.infrastructure.db.session import get_db
from academy_office.interfaces.api.v1.schemas.registration import RegistrationCreate, RegistrationResponse

router = APIRouter(tags=["registrations"])


@router.post(
    "/registrations",
    response_model=RegistrationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register student",
    description=(
        "Create or match a student by email, replace their enrollments for the semester "
        "(defaults to the active semester) and create or update the semester invoice."
    ),
    responses={400: {"description": "Registration validation error"}, 404: {"description": "Semester not found"}},
)
def create_registration(
    payload: RegistrationCreate,
    semester_id: int | None = None,
    db: Session = Depends(get_db),
):
    if semester_id is None:
        semester_id = get_active_semester(db=db).id
    result = register_student(db=db, semester_id=semester_id, payload=payload)
    return {
        "student": result.student,
        "enrollments": result.enrollments,
        "skipped_academies": result.skipped_academies,
        "invoice": serialize_invoice_detail(result.invoice) if result.invoice is not None else None,
    }
