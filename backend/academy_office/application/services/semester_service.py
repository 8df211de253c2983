from sqlalchemy import select
from sqlalchemy.orm import Session

from academy_office.application.errors import NotFoundError
from academy_office.config import settings
from academy_office.infrastructure.db.models import Semester


def get_semester(db: Session, *, semester_id: int) -> Semester:
    semester = db.get(Semester, semester_id)
    if semester is None:
        raise NotFoundError("Semester not found")
    return semester


def get_semester_by_name(db: Session, *, name: str) -> Semester | None:
    return db.execute(select(Semester).where(Semester.name == name)).scalar_one_or_none()


def get_active_semester(db: Session) -> Semester:
    semester = get_semester_by_name(db=db, name=settings.active_semester_name)
    if semester is None:
        raise NotFoundError("Active semester not found")
    return semester
