from datetime import date
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from academy_office.application.services.payment_service import apply_payment
from academy_office.application.services.registration_service import register_student
from academy_office.domain.pricing import ACADEMY_DEFAULT_PRICES, normalize_name
from academy_office.infrastructure.db.models import Academy, Level, Semester
from academy_office.infrastructure.db.session import SessionLocal
from academy_office.interfaces.api.v1.schemas.registration import PeriodSelectionPayload, RegistrationCreate

SEMESTER_NAME = "Spring 2026"

ACADEMY_CATALOG: list[tuple[str, list[str]]] = [
    ("Art", ["Beginner", "Intermediate"]),
    ("English", ["Level 1", "Level 2", "Level 3"]),
    ("Kids Academy", []),
    ("Korean Language", ["Alphabet", "Beginner", "Intermediate", "Conversation"]),
    ("Piano", ["Beginner", "Advanced"]),
    ("Pickleball", []),
    ("Soccer", []),
    ("Taekwondo", []),
    ("Korean Cooking", []),
    ("DIY", []),
    ("Senior", []),
    ("Stretch and Strengthen", []),
]


def create_semester_if_missing(db: Session, name: str, start_date: date, end_date: date) -> Semester:
    semester = db.execute(select(Semester).where(Semester.name == name)).scalar_one_or_none()
    if semester is not None:
        return semester
    semester = Semester(name=name, start_date=start_date, end_date=end_date, is_active=True)
    db.add(semester)
    db.flush()
    return semester


def create_academy_if_missing(db: Session, *, semester_id: int, name: str, display_order: int) -> Academy:
    normalized = normalize_name(name)
    academy = db.execute(
        select(Academy).where(Academy.semester_id == semester_id, Academy.normalized_name == normalized)
    ).scalar_one_or_none()
    if academy is not None:
        return academy
    price_cents = ACADEMY_DEFAULT_PRICES.get(normalized, ACADEMY_DEFAULT_PRICES["default"])
    academy = Academy(
        semester_id=semester_id,
        name=name,
        normalized_name=normalized,
        price=Decimal(price_cents) / 100,
        display_order=display_order,
        is_active=True,
    )
    db.add(academy)
    db.flush()
    return academy


def create_level_if_missing(db: Session, *, academy_id: int, name: str, display_order: int) -> Level:
    normalized = normalize_name(name)
    level = db.execute(
        select(Level).where(Level.academy_id == academy_id, Level.normalized_name == normalized)
    ).scalar_one_or_none()
    if level is not None:
        return level
    level = Level(academy_id=academy_id, name=name, normalized_name=normalized, display_order=display_order)
    db.add(level)
    db.flush()
    return level


def seed_catalog(db: Session, semester: Semester) -> None:
    for academy_order, (academy_name, level_names) in enumerate(ACADEMY_CATALOG):
        academy = create_academy_if_missing(
            db=db, semester_id=semester.id, name=academy_name, display_order=academy_order
        )
        for level_order, level_name in enumerate(level_names):
            create_level_if_missing(db=db, academy_id=academy.id, name=level_name, display_order=level_order)


def seed_sample_registrations(db: Session, semester: Semester) -> None:
    paid_in_full = register_student(
        db=db,
        semester_id=semester.id,
        payload=RegistrationCreate(
            first_name="Alice",
            last_name="Kim",
            email="alice.kim@example.com",
            first_period=PeriodSelectionPayload(academy="Art", level="Beginner"),
            second_period=PeriodSelectionPayload(academy="Korean Language", level="Conversation"),
            lunch_semester=True,
        ),
    )
    if paid_in_full.invoice is not None and paid_in_full.invoice.paid_amount == 0:
        apply_payment(
            db=db,
            invoice_id=paid_in_full.invoice.id,
            amount=int(paid_in_full.invoice.total * 100),
            method="zelle",
            notes="Seeded full payment",
        )

    partially_paid = register_student(
        db=db,
        semester_id=semester.id,
        payload=RegistrationCreate(
            first_name="Bob",
            last_name="Lee",
            email="bob.lee@example.com",
            selected_academies=[
                PeriodSelectionPayload(academy="Piano", level="Beginner"),
                PeriodSelectionPayload(academy="Soccer"),
            ],
            lunch_single_count=3,
        ),
    )
    if partially_paid.invoice is not None and partially_paid.invoice.paid_amount == 0:
        apply_payment(db=db, invoice_id=partially_paid.invoice.id, amount=5000, method="cash")

    register_student(
        db=db,
        semester_id=semester.id,
        payload=RegistrationCreate(
            first_name="Carol",
            last_name="Park",
            email="carol.park@example.com",
            first_period=PeriodSelectionPayload(academy="Taekwondo"),
            discount_code="TEACHER100",
        ),
    )


def main() -> None:
    db = SessionLocal()
    try:
        semester = create_semester_if_missing(
            db=db,
            name=SEMESTER_NAME,
            start_date=date(2026, 2, 1),
            end_date=date(2026, 5, 30),
        )
        seed_catalog(db=db, semester=semester)
        db.commit()
        seed_sample_registrations(db=db, semester=semester)
    finally:
        db.close()


if __name__ == "__main__":
    main()
