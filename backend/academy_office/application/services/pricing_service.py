from sqlalchemy import select
from sqlalchemy.orm import Session

from academy_office.domain.pricing import PricingResolver
from academy_office.infrastructure.db.models import Academy


def list_active_academies(db: Session, *, semester_id: int) -> list[Academy]:
    return list(
        db.execute(
            select(Academy)
            .where(Academy.semester_id == semester_id, Academy.is_active.is_(True))
            .order_by(Academy.display_order, Academy.id)
        )
        .scalars()
        .all()
    )


def load_pricing_resolver(db: Session, *, semester_id: int) -> PricingResolver:
    return PricingResolver.from_academies(list_active_academies(db=db, semester_id=semester_id))
