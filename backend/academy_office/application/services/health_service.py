from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from academy_office.application.errors import NotFoundError
from academy_office.application.services.semester_service import get_active_semester
from academy_office.config import settings
from academy_office.infrastructure.cache.redis_client import redis_is_available
from academy_office.infrastructure.logging import get_logger

logger = get_logger(__name__)


def _active_semester_name(db: Session) -> str | None:
    try:
        return get_active_semester(db=db).name
    except NotFoundError:
        return None


def get_service_status(db: Session, redis_client) -> dict:
    try:
        db.execute(text("SELECT 1"))
        db_connected = True
    except SQLAlchemyError as exc:
        logger.warning("health_database_unreachable", error=str(exc))
        db.rollback()
        db_connected = False

    return {
        "message": f"{settings.app_name} is running",
        "version": settings.app_version,
        "db_connected": db_connected,
        "redis_connected": redis_is_available(redis_client),
        "active_semester": _active_semester_name(db) if db_connected else None,
    }
