from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from academy_office.application.services.health_service import get_service_status
from academy_office.infrastructure.cache.redis_client import get_redis_client
from academy_office.infrastructure.db.session import get_db

router = APIRouter(tags=["health"])


@router.get("/ping")
def ping(db: Session = Depends(get_db)):
    """Report database and Redis reachability plus the active semester."""
    return get_service_status(db=db, redis_client=get_redis_client())
