from celery import Celery

from academy_office.config import settings

celery_app = Celery(
    "academy_office",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=[
        "academy_office.infrastructure.tasks.receipt_tasks",
    ],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
)
