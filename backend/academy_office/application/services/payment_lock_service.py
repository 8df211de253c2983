from contextlib import contextmanager
from collections.abc import Iterator

from academy_office.application.errors import ConflictError
from academy_office.config import settings
from academy_office.infrastructure.cache.cache_service import acquire_lock, release_lock


def payment_lock_key(*, invoice_id: int) -> str:
    return f"payment_lock:{invoice_id}"


def student_payment_lock_key(*, student_id: int) -> str:
    return f"payment_lock:student:{student_id}"


@contextmanager
def _held_lock(lock_key: str, message: str) -> Iterator[None]:
    lock_token = acquire_lock(lock_key, settings.payment_lock_ttl_seconds)
    if lock_token is None:
        raise ConflictError(message)
    try:
        yield
    finally:
        release_lock(lock_key, lock_token)


@contextmanager
def payment_creation_lock(*, invoice_id: int) -> Iterator[None]:
    with _held_lock(payment_lock_key(invoice_id=invoice_id), "A payment is already being processed for this invoice"):
        yield


@contextmanager
def student_payment_lock(*, student_id: int) -> Iterator[None]:
    with _held_lock(
        student_payment_lock_key(student_id=student_id),
        "A payment is already being processed for this student",
    ):
        yield
