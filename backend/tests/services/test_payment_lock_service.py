import pytest

from academy_office.application.errors import ConflictError
from academy_office.application.services.payment_lock_service import (
    payment_creation_lock,
    payment_lock_key,
    student_payment_lock,
    student_payment_lock_key,
)


def test_payment_lock_keys_are_scoped():
    assert payment_lock_key(invoice_id=12) == "payment_lock:12"
    assert student_payment_lock_key(student_id=3) == "payment_lock:student:3"


def test_payment_creation_lock_rejects_concurrent_holder(fake_redis):
    """
    Validate the invoice payment lock.

    1. Acquire the lock for one invoice.
    2. Try to acquire it again while held and validate ConflictError.
    3. Validate another invoice can be locked meanwhile.
    4. Validate the key is released on exit.
    """
    with payment_creation_lock(invoice_id=1):
        assert payment_lock_key(invoice_id=1) in fake_redis.store
        with pytest.raises(ConflictError):
            with payment_creation_lock(invoice_id=1):
                pass
        with payment_creation_lock(invoice_id=2):
            pass
    assert fake_redis.store == {}


def test_student_payment_lock_releases_after_error(fake_redis):
    with pytest.raises(RuntimeError):
        with student_payment_lock(student_id=5):
            raise RuntimeError("payment failed")
    assert student_payment_lock_key(student_id=5) not in fake_redis.store
