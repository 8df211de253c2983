import pytest

from academy_office.domain.payment_methods import COLLECTION_METHODS, PaymentMethod, parse_payment_method


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("Cash", PaymentMethod.cash),
        (" zelle ", PaymentMethod.zelle),
        ("credit card", PaymentMethod.card),
        ("transfer", PaymentMethod.zelle),
        ("none", None),
        ("", None),
        (None, None),
        ("bitcoin", None),
    ],
)
def test_parse_payment_method(raw, expected):
    assert parse_payment_method(raw) == expected


def test_refund_and_discount_are_not_collection_methods():
    assert PaymentMethod.refund not in COLLECTION_METHODS
    assert PaymentMethod.discount not in COLLECTION_METHODS
