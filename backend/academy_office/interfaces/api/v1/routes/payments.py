from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from academy_office.application.services.payment_lock_service import payment_creation_lock, student_payment_lock
from academy_office.application.services.payment_service import (
    apply_payment,
    apply_payment_to_open_invoices,
    delete_payment,
    list_payments_for_invoice,
    list_payments_for_student,
    refund_payment,
    serialize_payment_response,
)
from academy_office.domain.money import to_minor
from academy_office.infrastructure.db.session import get_db
from academy_office.interfaces.api.v1.schemas.payment import (
    OpenInvoicesPaymentCreate,
    PaymentCreate,
    PaymentListResponse,
    PaymentResponse,
    RefundCreate,
)

router = APIRouter(tags=["payments"])


@router.post(
    "/invoices/{invoice_id}/payments",
    response_model=PaymentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Apply payment to invoice",
    description=(
        "Record a payment against one invoice and recompute its balance and status. "
        "Payment processing uses a short Redis lock to prevent duplicate submits."
    ),
    responses={
        400: {"description": "Payment validation error"},
        404: {"description": "Invoice not found"},
        409: {"description": "Amount exceeds balance or payment already in progress"},
    },
)
def create_invoice_payment(invoice_id: int, payload: PaymentCreate, db: Session = Depends(get_db)):
    with payment_creation_lock(invoice_id=invoice_id):
        payment = apply_payment(
            db=db,
            invoice_id=invoice_id,
            amount=to_minor(payload.amount),
            method=payload.method,
            notes=payload.notes,
            transaction_date=payload.transaction_date,
        )
    return serialize_payment_response(payment)


@router.get(
    "/invoices/{invoice_id}/payments",
    response_model=PaymentListResponse,
    summary="List invoice payments",
)
def get_invoice_payments(invoice_id: int, db: Session = Depends(get_db)):
    payments = list_payments_for_invoice(db=db, invoice_id=invoice_id)
    return {"items": [serialize_payment_response(item) for item in payments]}


@router.post(
    "/invoices/{invoice_id}/refunds",
    response_model=PaymentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Refund invoice payment",
    description="Record a negative payment with method `refund` and lower the amount paid.",
    responses={
        400: {"description": "Refund validation error"},
        404: {"description": "Invoice not found"},
        409: {"description": "Refund exceeds amount paid"},
    },
)
def create_invoice_refund(invoice_id: int, payload: RefundCreate, db: Session = Depends(get_db)):
    with payment_creation_lock(invoice_id=invoice_id):
        refund = refund_payment(
            db=db,
            invoice_id=invoice_id,
            amount=to_minor(payload.amount),
            notes=payload.notes,
            transaction_date=payload.transaction_date,
        )
    return serialize_payment_response(refund)


@router.post(
    "/students/{student_id}/payments",
    response_model=PaymentListResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Apply payment to all open invoices",
    description=(
        "Split one payment across the student's open invoices, oldest first, "
        "in proportion to each balance."
    ),
    responses={
        400: {"description": "Payment validation error"},
        404: {"description": "Student not found"},
        409: {"description": "Amount exceeds total debt or payment already in progress"},
    },
)
def create_student_payment(student_id: int, payload: OpenInvoicesPaymentCreate, db: Session = Depends(get_db)):
    with student_payment_lock(student_id=student_id):
        payments = apply_payment_to_open_invoices(
            db=db,
            student_id=student_id,
            amount=to_minor(payload.amount),
            method=payload.method,
            semester_id=payload.semester_id,
            notes=payload.notes,
            transaction_date=payload.transaction_date,
        )
    return {"items": [serialize_payment_response(payment) for payment in payments]}


@router.get(
    "/students/{student_id}/payments",
    response_model=PaymentListResponse,
    summary="List student payments",
    responses={404: {"description": "Student not found"}},
)
def get_student_payments(student_id: int, db: Session = Depends(get_db)):
    payments = list_payments_for_student(db=db, student_id=student_id)
    return {"items": [serialize_payment_response(item) for item in payments]}


@router.delete(
    "/payments/{payment_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete payment",
    description="Delete a payment and revert its effect on the invoice in one transaction.",
    responses={404: {"description": "Payment not found"}},
)
def delete_payment_endpoint(payment_id: int, db: Session = Depends(get_db)):
    delete_payment(db=db, payment_id=payment_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
