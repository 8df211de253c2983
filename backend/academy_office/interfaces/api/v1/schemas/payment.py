from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from academy_office.domain.invoice_status import InvoiceStatus


class PaymentCreate(BaseModel):
    amount: Decimal = Field(gt=0)
    method: str
    notes: str | None = None
    transaction_date: datetime | None = None


class OpenInvoicesPaymentCreate(PaymentCreate):
    semester_id: int | None = None


class RefundCreate(BaseModel):
    amount: Decimal = Field(gt=0)
    notes: str | None = None
    transaction_date: datetime | None = None


class PaymentStudentRef(BaseModel):
    id: int
    first_name: str
    last_name: str


class PaymentInvoiceRef(BaseModel):
    id: int
    status: InvoiceStatus
    balance: Decimal


class PaymentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    legacy_id: str | None = None
    student_id: int
    invoice_id: int | None = None
    amount: Decimal
    method: str
    notes: str | None = None
    transaction_date: datetime
    created_at: datetime
    updated_at: datetime
    student: PaymentStudentRef
    invoice: PaymentInvoiceRef | None = None


class PaymentListResponse(BaseModel):
    items: list[PaymentResponse]
