from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from academy_office.domain.invoice_lines import LineType
from academy_office.domain.invoice_status import InvoiceStatus


class InvoiceStudentRef(BaseModel):
    id: int
    first_name: str
    last_name: str


class InvoiceItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    description: str
    academy_name: str | None = None
    level_name: str | None = None
    unit_price: Decimal
    quantity: int
    amount: Decimal
    type: LineType


class InvoiceSummaryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    legacy_id: str | None = None
    student_id: int
    semester_id: int
    subtotal: Decimal
    discount_amount: Decimal
    discount_note: str | None = None
    total: Decimal
    paid_amount: Decimal
    balance: Decimal
    status: InvoiceStatus
    is_exonerated: bool
    created_at: datetime
    updated_at: datetime
    student: InvoiceStudentRef


class InvoiceDetailResponse(InvoiceSummaryResponse):
    items: list[InvoiceItemResponse] = Field(default_factory=list)


class InvoiceListResponse(BaseModel):
    items: list[InvoiceDetailResponse]


class DiscountCodePayload(BaseModel):
    code: str = Field(min_length=1)


class OutstandingSummaryResponse(BaseModel):
    semester_id: int
    students_count: int
    students_with_balance: int
    billed_total: Decimal
    collected_total: Decimal
    outstanding_total: Decimal
