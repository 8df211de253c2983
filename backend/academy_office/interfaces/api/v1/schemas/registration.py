from datetime import date
from typing import Any

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from academy_office.domain.enrollment_selection import ListSelection, PeriodSlot, Selection, TwoSlotSelection
from academy_office.domain.record_status import EnrollmentStatus
from academy_office.interfaces.api.v1.schemas.invoice import InvoiceDetailResponse
from academy_office.interfaces.api.v1.schemas.student import StudentResponse


class PeriodSelectionPayload(BaseModel):
    academy: str
    level: str | None = None

    def to_slot(self) -> PeriodSlot:
        return PeriodSlot(academy=self.academy, level=self.level)


class RegistrationCreate(BaseModel):
    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)
    email: EmailStr | None = None
    phone: str | None = None
    birth_date: date | None = None
    gender: str | None = None
    guardian_name: str | None = None
    guardian_phone: str | None = None
    t_shirt_size: str | None = None
    address: dict[str, Any] | None = None

    first_period: PeriodSelectionPayload | None = None
    second_period: PeriodSelectionPayload | None = None
    selected_academies: list[PeriodSelectionPayload] | None = None

    lunch_semester: bool = False
    lunch_single_count: int = Field(default=0, ge=0)
    discount_code: str | None = None

    def to_selection(self) -> Selection:
        if self.selected_academies is not None:
            return ListSelection(selected_academies=tuple(item.to_slot() for item in self.selected_academies))
        return TwoSlotSelection(
            first_period=self.first_period.to_slot() if self.first_period else None,
            second_period=self.second_period.to_slot() if self.second_period else None,
        )


class EnrollmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    academy_id: int
    level_id: int | None = None
    semester_id: int
    status: EnrollmentStatus


class RegistrationResponse(BaseModel):
    student: StudentResponse
    enrollments: list[EnrollmentResponse]
    skipped_academies: list[str] = Field(default_factory=list)
    invoice: InvoiceDetailResponse | None = None
