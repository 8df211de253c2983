from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict


class StudentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    legacy_id: str | None = None
    first_name: str
    last_name: str
    email: str | None = None
    phone: str | None = None
    birth_date: date | None = None
    gender: str | None = None
    guardian_name: str | None = None
    guardian_phone: str | None = None
    t_shirt_size: str | None = None
    address: dict[str, Any] | None = None
    created_at: datetime
    updated_at: datetime
