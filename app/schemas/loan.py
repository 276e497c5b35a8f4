from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class PaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class LoanApplicationStatus(str, Enum):
    SUBMITTED = "submitted"
    APPROVED = "approved"
    REJECTED = "rejected"


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class LoanApplicationSubmit(CamelModel):
    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)
    email: str = Field(min_length=1)
    phone: str = Field(min_length=1)
    amount: int
    purpose: str = Field(min_length=1)

    @field_validator("first_name", "last_name", "email", "phone", "purpose", mode="before")
    @classmethod
    def _strip(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip()
        return value


class LoanApplicationSubmitResponse(CamelModel):
    message: str
    application_id: str


class LoanApplicationDTO(CamelModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
        use_enum_values=True,
    )

    id: str
    first_name: str
    last_name: str
    email: str
    phone: str
    amount: int
    purpose: str
    payment_status: PaymentStatus
    payment_reference: str | None = None
    status: LoanApplicationStatus
    created_at: datetime | None = None
    updated_at: datetime | None = None


class InitiatePaymentRequest(CamelModel):
    application_id: str = Field(min_length=1)
    phone_number: str = Field(min_length=1)


class InitiatePaymentData(CamelModel):
    checkout_request_id: str
    merchant_request_id: str | None = None
    amount: int
    phone_number: str


class InitiatePaymentResponse(CamelModel):
    message: str
    success: bool = True
    data: InitiatePaymentData
