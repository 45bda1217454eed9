"""
Pydantic schemas for order request validation.

Field names mirror the JSON sent by the checkout page (camelCase aliases).
"""
from datetime import datetime
from typing import List, Literal, Optional, Union

from pydantic import (
    AliasChoices, BaseModel, ConfigDict, EmailStr, Field,
    field_validator, model_validator,
)

from onam_api.models.order import ORDER_STATUSES

UPI_FIELDS_REQUIRED = 'UPI ID and Transaction ID are required for UPI payment'
INVALID_STATUS = f"Invalid status. Must be one of: {', '.join(ORDER_STATUSES)}"


def _blank_to_none(value):
    if isinstance(value, str) and not value.strip():
        return None
    return value


class _InputModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)


class StudentInfoIn(_InputModel):
    """Student details captured at checkout."""
    name: str = Field(..., min_length=1, max_length=100)
    student_id: str = Field(..., alias='studentId', min_length=1, max_length=50)
    email: EmailStr
    phone: str = Field(..., pattern=r'^\d{10}$')
    course: str = Field(..., min_length=1, max_length=50)
    department: str = Field(..., min_length=1, max_length=50)
    year: Literal['1st Year', '2nd Year', '3rd Year', '4th Year', 'Post Graduate']
    hostel: Optional[str] = Field(None, max_length=50)

    @field_validator('email')
    @classmethod
    def normalize_email(cls, value):
        value = value.lower()
        if len(value) > 100:
            raise ValueError('Email must not exceed 100 characters')
        return value

    @field_validator('phone', mode='before')
    @classmethod
    def phone_as_string(cls, value):
        if isinstance(value, int):
            return str(value)
        return value

    @field_validator('hostel', mode='before')
    @classmethod
    def empty_hostel(cls, value):
        return _blank_to_none(value)


class OrderItemIn(_InputModel):
    """One cart line."""
    id: str = Field(..., min_length=1, max_length=50)
    name: str = Field(..., min_length=1, max_length=100)
    quantity: int = Field(..., ge=1, le=99)
    price: float = Field(..., ge=0, le=100000, validation_alias=AliasChoices('price', 'unitPrice'))
    total: Optional[float] = Field(None, ge=0, validation_alias=AliasChoices('total', 'lineTotal'))

    @field_validator('id', mode='before')
    @classmethod
    def id_as_string(cls, value):
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value

    @model_validator(mode='after')
    def default_line_total(self):
        if self.total is None:
            self.total = round(self.quantity * self.price, 2)
        return self


class PaymentIn(_InputModel):
    method: Literal['cash', 'upi']
    upi_id: Optional[str] = Field(None, alias='upiId', max_length=50)
    transaction_id: Optional[str] = Field(None, alias='transactionId', max_length=100)

    @field_validator('upi_id', 'transaction_id', mode='before')
    @classmethod
    def empty_reference(cls, value):
        return _blank_to_none(value)

    @model_validator(mode='after')
    def upi_reference_required(self):
        if self.method == 'upi' and not (self.upi_id and self.transaction_id):
            raise ValueError(UPI_FIELDS_REQUIRED)
        return self


class OrderCreate(_InputModel):
    """Body of POST /api/orders."""
    student_info: StudentInfoIn = Field(..., alias='studentInfo')
    order_items: List[OrderItemIn] = Field(..., alias='orderItems', min_length=1, max_length=50)
    payment: PaymentIn
    total_amount: float = Field(..., alias='totalAmount', ge=0, le=1000000)
    notes: Optional[str] = Field(None, max_length=500)
    order_date: Optional[datetime] = Field(None, alias='orderDate')

    @field_validator('notes', mode='before')
    @classmethod
    def empty_notes(cls, value):
        return _blank_to_none(value)

    @property
    def items_total(self):
        return round(sum(item.total for item in self.order_items), 2)


class OrderStatusUpdate(_InputModel):
    """Body of PATCH /api/orders/<id>/status."""
    status: str

    @field_validator('status', mode='before')
    @classmethod
    def known_status(cls, value: Union[str, None]):
        if not isinstance(value, str) or value.strip() not in ORDER_STATUSES:
            raise ValueError(INVALID_STATUS)
        return value.strip()
