from pydantic import BaseModel, Field, model_validator
from typing import Optional

from app.schemas.booking import PaymentMethod


class ProcessPaymentRequest(BaseModel):
    bookingId: Optional[str] = None
    paymentId: Optional[str] = None
    amount: Optional[int] = Field(default=None, ge=0)
    paymentMethod: Optional[PaymentMethod] = None

    @model_validator(mode="after")
    def _needs_target(self):
        if not self.bookingId and not self.paymentId:
            raise ValueError("bookingId or paymentId is required")
        return self


class VNPayCreateRequest(BaseModel):
    bookingId: str
    bankCode: Optional[str] = None
