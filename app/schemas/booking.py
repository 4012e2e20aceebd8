from pydantic import BaseModel, Field
from typing import List, Literal, Optional

PaymentMethod = Literal["CASH", "BANK_TRANSFER", "CREDIT_CARD", "E_WALLET", "VNPAY"]

class BookingCreate(BaseModel):
    tripId: str
    seatNumbers: List[str] = Field(min_length=1)
    passengerName: str = Field(min_length=1)
    passengerPhone: str = Field(min_length=1)
    passengerEmail: str = ""  # plain str to allow .local and other dev domains
    paymentMethod: PaymentMethod
    voucherCode: Optional[str] = None
    notes: Optional[str] = None
    # Shown by the client; the server always prices seats itself
    totalPrice: Optional[int] = None

class BookingCancel(BaseModel):
    bookingCode: Optional[str] = None  # required for guest bookings
    reason: Optional[str] = None
