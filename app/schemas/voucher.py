from pydantic import BaseModel, Field
from typing import List

class VoucherValidateRequest(BaseModel):
    code: str = Field(min_length=1)
    tripId: str
    seatNumbers: List[str] = Field(min_length=1)
