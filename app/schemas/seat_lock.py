from pydantic import BaseModel, Field
from typing import List, Optional

class SeatLockRequest(BaseModel):
    seatNumbers: List[str] = Field(min_length=1)
    ttlSeconds: Optional[int] = Field(default=None, ge=30, le=3600)

class SeatLockRelease(BaseModel):
    seatNumbers: List[str] = Field(min_length=1)
