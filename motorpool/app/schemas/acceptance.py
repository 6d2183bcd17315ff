"""
Acceptance link schemas.
"""

from pydantic import BaseModel

from motorpool.app.schemas.booking import BookingResponse


class AcceptanceResponse(BaseModel):
    message: str
    booking: BookingResponse
