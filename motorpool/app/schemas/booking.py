"""
Booking schemas.

Request bodies accept camelCase or snake_case keys. Date-times are local
civil time: any timezone offset a client sends is dropped, not converted.
"""

from pydantic import BaseModel, Field, field_validator
from pydantic.alias_generators import to_camel
from typing import List, Optional
from datetime import datetime

from motorpool.app.models.booking import Booking
from motorpool.app.models.dispatch_enums import BookingStatus
from motorpool.app.services.off_hours import is_off_hours


class BookingCreate(BaseModel):
    """Schema for a new booking request."""
    purpose: str = Field(..., min_length=1, max_length=2000)
    destination: Optional[str] = Field(None, max_length=255)
    start_at: datetime
    end_at: Optional[datetime] = None
    vehicle_id: Optional[int] = None
    
    @field_validator("start_at", "end_at")
    @classmethod
    def drop_timezone(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is not None and value.tzinfo is not None:
            return value.replace(tzinfo=None)
        return value
    
    class Config:
        alias_generator = to_camel
        populate_by_name = True


class RetroBookingCreate(BookingCreate):
    """Backdated booking entered by an admin for a requester."""
    requester_id: int


class AssignRequest(BaseModel):
    """Assign a driver and vehicle. Without driver_id the queue head is used."""
    driver_id: Optional[int] = None
    vehicle_id: Optional[int] = None
    
    class Config:
        alias_generator = to_camel
        populate_by_name = True


class BookingResponse(BaseModel):
    """Schema for booking response."""
    id: int
    request_code: str
    requester_id: int
    status: BookingStatus
    vehicle_id: Optional[int]
    driver_id: Optional[int]
    driver_attempts: int
    purpose: str
    destination: Optional[str]
    start_at: datetime
    end_at: Optional[datetime]
    start_mileage: Optional[int]
    end_mileage: Optional[int]
    distance: Optional[int]
    assigned_at: Optional[datetime]
    driver_accepted_at: Optional[datetime]
    completed_at: Optional[datetime]
    off_hours: bool = False
    
    class Config:
        from_attributes = True


class AssignResponse(BaseModel):
    """Assignment result. The token itself only travels in the driver's message."""
    booking: BookingResponse
    driver_id: int
    token_expires_at: datetime
    notification_queued: bool


def booking_response(booking: Booking) -> BookingResponse:
    response = BookingResponse.model_validate(booking)
    response.off_hours = is_off_hours(booking.start_at)
    return response


def booking_list(bookings: List[Booking]) -> List[BookingResponse]:
    return [booking_response(b) for b in bookings]
