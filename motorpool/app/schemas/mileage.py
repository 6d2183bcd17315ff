"""
Mileage schemas.

Readings are left as sent (number or string) and parsed by the booking
lifecycle, so a bad reading is a 400 rather than a 422.
"""

from pydantic import BaseModel
from pydantic.alias_generators import to_camel
from typing import Optional, Union


class StartMileageRequest(BaseModel):
    booking_id: Optional[int] = None
    start_mileage: Optional[Union[int, str]] = None
    
    class Config:
        alias_generator = to_camel
        populate_by_name = True


class FinishMileageRequest(BaseModel):
    booking_id: Optional[int] = None
    start_mileage: Optional[Union[int, str]] = None
    end_mileage: Optional[Union[int, str]] = None
    
    class Config:
        alias_generator = to_camel
        populate_by_name = True
