"""
Driver registry and queue schemas.
"""

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel
from typing import List, Literal, Optional

from motorpool.app.models.dispatch_enums import DriverStatus


class DriverResponse(BaseModel):
    """Schema for driver response."""
    id: int
    full_name: str
    phone: Optional[str]
    external_identity: Optional[str]
    active: bool
    status: DriverStatus
    queue_order: int
    
    class Config:
        from_attributes = True


class DriverCreate(BaseModel):
    full_name: str = Field(..., min_length=1, max_length=255)
    phone: Optional[str] = Field(None, max_length=50)
    external_identity: Optional[str] = Field(None, max_length=100)
    
    class Config:
        alias_generator = to_camel
        populate_by_name = True


class IdentityUpdate(BaseModel):
    external_identity: str = Field(..., min_length=1, max_length=100)
    
    class Config:
        alias_generator = to_camel
        populate_by_name = True


class ActiveUpdate(BaseModel):
    active: bool


class StatusUpdate(BaseModel):
    status: DriverStatus


class NextDriverResponse(BaseModel):
    """Queue head; driver is null when nobody is available."""
    driver: Optional[DriverResponse]


class AdvanceRequest(BaseModel):
    driver_id: int
    
    class Config:
        alias_generator = to_camel
        populate_by_name = True


class QueueResponse(BaseModel):
    drivers: List[DriverResponse]
    changed: Optional[bool] = None


class SeedRequest(BaseModel):
    """Versioned priority seed. A version is applied at most once."""
    version: str = Field(..., min_length=1, max_length=100)
    names: List[str] = Field(..., min_length=1)
    match: Literal["substring", "prefix", "exact"] = "substring"


class SeedResponse(BaseModel):
    version: str
    applied: bool
    drivers: List[DriverResponse]


class CountResponse(BaseModel):
    count: int
