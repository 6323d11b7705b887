from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field


class SosRequest(BaseModel):
    lat: Optional[float] = Field(default=None, ge=-90, le=90, description="Where the alert was raised.")
    lng: Optional[float] = Field(default=None, ge=-180, le=180)
    note: Optional[str] = Field(default=None, max_length=500)


class SosResponse(BaseModel):
    success: bool = True
    message: str
    trusted_contacts_notified: int = Field(..., description="Trusted contacts on file for the caller.")
    ride_id: Optional[UUID] = Field(default=None, description="Active ride at the time of the alert, if any.")
