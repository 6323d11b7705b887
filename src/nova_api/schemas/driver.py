from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from nova_api.models.driver import DocumentType, Driver, DriverDocument
from nova_api.models.ride import VehicleClass


class DriverProfileUpdate(BaseModel):
    license_no: Optional[str] = Field(default=None, max_length=100, description="Driver license number.")
    vehicle_type: Optional[VehicleClass] = Field(default=None, description="Vehicle class served by this driver.")
    vehicle_model: Optional[str] = Field(default=None, max_length=200, description="Vehicle make/model.")
    vehicle_plate: Optional[str] = Field(default=None, max_length=20, description="Licence plate.")
    vehicle_color: Optional[str] = Field(default=None, max_length=50, description="Vehicle color.")
    vehicle_year: Optional[int] = Field(default=None, ge=1950, le=2100, description="Vehicle model year.")


class DriverAvailabilityUpdate(BaseModel):
    is_available: bool = Field(..., description="Whether driver is currently available for matching.")


class DriverLocationUpdate(BaseModel):
    lat: float = Field(..., ge=-90, le=90, description="Latitude in degrees.")
    lng: float = Field(..., ge=-180, le=180, description="Longitude in degrees.")


class DocumentUpload(BaseModel):
    type: DocumentType = Field(..., description="license, insurance, registration or photo.")
    url: str = Field(..., min_length=1, max_length=2000, description="Where the uploaded file is stored.")


class DocumentPublic(BaseModel):
    id: UUID
    type: DocumentType
    url: str
    verified: bool
    uploaded_at: datetime


class DriverPublic(BaseModel):
    id: UUID = Field(..., description="Driver user id (same as users.id).")
    license_no: Optional[str] = Field(default=None, description="License number (may be null).")
    vehicle_type: Optional[VehicleClass] = None
    vehicle_model: Optional[str] = None
    vehicle_plate: Optional[str] = None
    vehicle_color: Optional[str] = None
    vehicle_year: Optional[int] = None
    rating: float = Field(..., description="Mean of ratings received from passengers.")
    total_rides: int = Field(..., description="Completed rides.")
    earnings: float = Field(..., description="Earnings not yet cashed out.")
    is_available: bool = Field(..., description="Current availability status.")
    location_lat: Optional[float] = Field(default=None, description="Last known latitude.")
    location_lng: Optional[float] = Field(default=None, description="Last known longitude.")
    documents: List[DocumentPublic] = Field(default_factory=list)
    updated_at: datetime = Field(..., description="When driver record was last updated.")


class DriverEnvelope(BaseModel):
    success: bool = True
    driver: DriverPublic


class AvailabilityEnvelope(BaseModel):
    success: bool = True
    is_available: bool


class LocationEnvelope(BaseModel):
    success: bool = True
    location: DriverLocationUpdate


class Earnings(BaseModel):
    total: float
    total_rides: int
    rating: float


class EarningsEnvelope(BaseModel):
    success: bool = True
    earnings: Earnings


class DocumentsEnvelope(BaseModel):
    success: bool = True
    documents: List[DocumentPublic]


class CashOutRequest(BaseModel):
    amount: float = Field(..., gt=0, description="Amount to withdraw from accumulated earnings.")


class CashOutResponse(BaseModel):
    success: bool = True
    earnings: float
    message: str


def document_to_public(doc: DriverDocument) -> DocumentPublic:
    return DocumentPublic(
        id=doc.id,
        type=doc.type,
        url=doc.url,
        verified=bool(doc.verified),
        uploaded_at=doc.uploaded_at,
    )


def driver_to_public(d: Driver) -> DriverPublic:
    """Convert ORM Driver row to public schema."""
    return DriverPublic(
        id=d.id,
        license_no=d.license_no,
        vehicle_type=d.vehicle_type,
        vehicle_model=d.vehicle_model,
        vehicle_plate=d.vehicle_plate,
        vehicle_color=d.vehicle_color,
        vehicle_year=d.vehicle_year,
        rating=float(d.rating) if d.rating is not None else 5.0,
        total_rides=d.total_rides or 0,
        earnings=float(d.earnings or 0.0),
        is_available=bool(d.is_available),
        location_lat=d.location_lat,
        location_lng=d.location_lng,
        documents=[document_to_public(doc) for doc in d.documents],
        updated_at=d.updated_at,
    )
