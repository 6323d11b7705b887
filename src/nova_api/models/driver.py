import enum
import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Enum, Float, ForeignKey, Integer, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from nova_api.models.base import Base, utcnow
from nova_api.models.ride import VehicleClass


class DocumentType(str, enum.Enum):
    license = "license"
    insurance = "insurance"
    registration = "registration"
    photo = "photo"


class Driver(Base):
    """
    ORM model for the 'drivers' table.

    Notes:
    - Primary key equals the corresponding users.id (1:1 relationship).
    - rating, total_rides and earnings are aggregates maintained by the ride
      lifecycle; is_available is also cleared/restored there.
    """

    __tablename__ = "drivers"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True,
    )

    license_no: Mapped[str | None] = mapped_column(Text, nullable=True)
    vehicle_type: Mapped[VehicleClass | None] = mapped_column(
        Enum(VehicleClass, name="vehicle_class"), nullable=True, index=True
    )
    vehicle_model: Mapped[str | None] = mapped_column(Text, nullable=True)
    vehicle_plate: Mapped[str | None] = mapped_column(Text, nullable=True)
    vehicle_color: Mapped[str | None] = mapped_column(Text, nullable=True)
    vehicle_year: Mapped[int | None] = mapped_column(Integer, nullable=True)

    rating: Mapped[float] = mapped_column(Float, nullable=False, default=5.0)
    total_rides: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    earnings: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    is_available: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, index=True)

    location_lat: Mapped[float | None] = mapped_column(Float, nullable=True)
    location_lng: Mapped[float | None] = mapped_column(Float, nullable=True)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )

    user = relationship("User", back_populates="driver_profile", lazy="joined")
    documents = relationship(
        "DriverDocument",
        back_populates="driver",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="DriverDocument.uploaded_at",
    )


class DriverDocument(Base):
    __tablename__ = "driver_documents"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    driver_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("drivers.id", ondelete="CASCADE"), nullable=False, index=True
    )
    type: Mapped[DocumentType] = mapped_column(Enum(DocumentType, name="document_type"), nullable=False)
    url: Mapped[str] = mapped_column(Text, nullable=False)
    verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    uploaded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    driver = relationship("Driver", back_populates="documents")
