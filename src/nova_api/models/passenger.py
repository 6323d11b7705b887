import uuid

from sqlalchemy import Float, ForeignKey, Integer, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from nova_api.models.base import Base


class Passenger(Base):
    """ORM model for the 'passengers' table (PK equals users.id)."""

    __tablename__ = "passengers"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        primary_key=True,
    )
    rating: Mapped[float] = mapped_column(Float, nullable=False, default=5.0)
    total_rides: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    user = relationship("User", back_populates="passenger_profile", lazy="joined")
