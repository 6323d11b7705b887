from __future__ import annotations

import enum
import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Enum, Float, ForeignKey, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from nova_api.models.base import Base, JSONType, utcnow

DEFAULT_AVATAR_URL = "https://via.placeholder.com/150"


def default_notification_settings() -> dict:
    return {
        "push_notifications": True,
        "email_updates": True,
        "sms_alerts": True,
        "location_sharing": False,
    }


def default_security_settings() -> dict:
    return {"two_factor_enabled": False, "biometric_enabled": False}


class UserRole(str, enum.Enum):
    """User roles supported by the application."""
    passenger = "passenger"
    driver = "driver"
    admin = "admin"


class PaymentMethodType(str, enum.Enum):
    card = "card"
    cash = "cash"
    wallet = "wallet"


class User(Base):
    """
    ORM model for the 'users' table.

    Role-specific data lives in the 1:1 'drivers' and 'passengers' tables;
    shared preferences are JSON columns.
    """
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    email: Mapped[str] = mapped_column(Text, unique=True, nullable=False, index=True)
    # Nullable for Google sign-ins until the user adds a number; unique otherwise.
    phone: Mapped[str | None] = mapped_column(Text, unique=True, nullable=True, index=True)
    password_hash: Mapped[str] = mapped_column(Text, nullable=False)
    role: Mapped[UserRole] = mapped_column(Enum(UserRole, name="user_role"), nullable=False)
    avatar: Mapped[str] = mapped_column(Text, nullable=False, default=DEFAULT_AVATAR_URL)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    wallet_balance: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    notification_settings: Mapped[dict] = mapped_column(
        JSONType, nullable=False, default=default_notification_settings
    )
    security_settings: Mapped[dict] = mapped_column(
        JSONType, nullable=False, default=default_security_settings
    )

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    driver_profile = relationship(
        "Driver", back_populates="user", uselist=False, cascade="all, delete-orphan"
    )
    passenger_profile = relationship(
        "Passenger", back_populates="user", uselist=False, cascade="all, delete-orphan"
    )
    trusted_contacts = relationship(
        "TrustedContact",
        back_populates="user",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="TrustedContact.created_at",
    )
    payment_methods = relationship(
        "PaymentMethod",
        back_populates="user",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="PaymentMethod.created_at",
    )


class TrustedContact(Base):
    """People notified by safety features (SOS, ride sharing)."""
    __tablename__ = "trusted_contacts"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    phone: Mapped[str] = mapped_column(Text, nullable=False)
    relationship_label: Mapped[str | None] = mapped_column("relationship", Text, nullable=True)
    is_guardian: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    user = relationship("User", back_populates="trusted_contacts")


class PaymentMethod(Base):
    __tablename__ = "payment_methods"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    type: Mapped[PaymentMethodType] = mapped_column(
        Enum(PaymentMethodType, name="payment_method_type"), nullable=False
    )
    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    card_last4: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    user = relationship("User", back_populates="payment_methods")
