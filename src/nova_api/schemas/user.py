from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field

from nova_api.models.user import PaymentMethod, PaymentMethodType, TrustedContact, User
from nova_api.schemas.driver import DriverPublic, driver_to_public


class PassengerPublic(BaseModel):
    rating: float
    total_rides: int


class NotificationSettings(BaseModel):
    push_notifications: Optional[bool] = None
    email_updates: Optional[bool] = None
    sms_alerts: Optional[bool] = None
    location_sharing: Optional[bool] = None


class SecuritySettings(BaseModel):
    two_factor_enabled: Optional[bool] = None
    biometric_enabled: Optional[bool] = None


class UserPublic(BaseModel):
    id: UUID = Field(..., description="User id")
    name: str = Field(..., description="Full name")
    email: str = Field(..., description="Email address")
    phone: Optional[str] = Field(default=None, description="Phone number")
    role: str = Field(..., description="Role: passenger, driver or admin")
    avatar: str = Field(..., description="Avatar URL")
    is_active: bool
    is_verified: bool
    wallet_balance: float
    notification_settings: dict
    security_settings: dict
    driver_details: Optional[DriverPublic] = None
    passenger_details: Optional[PassengerPublic] = None
    created_at: datetime = Field(..., description="Account creation timestamp")


class UserEnvelope(BaseModel):
    success: bool = True
    user: UserPublic


class ProfileUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(default=None, min_length=5, max_length=30)
    avatar: Optional[str] = Field(default=None, max_length=2000)


class PasswordUpdate(BaseModel):
    current_password: str = Field(..., min_length=1, max_length=128)
    new_password: str = Field(..., min_length=6, max_length=128)


class SettingsUpdate(BaseModel):
    notification_settings: Optional[NotificationSettings] = None
    security_settings: Optional[SecuritySettings] = None


class DeleteAccountRequest(BaseModel):
    password: str = Field(..., min_length=1, max_length=128, description="Current password, as confirmation.")


class TrustedContactIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    phone: str = Field(..., min_length=5, max_length=30)
    relationship: Optional[str] = Field(default=None, max_length=100)
    is_guardian: bool = False


class TrustedContactPublic(BaseModel):
    id: UUID
    name: str
    phone: str
    relationship: Optional[str] = None
    is_guardian: bool


class TrustedContactsEnvelope(BaseModel):
    success: bool = True
    trusted_contacts: List[TrustedContactPublic]


class PaymentMethodIn(BaseModel):
    type: PaymentMethodType
    is_default: bool = False
    card_last4: Optional[str] = Field(default=None, pattern=r"^\d{4}$")


class PaymentMethodPublic(BaseModel):
    id: UUID
    type: PaymentMethodType
    is_default: bool
    card_last4: Optional[str] = None


class PaymentMethodsEnvelope(BaseModel):
    success: bool = True
    payment_methods: List[PaymentMethodPublic]


def contact_to_public(c: TrustedContact) -> TrustedContactPublic:
    return TrustedContactPublic(
        id=c.id,
        name=c.name,
        phone=c.phone,
        relationship=c.relationship_label,
        is_guardian=bool(c.is_guardian),
    )


def payment_method_to_public(pm: PaymentMethod) -> PaymentMethodPublic:
    return PaymentMethodPublic(
        id=pm.id,
        type=pm.type,
        is_default=bool(pm.is_default),
        card_last4=pm.card_last4,
    )


def user_to_public(user: User) -> UserPublic:
    """Convert ORM User (with role profile) to public schema; never exposes the hash."""
    passenger = user.passenger_profile
    return UserPublic(
        id=user.id,
        name=user.name,
        email=user.email,
        phone=user.phone,
        role=user.role.value if hasattr(user.role, "value") else str(user.role),
        avatar=user.avatar,
        is_active=bool(user.is_active),
        is_verified=bool(user.is_verified),
        wallet_balance=float(user.wallet_balance or 0.0),
        notification_settings=dict(user.notification_settings or {}),
        security_settings=dict(user.security_settings or {}),
        driver_details=driver_to_public(user.driver_profile) if user.driver_profile else None,
        passenger_details=(
            PassengerPublic(rating=float(passenger.rating), total_rides=passenger.total_rides)
            if passenger
            else None
        ),
        created_at=user.created_at,
    )
