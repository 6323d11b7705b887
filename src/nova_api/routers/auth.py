import logging
import secrets
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from nova_api.db import get_db
from nova_api.deps import get_current_user
from nova_api.errors import AuthenticationError, NotFoundError, PermissionDenied, ValidationError
from nova_api.google_auth import GoogleTokenVerifier, get_google_verifier
from nova_api.models.driver import Driver
from nova_api.models.passenger import Passenger
from nova_api.models.ride import TERMINAL_STATUSES, Ride
from nova_api.models.user import DEFAULT_AVATAR_URL, PaymentMethod, TrustedContact, User, UserRole
from nova_api.schemas.auth import AuthResponse, GoogleAuthRequest, LoginRequest, RegisterRequest, TokenResponse
from nova_api.schemas.common import MessageResponse
from nova_api.schemas.user import (
    DeleteAccountRequest,
    PasswordUpdate,
    PaymentMethodIn,
    PaymentMethodsEnvelope,
    ProfileUpdate,
    SettingsUpdate,
    TrustedContactIn,
    TrustedContactsEnvelope,
    UserEnvelope,
    contact_to_public,
    payment_method_to_public,
    user_to_public,
)
from nova_api.security import create_access_token, hash_password, verify_password

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


def _issue_token(user: User) -> str:
    return create_access_token(subject=user.id, role=user.role.value)


def _ensure_role_profile(user: User) -> None:
    """Attach the 1:1 profile row matching the user's role."""
    if user.role == UserRole.driver and user.driver_profile is None:
        user.driver_profile = Driver(id=user.id)
    elif user.role == UserRole.passenger and user.passenger_profile is None:
        user.passenger_profile = Passenger(id=user.id)


def _commit_unique(db: Session, message: str) -> None:
    """Commit, turning a unique-constraint violation into a 400."""
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ValidationError(message)


@router.post(
    "/register",
    response_model=AuthResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a new user",
    description="Create a new passenger or driver account and return an access token.",
    operation_id="auth_register",
)
def register(payload: RegisterRequest, db: Session = Depends(get_db)) -> AuthResponse:
    """
    Register a new user and return a JWT access token.

    Errors:
    - 400 if email or phone already exists
    """
    email = str(payload.email).lower().strip()
    phone = payload.phone.strip()
    exists = db.scalar(select(User.id).where(or_(User.email == email, User.phone == phone)))
    if exists:
        raise ValidationError("User already exists with this email or phone")

    user = User(
        name=payload.name.strip(),
        email=email,
        phone=phone,
        password_hash=hash_password(payload.password),
        role=UserRole(payload.role),
    )
    db.add(user)
    db.flush()
    _ensure_role_profile(user)
    _commit_unique(db, "User already exists with this email or phone")
    db.refresh(user)
    logger.info("Registered %s %s", user.role.value, user.id)

    return AuthResponse(token=_issue_token(user), user=user_to_public(user))


@router.post(
    "/login",
    response_model=AuthResponse,
    summary="Login",
    description="Authenticate a user by email/password and return an access token.",
    operation_id="auth_login",
)
def login(payload: LoginRequest, db: Session = Depends(get_db)) -> AuthResponse:
    """
    Login by verifying user credentials and return a JWT access token.

    Errors:
    - 401 for invalid credentials
    - 403 for deactivated accounts
    """
    email = str(payload.email).lower().strip()
    user = db.scalar(select(User).where(User.email == email))
    if not user or not verify_password(payload.password, user.password_hash):
        raise AuthenticationError("Invalid credentials")
    if not user.is_active:
        raise PermissionDenied("Account is deactivated.")

    return AuthResponse(token=_issue_token(user), user=user_to_public(user))


@router.post(
    "/google",
    response_model=AuthResponse,
    summary="Sign in with Google",
    description="Verify a Google ID token; first sign-in creates a passenger account.",
    operation_id="auth_google",
)
def google_auth(
    payload: GoogleAuthRequest,
    db: Session = Depends(get_db),
    verifier: GoogleTokenVerifier = Depends(get_google_verifier),
) -> AuthResponse:
    identity = verifier.verify(payload.token)

    user = db.scalar(select(User).where(User.email == identity.email))
    if user is None:
        user = User(
            name=payload.name or identity.name or identity.email.split("@")[0],
            email=identity.email,
            phone=None,
            avatar=payload.picture or identity.picture or DEFAULT_AVATAR_URL,
            # Unusable random password; the account signs in through Google.
            password_hash=hash_password(secrets.token_urlsafe(24)),
            role=UserRole.passenger,
            is_verified=True,
        )
        db.add(user)
        db.flush()
        _ensure_role_profile(user)
        db.commit()
        db.refresh(user)
        logger.info("Created passenger %s from Google sign-in", user.id)
    elif not user.is_active:
        raise PermissionDenied("Account is deactivated.")

    return AuthResponse(token=_issue_token(user), user=user_to_public(user))


@router.get(
    "/me",
    response_model=UserEnvelope,
    summary="Get current user",
    description="Return the authenticated user's profile, including role details.",
    operation_id="auth_me",
)
def get_me(current_user: User = Depends(get_current_user)) -> UserEnvelope:
    return UserEnvelope(user=user_to_public(current_user))


@router.put(
    "/updateprofile",
    response_model=UserEnvelope,
    summary="Update profile",
    operation_id="auth_update_profile",
)
def update_profile(
    payload: ProfileUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> UserEnvelope:
    """Update name/email/phone/avatar; omitted fields are left unchanged."""
    if payload.name is not None:
        current_user.name = payload.name.strip()
    if payload.email is not None:
        current_user.email = str(payload.email).lower().strip()
    if payload.phone is not None:
        current_user.phone = payload.phone.strip()
    if payload.avatar is not None:
        current_user.avatar = payload.avatar.strip()

    db.add(current_user)
    _commit_unique(db, "Email or phone is already in use")
    db.refresh(current_user)
    return UserEnvelope(user=user_to_public(current_user))


@router.put(
    "/updatepassword",
    response_model=TokenResponse,
    summary="Change password",
    description="Verify the current password, store the new one and return a fresh token.",
    operation_id="auth_update_password",
)
def update_password(
    payload: PasswordUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> TokenResponse:
    if not verify_password(payload.current_password, current_user.password_hash):
        raise AuthenticationError("Password is incorrect")
    current_user.password_hash = hash_password(payload.new_password)
    db.add(current_user)
    db.commit()
    return TokenResponse(token=_issue_token(current_user))


@router.put(
    "/settings",
    response_model=UserEnvelope,
    summary="Update notification/security preferences",
    operation_id="auth_update_settings",
)
def update_settings(
    payload: SettingsUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> UserEnvelope:
    """Merge the provided preference flags into the stored ones."""
    if payload.notification_settings is not None:
        merged = dict(current_user.notification_settings or {})
        merged.update(payload.notification_settings.model_dump(exclude_none=True))
        current_user.notification_settings = merged
    if payload.security_settings is not None:
        merged = dict(current_user.security_settings or {})
        merged.update(payload.security_settings.model_dump(exclude_none=True))
        current_user.security_settings = merged

    db.add(current_user)
    db.commit()
    db.refresh(current_user)
    return UserEnvelope(user=user_to_public(current_user))


@router.delete(
    "/deleteaccount",
    response_model=MessageResponse,
    summary="Delete account",
    description="Permanently delete the account. Ride records are kept without the user reference.",
    operation_id="auth_delete_account",
)
def delete_account(
    payload: DeleteAccountRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> MessageResponse:
    if not verify_password(payload.password, current_user.password_hash):
        raise AuthenticationError("Password is incorrect")

    active = db.scalar(
        select(Ride.id).where(
            or_(Ride.passenger_id == current_user.id, Ride.driver_id == current_user.id),
            Ride.status.not_in(TERMINAL_STATUSES),
        )
    )
    if active:
        raise ValidationError("Finish or cancel your active ride before deleting your account")

    # Detach ride references explicitly; not every backend enforces ON DELETE SET NULL.
    for column in (Ride.passenger_id, Ride.driver_id, Ride.cancelled_by_id):
        db.execute(
            update(Ride)
            .where(column == current_user.id)
            .values({column.key: None})
            .execution_options(synchronize_session=False)
        )
    user_id = current_user.id
    db.delete(current_user)
    db.commit()
    logger.info("Deleted account %s", user_id)
    return MessageResponse(message="Account deleted")


# -- trusted contacts ------------------------------------------------------


def _own_contact(current_user: User, contact_id: UUID) -> TrustedContact:
    for contact in current_user.trusted_contacts:
        if contact.id == contact_id:
            return contact
    raise NotFoundError("Trusted contact not found")


@router.get(
    "/trusted-contacts",
    response_model=TrustedContactsEnvelope,
    summary="List trusted contacts",
    operation_id="auth_list_trusted_contacts",
)
def list_trusted_contacts(current_user: User = Depends(get_current_user)) -> TrustedContactsEnvelope:
    return TrustedContactsEnvelope(trusted_contacts=[contact_to_public(c) for c in current_user.trusted_contacts])


@router.post(
    "/trusted-contacts",
    response_model=TrustedContactsEnvelope,
    status_code=status.HTTP_201_CREATED,
    summary="Add a trusted contact",
    operation_id="auth_add_trusted_contact",
)
def add_trusted_contact(
    payload: TrustedContactIn,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> TrustedContactsEnvelope:
    current_user.trusted_contacts.append(
        TrustedContact(
            name=payload.name.strip(),
            phone=payload.phone.strip(),
            relationship_label=payload.relationship,
            is_guardian=payload.is_guardian,
        )
    )
    db.add(current_user)
    db.commit()
    db.refresh(current_user)
    return list_trusted_contacts(current_user)


@router.put(
    "/trusted-contacts/{contact_id}",
    response_model=TrustedContactsEnvelope,
    summary="Update a trusted contact",
    operation_id="auth_update_trusted_contact",
)
def update_trusted_contact(
    contact_id: UUID,
    payload: TrustedContactIn,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> TrustedContactsEnvelope:
    contact = _own_contact(current_user, contact_id)
    contact.name = payload.name.strip()
    contact.phone = payload.phone.strip()
    contact.relationship_label = payload.relationship
    contact.is_guardian = payload.is_guardian
    db.add(contact)
    db.commit()
    db.refresh(current_user)
    return list_trusted_contacts(current_user)


@router.delete(
    "/trusted-contacts/{contact_id}",
    response_model=TrustedContactsEnvelope,
    summary="Remove a trusted contact",
    operation_id="auth_delete_trusted_contact",
)
def delete_trusted_contact(
    contact_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> TrustedContactsEnvelope:
    contact = _own_contact(current_user, contact_id)
    current_user.trusted_contacts.remove(contact)
    db.commit()
    db.refresh(current_user)
    return list_trusted_contacts(current_user)


# -- payment methods -------------------------------------------------------


def _payment_methods(current_user: User) -> PaymentMethodsEnvelope:
    methods: List[PaymentMethod] = list(current_user.payment_methods)
    return PaymentMethodsEnvelope(payment_methods=[payment_method_to_public(pm) for pm in methods])


@router.get(
    "/payment-methods",
    response_model=PaymentMethodsEnvelope,
    summary="List payment methods",
    operation_id="auth_list_payment_methods",
)
def list_payment_methods(current_user: User = Depends(get_current_user)) -> PaymentMethodsEnvelope:
    return _payment_methods(current_user)


@router.post(
    "/payment-methods",
    response_model=PaymentMethodsEnvelope,
    status_code=status.HTTP_201_CREATED,
    summary="Add a payment method",
    description="The first method, or one added with is_default=true, becomes the default.",
    operation_id="auth_add_payment_method",
)
def add_payment_method(
    payload: PaymentMethodIn,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> PaymentMethodsEnvelope:
    if payload.type.value == "card" and not payload.card_last4:
        raise ValidationError("card_last4 is required for cards")
    make_default = payload.is_default or not current_user.payment_methods
    if make_default:
        for pm in current_user.payment_methods:
            pm.is_default = False
    current_user.payment_methods.append(
        PaymentMethod(type=payload.type, is_default=make_default, card_last4=payload.card_last4)
    )
    db.add(current_user)
    db.commit()
    db.refresh(current_user)
    return _payment_methods(current_user)


@router.delete(
    "/payment-methods/{method_id}",
    response_model=PaymentMethodsEnvelope,
    summary="Remove a payment method",
    operation_id="auth_delete_payment_method",
)
def delete_payment_method(
    method_id: UUID,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> PaymentMethodsEnvelope:
    method = next((pm for pm in current_user.payment_methods if pm.id == method_id), None)
    if method is None:
        raise NotFoundError("Payment method not found")
    current_user.payment_methods.remove(method)
    if method.is_default and current_user.payment_methods:
        current_user.payment_methods[0].is_default = True
    db.commit()
    db.refresh(current_user)
    return _payment_methods(current_user)
