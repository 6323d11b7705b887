from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy import update
from sqlalchemy.orm import Session

from nova_api.db import get_db
from nova_api.deps import get_notifier, require
from nova_api.errors import ValidationError
from nova_api.models.base import utcnow
from nova_api.models.driver import Driver, DriverDocument
from nova_api.models.user import User
from nova_api.realtime import Notifier
from nova_api.schemas.driver import (
    AvailabilityEnvelope,
    CashOutRequest,
    CashOutResponse,
    DocumentsEnvelope,
    DocumentUpload,
    DriverAvailabilityUpdate,
    DriverEnvelope,
    DriverLocationUpdate,
    DriverProfileUpdate,
    Earnings,
    EarningsEnvelope,
    LocationEnvelope,
    document_to_public,
    driver_to_public,
)
from nova_api.services.drivers import get_driver_profile, update_driver_location

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/drivers", tags=["drivers"])

require_driver = require("driver", "manage")


@router.get(
    "/me",
    response_model=DriverEnvelope,
    summary="Get current driver's profile",
    description="Return the authenticated driver's driver-profile record.",
    operation_id="drivers_get_me",
)
def get_my_driver_profile(
    current_user: User = Depends(require_driver),
    db: Session = Depends(get_db),
) -> DriverEnvelope:
    """
    Get the current driver's driver profile.

    Auth:
    - Bearer JWT
    - role must be 'driver'
    """
    return DriverEnvelope(driver=driver_to_public(get_driver_profile(db, current_user)))


@router.put(
    "/location",
    response_model=LocationEnvelope,
    summary="Update driver current location",
    description="Persist the driver's last known lat/lng and push it to the passenger of the active ride.",
    operation_id="drivers_update_location",
)
def update_my_location(
    payload: DriverLocationUpdate,
    current_user: User = Depends(require_driver),
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
) -> LocationEnvelope:
    """
    Update driver's last known location.

    Note:
    - Location update does not change is_available; clients call the
      availability endpoint separately.
    """
    update_driver_location(db, notifier, current_user, payload.lat, payload.lng)
    return LocationEnvelope(location=payload)


@router.put(
    "/availability",
    response_model=AvailabilityEnvelope,
    summary="Update driver availability",
    description="Toggle whether the authenticated driver receives new ride requests.",
    operation_id="drivers_update_availability",
)
def update_my_availability(
    payload: DriverAvailabilityUpdate,
    current_user: User = Depends(require_driver),
    db: Session = Depends(get_db),
) -> AvailabilityEnvelope:
    driver = get_driver_profile(db, current_user)
    driver.is_available = payload.is_available
    driver.updated_at = utcnow()
    db.add(driver)
    db.commit()
    logger.info("Driver %s availability -> %s", current_user.id, payload.is_available)
    return AvailabilityEnvelope(is_available=payload.is_available)


@router.put(
    "/profile",
    response_model=DriverEnvelope,
    summary="Update vehicle and license details",
    description="Fields left out of the body are not changed.",
    operation_id="drivers_update_profile",
)
def update_my_profile(
    payload: DriverProfileUpdate,
    current_user: User = Depends(require_driver),
    db: Session = Depends(get_db),
) -> DriverEnvelope:
    driver = get_driver_profile(db, current_user)
    for field_name, value in payload.model_dump(exclude_unset=True).items():
        if isinstance(value, str):
            value = value.strip()
        setattr(driver, field_name, value)
    driver.updated_at = utcnow()

    db.add(driver)
    db.commit()
    db.refresh(driver)
    return DriverEnvelope(driver=driver_to_public(driver))


@router.get(
    "/earnings",
    response_model=EarningsEnvelope,
    summary="Earnings summary",
    operation_id="drivers_earnings",
)
def get_my_earnings(
    current_user: User = Depends(require_driver),
    db: Session = Depends(get_db),
) -> EarningsEnvelope:
    driver = get_driver_profile(db, current_user)
    return EarningsEnvelope(
        earnings=Earnings(
            total=round(float(driver.earnings or 0.0), 2),
            total_rides=driver.total_rides or 0,
            rating=float(driver.rating),
        )
    )


@router.post(
    "/documents",
    response_model=DocumentsEnvelope,
    status_code=status.HTTP_201_CREATED,
    summary="Register an uploaded document",
    description="Attach a document (already uploaded to storage) for admin verification.",
    operation_id="drivers_upload_document",
)
def upload_document(
    payload: DocumentUpload,
    current_user: User = Depends(require_driver),
    db: Session = Depends(get_db),
) -> DocumentsEnvelope:
    driver = get_driver_profile(db, current_user)
    driver.documents.append(DriverDocument(type=payload.type, url=payload.url.strip()))
    driver.updated_at = utcnow()
    db.add(driver)
    db.commit()
    db.refresh(driver)
    return DocumentsEnvelope(documents=[document_to_public(doc) for doc in driver.documents])


@router.post(
    "/cashout",
    response_model=CashOutResponse,
    summary="Cash out earnings",
    operation_id="drivers_cashout",
)
def cash_out(
    payload: CashOutRequest,
    current_user: User = Depends(require_driver),
    db: Session = Depends(get_db),
) -> CashOutResponse:
    """
    Withdraw part of the accumulated earnings.

    Errors:
    - 400 "Insufficient balance" when amount exceeds the earnings
    """
    get_driver_profile(db, current_user)
    # Conditional decrement so two concurrent cash-outs cannot overdraw.
    result = db.execute(
        update(Driver)
        .where(Driver.id == current_user.id, Driver.earnings >= payload.amount)
        .values(earnings=Driver.earnings - payload.amount, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.rollback()
        raise ValidationError("Insufficient balance")
    db.commit()

    driver = get_driver_profile(db, current_user)
    db.refresh(driver)
    logger.info("Driver %s cashed out %.2f", current_user.id, payload.amount)
    return CashOutResponse(
        earnings=round(float(driver.earnings), 2),
        message=f"Cash out of {payload.amount:.2f} initiated",
    )
