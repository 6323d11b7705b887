from __future__ import annotations

import logging
from collections import OrderedDict
from datetime import timedelta
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy import desc, func, select
from sqlalchemy.orm import Session

from nova_api.db import get_db
from nova_api.deps import require
from nova_api.errors import NotFoundError, ValidationError
from nova_api.models.base import utcnow
from nova_api.models.driver import DriverDocument
from nova_api.models.ride import Ride, RideStatus
from nova_api.models.user import User, UserRole
from nova_api.schemas.admin import (
    DocumentEnvelope,
    MonthlyStat,
    PlatformStats,
    StatsEnvelope,
    UserPage,
    UserStatusUpdate,
)
from nova_api.schemas.driver import document_to_public
from nova_api.schemas.user import UserEnvelope, user_to_public

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["admin"])

require_admin = require("admin", "manage")

MONTHLY_WINDOW_DAYS = 365


def _count_role(db: Session, role: UserRole) -> int:
    return db.scalar(select(func.count()).select_from(User).where(User.role == role)) or 0


@router.get(
    "/stats",
    response_model=StatsEnvelope,
    summary="Platform statistics",
    description="User counts, ride counts and revenue (completed rides only), with a per-month breakdown.",
    operation_id="admin_stats",
)
def get_stats(
    _: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> StatsEnvelope:
    now = utcnow()
    completed = Ride.status == RideStatus.completed

    total_rides = db.scalar(select(func.count()).select_from(Ride)) or 0
    completed_rides = db.scalar(select(func.count()).select_from(Ride).where(completed)) or 0
    total_revenue = db.scalar(select(func.coalesce(func.sum(Ride.fare_total), 0.0)).where(completed))
    recent_revenue = db.scalar(
        select(func.coalesce(func.sum(Ride.fare_total), 0.0)).where(
            completed, Ride.end_time >= now - timedelta(days=30)
        )
    )

    # Month bucketing is done here rather than in SQL to stay portable across backends.
    monthly: "OrderedDict[str, MonthlyStat]" = OrderedDict()
    rows = db.execute(
        select(Ride.created_at, Ride.fare_total)
        .where(completed, Ride.created_at >= now - timedelta(days=MONTHLY_WINDOW_DAYS))
        .order_by(Ride.created_at)
    ).all()
    for created_at, fare_total in rows:
        key = created_at.strftime("%Y-%m")
        stat = monthly.setdefault(key, MonthlyStat(month=key, rides=0, revenue=0.0))
        stat.rides += 1
        stat.revenue = round(stat.revenue + float(fare_total), 2)

    return StatsEnvelope(
        stats=PlatformStats(
            passengers=_count_role(db, UserRole.passenger),
            drivers=_count_role(db, UserRole.driver),
            total_rides=total_rides,
            completed_rides=completed_rides,
            total_revenue=round(float(total_revenue or 0.0), 2),
            revenue_last_30_days=round(float(recent_revenue or 0.0), 2),
            monthly=list(monthly.values()),
        )
    )


@router.get(
    "/users",
    response_model=UserPage,
    summary="List users",
    description="Paginated user list, newest first.",
    operation_id="admin_list_users",
)
def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    _: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> UserPage:
    total = db.scalar(select(func.count()).select_from(User)) or 0
    users = db.scalars(
        select(User).order_by(desc(User.created_at)).offset((page - 1) * limit).limit(limit)
    ).all()
    return UserPage(page=page, limit=limit, total=total, users=[user_to_public(u) for u in users])


@router.put(
    "/users/{user_id}/status",
    response_model=UserEnvelope,
    summary="Activate or deactivate a user",
    operation_id="admin_update_user_status",
)
def update_user_status(
    user_id: UUID,
    payload: UserStatusUpdate,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> UserEnvelope:
    """
    Activate/deactivate an account.

    Deactivated users are rejected on every authenticated request, and a
    deactivated driver stops receiving ride requests.
    """
    if user_id == admin.id and not payload.is_active:
        raise ValidationError("You cannot deactivate your own account")
    user = db.scalar(select(User).where(User.id == user_id))
    if not user:
        raise NotFoundError("User not found")

    user.is_active = payload.is_active
    if not payload.is_active and user.driver_profile is not None:
        user.driver_profile.is_available = False
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("Admin %s set user %s active=%s", admin.id, user.id, payload.is_active)
    return UserEnvelope(user=user_to_public(user))


@router.put(
    "/drivers/{driver_id}/documents/{document_id}/verify",
    response_model=DocumentEnvelope,
    summary="Verify a driver document",
    description="Marks the document verified; the driver account is verified once all its documents are.",
    operation_id="admin_verify_document",
)
def verify_document(
    driver_id: UUID,
    document_id: UUID,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> DocumentEnvelope:
    doc = db.scalar(
        select(DriverDocument).where(DriverDocument.id == document_id, DriverDocument.driver_id == driver_id)
    )
    if not doc:
        raise NotFoundError("Document not found")

    doc.verified = True
    db.add(doc)
    db.flush()

    driver = doc.driver
    if all(d.verified for d in driver.documents):
        driver.user.is_verified = True
    db.commit()
    db.refresh(doc)
    logger.info("Admin %s verified document %s of driver %s", admin.id, doc.id, driver_id)
    return DocumentEnvelope(document=document_to_public(doc))
