from typing import List

from pydantic import BaseModel, Field

from nova_api.schemas.driver import DocumentPublic
from nova_api.schemas.user import UserPublic


class MonthlyStat(BaseModel):
    month: str = Field(..., description="Calendar month as YYYY-MM.")
    rides: int
    revenue: float


class PlatformStats(BaseModel):
    passengers: int
    drivers: int
    total_rides: int
    completed_rides: int
    total_revenue: float
    revenue_last_30_days: float
    monthly: List[MonthlyStat]


class StatsEnvelope(BaseModel):
    success: bool = True
    stats: PlatformStats


class UserPage(BaseModel):
    success: bool = True
    page: int
    limit: int
    total: int
    users: List[UserPublic]


class UserStatusUpdate(BaseModel):
    is_active: bool = Field(..., description="false deactivates the account; its tokens stop working.")


class DocumentEnvelope(BaseModel):
    success: bool = True
    document: DocumentPublic
