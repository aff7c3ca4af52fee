# dashboard models: live stats, snapshot, and display state
# mirrors frontend DoctorStats and the useDoctorRealtime return value

from datetime import datetime
from pydantic import BaseModel, Field

from doctor_live.models.appointment import AppointmentResponse
from doctor_live.models.chamber import ChamberResponse


class DashboardStats(BaseModel):
    """scalar stats for the doctor overview, always replaced as a whole"""
    today_appointments: int = Field(0, alias="todayAppointments")
    total_patients: int = Field(0, alias="totalPatients")
    avg_rating: float = Field(0.0, alias="avgRating")
    review_count: int = Field(0, alias="reviewCount")

    model_config = {"populate_by_name": True, "frozen": True}


class DashboardSnapshot(BaseModel):
    """everything one refresh cycle produces"""
    stats: DashboardStats = Field(default_factory=DashboardStats)
    today_appointments: list[AppointmentResponse] = Field(default_factory=list, alias="todayAppointments")
    chambers: list[ChamberResponse] = Field(default_factory=list)

    model_config = {"populate_by_name": True, "frozen": True}


class DashboardState(BaseModel):
    """what the display layer sees"""
    stats: DashboardStats
    today_appointments: list[AppointmentResponse] = Field(..., alias="todayAppointments")
    chambers: list[ChamberResponse]
    is_loading: bool = Field(..., alias="isLoading")
    last_updated: datetime = Field(..., alias="lastUpdated")

    model_config = {"populate_by_name": True}
