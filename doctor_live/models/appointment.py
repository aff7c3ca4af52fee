# appointment models: today's schedule rows with joined patient identity
# mirrors frontend Appointment in use-doctor-realtime

from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field


class AppointmentStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PatientIdentity(BaseModel):
    """patient display data joined onto an appointment by user_id"""
    full_name: str = Field(..., alias="fullName")
    date_of_birth: Optional[str] = Field(None, alias="dateOfBirth")

    model_config = {"populate_by_name": True, "frozen": True}


class AppointmentResponse(BaseModel):
    """appointment row from the appointments collection"""
    id: str
    patient_id: str = Field(..., alias="patientId")
    appointment_date: str = Field(..., alias="appointmentDate")
    appointment_time: str = Field(..., alias="appointmentTime")
    status: AppointmentStatus
    reason: Optional[str] = None
    # absent when the patient record could not be found
    patient: Optional[PatientIdentity] = None

    model_config = {"populate_by_name": True, "frozen": True}

    @classmethod
    def from_doc(cls, doc: dict, patient: Optional[PatientIdentity] = None) -> "AppointmentResponse":
        return cls(
            id=str(doc.get("_id", doc.get("id", ""))),
            patient_id=str(doc.get("patient_id", "")),
            appointment_date=doc.get("appointment_date", ""),
            appointment_time=doc.get("appointment_time", ""),
            status=doc.get("status", AppointmentStatus.PENDING),
            reason=doc.get("reason"),
            patient=patient,
        )
