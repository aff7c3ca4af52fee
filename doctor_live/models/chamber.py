# chamber models: a doctor's practice locations

from typing import Optional
from pydantic import BaseModel


class ChamberResponse(BaseModel):
    """practice location from the doctor_chambers collection"""
    id: str
    name: str
    address: str
    timing: Optional[str] = None
    days: Optional[list[str]] = None

    model_config = {"frozen": True}

    @classmethod
    def from_doc(cls, doc: dict) -> "ChamberResponse":
        return cls(
            id=str(doc.get("_id", doc.get("id", ""))),
            name=doc.get("name", ""),
            address=doc.get("address", ""),
            timing=doc.get("timing"),
            days=doc.get("days"),
        )
