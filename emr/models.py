from sqlalchemy import Column, String, Text, Date, DateTime, ForeignKey
from datetime import datetime, timezone
import uuid

from .database import Base


def utcnow():
    """Get current UTC time (timezone-aware)."""
    return datetime.now(timezone.utc)


def generate_id() -> str:
    """Generate a unique resource ID."""
    return str(uuid.uuid4())


class PatientEntity(Base):
    """Patient demographics with a single structured postal address"""
    __tablename__ = "patients"
    
    id = Column(String(64), primary_key=True, default=generate_id)
    family_name = Column(String(255), nullable=False, default="")
    given_name = Column(String(255), nullable=False, default="")
    birth_date = Column(Date, nullable=True)  # None when unknown/unparseable
    gender = Column(String(16), nullable=False, default="unknown")  # male | female | other | unknown
    phone = Column(String(64), nullable=False, default="")
    email = Column(String(255), nullable=False, default="")
    
    # FHIR Address, flattened
    address_use = Column(String(16), nullable=False, default="")  # home | work | temp | old | billing
    address_type = Column(String(16), nullable=False, default="")  # postal | physical | both
    address_text = Column(Text, nullable=False, default="")
    address_lines = Column(Text, nullable=False, default="")  # JSON list of street lines
    address_city = Column(String(255), nullable=False, default="")
    address_district = Column(String(255), nullable=False, default="")
    address_state = Column(String(255), nullable=False, default="")
    address_postal_code = Column(String(32), nullable=False, default="")
    address_country = Column(String(255), nullable=False, default="")
    
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow)


class AppointmentEntity(Base):
    """Scheduled visit owned by a patient"""
    __tablename__ = "appointments"
    
    id = Column(String(64), primary_key=True, default=generate_id)
    patient_id = Column(
        String(64),
        ForeignKey("patients.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    start = Column(DateTime(timezone=True), nullable=False)
    end = Column(DateTime(timezone=True), nullable=False)
    status = Column(String(32), nullable=False, default="booked")  # booked | cancelled | fulfilled | noshow
    description = Column(Text, nullable=False, default="")
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow)


class EncounterEntity(Base):
    """
    Clinical encounter owned by a patient.
    
    Only the start instant is stored; the one-hour period end is
    derived when the encounter is projected to FHIR.
    """
    __tablename__ = "encounters"
    
    id = Column(String(64), primary_key=True, default=generate_id)
    patient_id = Column(
        String(64),
        ForeignKey("patients.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    date = Column(DateTime(timezone=True), nullable=False, index=True)
    status = Column(String(32), nullable=False, default="in-progress")
    notes = Column(Text, nullable=False, default="")
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow)


# Resource type name -> entity class, used by the store and routers
ENTITY_TYPES = {
    "Patient": PatientEntity,
    "Appointment": AppointmentEntity,
    "Encounter": EncounterEntity,
}
