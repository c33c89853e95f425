"""
FHIR Resource Mappers

Bidirectional conversion between the flat SQLAlchemy entities and the
FHIR-shaped wire models.

Mappings:
- PatientEntity ↔ Patient
- AppointmentEntity ↔ Appointment
- EncounterEntity ↔ Encounter

The entity → resource direction normalizes stored codes to valid FHIR
values. The resource → entity direction never raises for missing data:
absent elements resolve to the column defaults, and only the first
element of repeating elements (name, telecom per system, address,
participant) is read.
"""
from typing import Iterable, List, Optional
from datetime import date, datetime, timedelta, timezone
import html
import json
import logging

from ..models import (
    PatientEntity,
    AppointmentEntity,
    EncounterEntity,
    generate_id,
    utcnow,
)
from .address import format_address_text
from .codes import (
    Gender,
    AddressUse,
    AddressType,
    AppointmentStatus,
    EncounterStatus,
    parse_code,
)
from .resources import (
    Patient,
    Appointment,
    Encounter,
    Meta,
    Reference,
    Narrative,
    Period,
    AppointmentParticipant,
)

logger = logging.getLogger(__name__)

PATIENT_REFERENCE_PREFIX = "Patient/"
NARRATIVE_DIV_OPEN = '<div xmlns="http://www.w3.org/1999/xhtml">'
NARRATIVE_DIV_CLOSE = "</div>"
ENCOUNTER_DURATION = timedelta(hours=1)


# ============================================================================
# Helpers
# ============================================================================

def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes (SQLite drops tzinfo) and convert aware ones."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def format_instant(value: datetime) -> str:
    """Format as yyyy-MM-ddTHH:mm:ss.fffZ in UTC."""
    value = as_utc(value)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def parse_instant(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 date or dateTime into a UTC datetime, None if unparseable."""
    if not value:
        return None
    try:
        return as_utc(datetime.fromisoformat(value.strip()))
    except ValueError:
        return None


def parse_birth_date(value: Optional[str]) -> Optional[date]:
    """Parse a FHIR date; returns None (unset) for missing or invalid input."""
    if not value:
        return None
    value = value.strip()
    try:
        return date.fromisoformat(value)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(value).date()
    except ValueError:
        return None


def serialize_address_lines(lines: Optional[Iterable[Optional[str]]]) -> str:
    """Store street lines as a JSON list, dropping empty entries."""
    kept = [line for line in (lines or []) if line]
    return json.dumps(kept) if kept else ""


def parse_address_lines(stored: Optional[str]) -> List[str]:
    """Read stored street lines back; a non-JSON value is treated as one line."""
    if not stored or not stored.strip():
        return []
    try:
        lines = json.loads(stored)
    except ValueError:
        return [stored]
    if not isinstance(lines, list):
        return [str(lines)] if lines else []
    return [line for line in lines if isinstance(line, str) and line]


def patient_reference(patient_id: str) -> str:
    return f"{PATIENT_REFERENCE_PREFIX}{patient_id}"


def _patient_id_from(reference: Optional[Reference]) -> Optional[str]:
    if reference and reference.reference and reference.reference.startswith(PATIENT_REFERENCE_PREFIX):
        return reference.reference[len(PATIENT_REFERENCE_PREFIX):]
    return None


def _meta(entity) -> Optional[Meta]:
    if entity.updated_at is None:
        return None
    return Meta(lastUpdated=as_utc(entity.updated_at))


def _status_from_wire(value: Optional[str], code_type, default) -> str:
    """
    Lower-case a wire status; known codes map to their canonical value,
    unknown codes are kept as given and missing ones take `default`.
    """
    raw = (value or "").strip().lower()
    if not raw:
        return default.value
    code = parse_code(code_type, raw)
    return code.value if code else raw


# ============================================================================
# Patient
# ============================================================================

class PatientMapper:
    """Maps PatientEntity to and from FHIR Patient."""
    
    @staticmethod
    def to_resource(entity: PatientEntity) -> Patient:
        """
        Convert a stored patient to a FHIR Patient.
        
        Args:
            entity: Patient row
            
        Returns:
            Patient with one official name, telecom for non-empty phone/email
            and at most one address
        """
        patient_dict = {
            "id": entity.id,
            "meta": _meta(entity),
            "name": [{
                "use": "official",
                "family": entity.family_name or "",
                "given": [entity.given_name or ""]
            }],
        }
        
        if entity.birth_date:
            patient_dict["birthDate"] = entity.birth_date.isoformat()
        
        # Unrecognized stored genders are left off rather than guessed
        gender = parse_code(Gender, entity.gender)
        if gender:
            patient_dict["gender"] = gender.value
        
        telecom = []
        if entity.phone:
            telecom.append({"system": "phone", "value": entity.phone, "use": "mobile"})
        if entity.email:
            telecom.append({"system": "email", "value": entity.email, "use": "home"})
        if telecom:
            patient_dict["telecom"] = telecom
        
        address = PatientMapper._address_to_resource(entity)
        if address:
            patient_dict["address"] = [address]
        
        logger.debug("Patient %s -> resource: %s", entity.id, patient_dict)
        return Patient(**patient_dict)
    
    @staticmethod
    def _address_to_resource(entity: PatientEntity) -> Optional[dict]:
        lines = parse_address_lines(entity.address_lines)
        structured = {
            "city": entity.address_city or "",
            "district": entity.address_district or "",
            "state": entity.address_state or "",
            "postalCode": entity.address_postal_code or "",
            "country": entity.address_country or "",
        }
        
        if not lines and not any(structured.values()) and not entity.address_text:
            return None
        
        use = parse_code(AddressUse, entity.address_use) or AddressUse.HOME
        address_type = parse_code(AddressType, entity.address_type) or AddressType.PHYSICAL
        
        address = {
            "use": use.value,
            "type": address_type.value,
            "text": entity.address_text or format_address_text({"line": lines, **structured}),
        }
        if lines:
            address["line"] = lines
        for key, value in structured.items():
            if value:
                address[key] = value
        return address
    
    @staticmethod
    def to_entity(patient: Patient) -> PatientEntity:
        """
        Convert a FHIR Patient to a patient row (not yet persisted).
        
        Keeps the first name's family and first given name, the first
        phone and email telecom entries and the first address.
        """
        entity = PatientEntity(
            id=patient.id or generate_id(),
            family_name="",
            given_name="",
            birth_date=parse_birth_date(patient.birthDate),
            gender=(parse_code(Gender, patient.gender) or Gender.UNKNOWN).value,
            phone="",
            email="",
            address_use="",
            address_type="",
            address_text="",
            address_lines="",
            address_city="",
            address_district="",
            address_state="",
            address_postal_code="",
            address_country="",
            updated_at=utcnow(),
        )
        
        name = patient.name[0] if patient.name else None
        if name:
            entity.family_name = name.family or ""
            entity.given_name = (name.given[0] if name.given else None) or ""
        
        for system in ("phone", "email"):
            contact = next(
                (t for t in patient.telecom or [] if (t.system or "").lower() == system),
                None
            )
            if contact:
                setattr(entity, system, contact.value or "")
        
        address = patient.address[0] if patient.address else None
        if address:
            entity.address_use = address.use or ""
            entity.address_type = address.type or ""
            entity.address_text = address.text or ""
            entity.address_lines = serialize_address_lines(address.line)
            entity.address_city = address.city or ""
            entity.address_district = address.district or ""
            entity.address_state = address.state or ""
            entity.address_postal_code = address.postalCode or ""
            entity.address_country = address.country or ""
        
        logger.debug(
            "Patient resource -> entity %s: family=%r given=%r birth_date=%s gender=%s",
            entity.id, entity.family_name, entity.given_name, entity.birth_date, entity.gender
        )
        return entity


# ============================================================================
# Appointment
# ============================================================================

class AppointmentMapper:
    """Maps AppointmentEntity to and from FHIR Appointment."""
    
    @staticmethod
    def to_resource(entity: AppointmentEntity) -> Appointment:
        """Convert a stored appointment; unknown statuses are shown as booked."""
        status = parse_code(AppointmentStatus, entity.status) or AppointmentStatus.BOOKED
        
        return Appointment(
            id=entity.id,
            meta=_meta(entity),
            status=status.value,
            start=as_utc(entity.start),
            end=as_utc(entity.end),
            description=entity.description,
            participant=[
                AppointmentParticipant(
                    actor=Reference(reference=patient_reference(entity.patient_id))
                )
            ]
        )
    
    @staticmethod
    def to_entity(appointment: Appointment) -> AppointmentEntity:
        """
        Convert a FHIR Appointment to an appointment row.
        
        Unknown statuses are stored lower-cased as given. Missing start/end
        default to now and now + 1 hour. The owning patient comes from the
        first participant whose actor references a Patient; "" when none does.
        """
        now = utcnow()
        
        patient_id = next(
            (
                pid for pid in (_patient_id_from(p.actor) for p in appointment.participant or [])
                if pid is not None
            ),
            ""
        )
        
        entity = AppointmentEntity(
            id=appointment.id or generate_id(),
            patient_id=patient_id,
            status=_status_from_wire(appointment.status, AppointmentStatus, AppointmentStatus.BOOKED),
            start=as_utc(appointment.start) or now,
            end=as_utc(appointment.end) or now + timedelta(hours=1),
            description=appointment.description or "",
            updated_at=now,
        )
        
        logger.debug(
            "Appointment resource -> entity %s: patient=%s status=%s start=%s end=%s",
            entity.id, entity.patient_id, entity.status, entity.start, entity.end
        )
        return entity


# ============================================================================
# Encounter
# ============================================================================

class EncounterMapper:
    """Maps EncounterEntity to and from FHIR Encounter."""
    
    @staticmethod
    def to_resource(entity: EncounterEntity) -> Encounter:
        """
        Convert a stored encounter to a FHIR Encounter.
        
        The period always spans exactly one hour from the stored date.
        Notes become an XHTML narrative only when present.
        """
        status = parse_code(EncounterStatus, entity.status) or EncounterStatus.IN_PROGRESS
        
        encounter = Encounter(
            id=entity.id,
            meta=_meta(entity),
            status=status.value,
            subject=Reference(reference=patient_reference(entity.patient_id)),
        )
        
        if entity.date is not None:
            encounter.period = Period(
                start=format_instant(entity.date),
                end=format_instant(as_utc(entity.date) + ENCOUNTER_DURATION)
            )
        
        if entity.notes:
            encounter.text = Narrative(
                status="generated",
                div=f"{NARRATIVE_DIV_OPEN}{html.escape(entity.notes, quote=False)}{NARRATIVE_DIV_CLOSE}"
            )
        
        return encounter
    
    @staticmethod
    def to_entity(encounter: Encounter) -> EncounterEntity:
        """Convert a FHIR Encounter to an encounter row."""
        now = utcnow()
        
        start = parse_instant(encounter.period.start) if encounter.period else None
        
        notes = ""
        if encounter.text and encounter.text.div:
            # Literal removal of the wrapper, as written by to_resource
            div = encounter.text.div.replace(NARRATIVE_DIV_OPEN, "").replace(NARRATIVE_DIV_CLOSE, "")
            notes = html.unescape(div)
        
        entity = EncounterEntity(
            id=encounter.id or generate_id(),
            patient_id=_patient_id_from(encounter.subject) or "",
            date=start or now,
            status=_status_from_wire(encounter.status, EncounterStatus, EncounterStatus.IN_PROGRESS),
            notes=notes,
            updated_at=now,
        )
        
        logger.debug(
            "Encounter resource -> entity %s: patient=%s status=%s date=%s",
            entity.id, entity.patient_id, entity.status, entity.date
        )
        return entity
