"""
FHIR code systems used by the EMR resources.

Values follow the FHIR R4 value sets; lookups are case-insensitive and
return None for codes outside the set.
"""
from enum import Enum
from typing import Optional, Type, TypeVar

CodeT = TypeVar("CodeT", bound=Enum)


class Gender(str, Enum):
    """Patient gender aligned with FHIR administrative-gender"""
    MALE = "male"
    FEMALE = "female"
    OTHER = "other"
    UNKNOWN = "unknown"


class AddressUse(str, Enum):
    """Address purpose aligned with FHIR address-use"""
    HOME = "home"
    WORK = "work"
    TEMP = "temp"
    OLD = "old"
    BILLING = "billing"


class AddressType(str, Enum):
    """Address kind aligned with FHIR address-type"""
    POSTAL = "postal"
    PHYSICAL = "physical"
    BOTH = "both"


class AppointmentStatus(str, Enum):
    """Subset of FHIR appointmentstatus supported by the scheduler"""
    BOOKED = "booked"
    CANCELLED = "cancelled"
    FULFILLED = "fulfilled"
    NOSHOW = "noshow"


class EncounterStatus(str, Enum):
    """Subset of FHIR encounter-status supported by the charting views"""
    PLANNED = "planned"
    ARRIVED = "arrived"
    IN_PROGRESS = "in-progress"
    FINISHED = "finished"
    CANCELLED = "cancelled"


def parse_code(code_type: Type[CodeT], value: Optional[str]) -> Optional[CodeT]:
    """Look up `value` in `code_type`, ignoring case and surrounding whitespace."""
    if not value:
        return None
    try:
        return code_type(value.strip().lower())
    except ValueError:
        return None
