"""
FHIR Wire Models

Pydantic models for the subset of FHIR R4 Patient, Appointment,
Encounter and Bundle that this server reads and writes.

Every element is optional: missing data is resolved to defaults by
the mappers, never rejected here. Validation only fails when the JSON
has the wrong shape (e.g. `name` is not a list, `start` is not an
instant) or names a different resource type.
"""
from datetime import datetime
from typing import Annotated, Any, List, Literal, Optional, Type, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from ..exceptions import MalformedInput


class FHIRElement(BaseModel):
    """Base for all wire elements; unknown FHIR elements are carried through."""
    model_config = ConfigDict(extra="allow")
    
    def to_dict(self) -> dict:
        """JSON-ready dict without empty elements."""
        return self.model_dump(mode="json", exclude_none=True)


# ============================================================================
# DATA TYPES
# ============================================================================

class Meta(FHIRElement):
    lastUpdated: Optional[datetime] = None


class Reference(FHIRElement):
    reference: Optional[str] = None


class HumanName(FHIRElement):
    use: Optional[str] = None
    family: Optional[str] = None
    given: Optional[List[Optional[str]]] = None


class ContactPoint(FHIRElement):
    system: Optional[str] = None
    value: Optional[str] = None
    use: Optional[str] = None


class Address(FHIRElement):
    use: Optional[str] = None
    type: Optional[str] = None
    text: Optional[str] = None
    line: Optional[List[Optional[str]]] = None
    city: Optional[str] = None
    district: Optional[str] = None
    state: Optional[str] = None
    postalCode: Optional[str] = None
    country: Optional[str] = None


class Period(FHIRElement):
    # Kept as text: period.start is parsed leniently and emitted in a fixed format
    start: Optional[str] = None
    end: Optional[str] = None


class Narrative(FHIRElement):
    status: Optional[str] = None
    div: Optional[str] = None


class AppointmentParticipant(FHIRElement):
    actor: Optional[Reference] = None
    status: Optional[str] = None


# ============================================================================
# RESOURCES
# ============================================================================

class Resource(FHIRElement):
    id: Optional[str] = None
    meta: Optional[Meta] = None


class Patient(Resource):
    resourceType: Literal["Patient"] = "Patient"
    name: Optional[List[HumanName]] = None
    # Kept as text: unparseable birth dates become "unset" rather than errors
    birthDate: Optional[str] = None
    gender: Optional[str] = None
    telecom: Optional[List[ContactPoint]] = None
    address: Optional[List[Address]] = None


class Appointment(Resource):
    resourceType: Literal["Appointment"] = "Appointment"
    status: Optional[str] = None
    description: Optional[str] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    participant: Optional[List[AppointmentParticipant]] = None


class Encounter(Resource):
    resourceType: Literal["Encounter"] = "Encounter"
    status: Optional[str] = None
    subject: Optional[Reference] = None
    period: Optional[Period] = None
    text: Optional[Narrative] = None


class BundleEntry(FHIRElement):
    fullUrl: Optional[str] = None
    resource: Optional[Union[Patient, Appointment, Encounter]] = None


class Bundle(Resource):
    resourceType: Literal["Bundle"] = "Bundle"
    type: str = "searchset"
    total: int = 0
    entry: List[BundleEntry] = Field(default_factory=list)


# ============================================================================
# PARSING
# ============================================================================

FHIRResource = Annotated[
    Union[Patient, Appointment, Encounter],
    Field(discriminator="resourceType")
]

_resource_adapter = TypeAdapter(FHIRResource)

ResourceT = TypeVar("ResourceT", Patient, Appointment, Encounter)


def parse_resource(payload: Any, expected: Type[ResourceT]) -> ResourceT:
    """
    Parse a JSON body into the expected FHIR resource model.
    
    Args:
        payload: Decoded JSON request body
        expected: Patient, Appointment or Encounter
        
    Returns:
        Validated resource model
        
    Raises:
        MalformedInput: body is not an object, has a missing or different
            resourceType, or an element has the wrong shape
    """
    resource_type = expected.__name__
    
    if not isinstance(payload, dict):
        raise MalformedInput(resource_type, "Request body must be a JSON object")
    
    try:
        resource = _resource_adapter.validate_python(payload)
    except ValidationError as e:
        raise MalformedInput(resource_type, str(e)) from e
    
    if not isinstance(resource, expected):
        raise MalformedInput(
            resource_type,
            f"Expected resourceType '{resource_type}', got '{resource.resourceType}'"
        )
    
    return resource
