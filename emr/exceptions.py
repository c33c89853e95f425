"""
Error taxonomy shared by the store, the FHIR parse step and the API.

Each error knows the HTTP status it is surfaced as; the handlers in
main.py turn them into `{"error": ..., "details": ...}` payloads.
"""
from typing import Any, Dict, Optional


class EMRError(Exception):
    """Base class for all application errors."""
    
    status_code: int = 500
    
    def __init__(self, message: str, details: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details
    
    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class NotFound(EMRError):
    """Lookup by id missed."""
    
    status_code = 404
    
    def __init__(self, resource_type: str, resource_id: str):
        super().__init__(f"{resource_type} not found")
        self.resource_type = resource_type
        self.resource_id = resource_id


class ConstraintViolation(EMRError):
    """A record references a patient that does not exist."""
    
    status_code = 400
    
    def __init__(self, patient_id: str, details: Optional[str] = None):
        super().__init__("Patient not found", details)
        self.patient_id = patient_id
    
    def to_dict(self) -> Dict[str, Any]:
        payload = super().to_dict()
        payload["patientId"] = self.patient_id
        return payload


class MalformedInput(EMRError):
    """Request body could not be read as the expected FHIR resource."""
    
    status_code = 400
    
    def __init__(self, resource_type: str, details: Optional[str] = None):
        super().__init__(f"Invalid FHIR {resource_type} resource", details)
        self.resource_type = resource_type


class PersistenceFailure(EMRError):
    """The database rejected or failed the operation."""
    
    status_code = 500
    
    def __init__(self, details: Optional[str] = None):
        super().__init__("Persistence failure", details)
