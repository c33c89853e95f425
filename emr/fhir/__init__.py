"""
FHIR Conversion Module

Maps the relational EMR entities to and from FHIR-shaped JSON.

Components:
- resources: Pydantic wire models and the parse step
- mappers: Patient, Appointment and Encounter mappers
- address: Address display formatting
- bundler: Search-set Bundle creator
"""
from .address import format_address_text, create_formatted_address
from .bundler import FHIRBundler, resource_url
from .mappers import PatientMapper, AppointmentMapper, EncounterMapper
from .resources import Patient, Appointment, Encounter, Bundle, parse_resource

__all__ = [
    "format_address_text",
    "create_formatted_address",
    "FHIRBundler",
    "resource_url",
    "PatientMapper",
    "AppointmentMapper",
    "EncounterMapper",
    "Patient",
    "Appointment",
    "Encounter",
    "Bundle",
    "parse_resource",
]
