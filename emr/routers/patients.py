"""Patient endpoints: CRUD plus the patient's appointments and encounters."""
from typing import Any

from fastapi import APIRouter, Body, Depends, Request, Response, status
from sqlalchemy.orm import Session

from ..database import get_db
from ..fhir import (
    AppointmentMapper,
    EncounterMapper,
    FHIRBundler,
    Patient,
    PatientMapper,
    parse_resource,
    resource_url,
)
from ..models import AppointmentEntity, EncounterEntity, PatientEntity, generate_id
from ..store import ResourceStore

router = APIRouter(prefix="/fhir/Patient", tags=["Patient"])


@router.get("")
def list_patients(request: Request, db: Session = Depends(get_db)):
    """Return every patient as a search-set Bundle"""
    bundler = FHIRBundler(str(request.base_url))
    for entity in ResourceStore(db).list_all(PatientEntity):
        bundler.add_resource(PatientMapper.to_resource(entity))
    return bundler.to_dict()


@router.get("/{patient_id}")
def get_patient(patient_id: str, db: Session = Depends(get_db)):
    """
    Fetch a specific patient by ID
    
    Returns:
    - FHIR Patient if found
    - 404 error if the patient doesn't exist
    """
    entity = ResourceStore(db).get_by_id(PatientEntity, patient_id)
    return PatientMapper.to_resource(entity).to_dict()


@router.post("", status_code=status.HTTP_201_CREATED)
def create_patient(
    request: Request,
    response: Response,
    payload: Any = Body(...),
    db: Session = Depends(get_db)
):
    """
    Create a patient from a FHIR Patient resource
    
    The ID is always assigned by the server. Returns the stored patient
    with a Location header pointing at it.
    """
    patient = parse_resource(payload, Patient)
    
    entity = PatientMapper.to_entity(patient)
    entity.id = generate_id()
    entity = ResourceStore(db).create(entity)
    
    created = PatientMapper.to_resource(entity)
    response.headers["Location"] = resource_url(str(request.base_url), created)
    return created.to_dict()


@router.put("/{patient_id}")
def update_patient(
    patient_id: str,
    payload: Any = Body(...),
    db: Session = Depends(get_db)
):
    """
    Replace an existing patient
    
    The ID in the path wins over any ID in the body. Returns 404 if the
    patient doesn't exist.
    """
    store = ResourceStore(db)
    store.get_by_id(PatientEntity, patient_id)
    
    patient = parse_resource(payload, Patient)
    patient.id = patient_id
    
    entity = store.update(PatientEntity, patient_id, PatientMapper.to_entity(patient))
    return PatientMapper.to_resource(entity).to_dict()


@router.delete("/{patient_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_patient(patient_id: str, db: Session = Depends(get_db)):
    """
    Delete a patient together with its appointments and encounters
    
    Returns:
    - 204 No Content if successful
    - 404 error if the patient doesn't exist
    """
    ResourceStore(db).delete(PatientEntity, patient_id)
    return None


@router.get("/{patient_id}/Appointment")
def get_patient_appointments(patient_id: str, request: Request, db: Session = Depends(get_db)):
    """Appointments of one patient; 404 if the patient doesn't exist"""
    store = ResourceStore(db)
    store.get_by_id(PatientEntity, patient_id)
    
    bundler = FHIRBundler(str(request.base_url))
    for entity in store.search_by_person(AppointmentEntity, patient_id):
        bundler.add_resource(AppointmentMapper.to_resource(entity))
    return bundler.to_dict()


@router.get("/{patient_id}/Encounter")
def get_patient_encounters(patient_id: str, request: Request, db: Session = Depends(get_db)):
    """Encounters of one patient, newest first; 404 if the patient doesn't exist"""
    store = ResourceStore(db)
    store.get_by_id(PatientEntity, patient_id)
    
    bundler = FHIRBundler(str(request.base_url))
    for entity in store.search_by_person(EncounterEntity, patient_id):
        bundler.add_resource(EncounterMapper.to_resource(entity))
    return bundler.to_dict()
