"""Appointment endpoints."""
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Query, Request, Response, status
from sqlalchemy.orm import Session

from ..database import get_db
from ..fhir import Appointment, AppointmentMapper, FHIRBundler, parse_resource, resource_url
from ..models import AppointmentEntity, generate_id
from ..store import ResourceStore

router = APIRouter(prefix="/fhir/Appointment", tags=["Appointment"])


def _bundle(request: Request, entities) -> dict:
    bundler = FHIRBundler(str(request.base_url))
    bundler.add_resources([AppointmentMapper.to_resource(entity) for entity in entities])
    return bundler.to_dict()


@router.get("")
def list_appointments(request: Request, db: Session = Depends(get_db)):
    """Return every appointment as a search-set Bundle"""
    return _bundle(request, ResourceStore(db).list_all(AppointmentEntity))


# Declared before /{appointment_id} so "search" is not taken for an ID
@router.get("/search")
def search_appointments(
    request: Request,
    patient: Optional[str] = Query(None, description="Owning patient ID"),
    db: Session = Depends(get_db)
):
    """
    Search appointments by patient
    
    Without a patient parameter every appointment is returned. An unknown
    patient yields an empty Bundle, not an error.
    """
    store = ResourceStore(db)
    if patient:
        entities = store.search_by_person(AppointmentEntity, patient)
    else:
        entities = store.list_all(AppointmentEntity)
    return _bundle(request, entities)


@router.get("/{appointment_id}")
def get_appointment(appointment_id: str, db: Session = Depends(get_db)):
    """Fetch a specific appointment by ID (404 if missing)"""
    entity = ResourceStore(db).get_by_id(AppointmentEntity, appointment_id)
    return AppointmentMapper.to_resource(entity).to_dict()


@router.post("", status_code=status.HTTP_201_CREATED)
def create_appointment(
    request: Request,
    response: Response,
    payload: Any = Body(...),
    db: Session = Depends(get_db)
):
    """
    Create an appointment from a FHIR Appointment resource
    
    The patient is taken from the first participant whose actor is a
    Patient reference. Returns 400 if that patient doesn't exist.
    """
    appointment = parse_resource(payload, Appointment)
    
    entity = AppointmentMapper.to_entity(appointment)
    entity.id = generate_id()
    entity = ResourceStore(db).create(entity)
    
    created = AppointmentMapper.to_resource(entity)
    response.headers["Location"] = resource_url(str(request.base_url), created)
    return created.to_dict()


@router.put("/{appointment_id}")
def update_appointment(
    appointment_id: str,
    payload: Any = Body(...),
    db: Session = Depends(get_db)
):
    """Replace an existing appointment (404 if missing, 400 if its patient is unknown)"""
    store = ResourceStore(db)
    store.get_by_id(AppointmentEntity, appointment_id)
    
    appointment = parse_resource(payload, Appointment)
    appointment.id = appointment_id
    
    entity = store.update(AppointmentEntity, appointment_id, AppointmentMapper.to_entity(appointment))
    return AppointmentMapper.to_resource(entity).to_dict()


@router.delete("/{appointment_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_appointment(appointment_id: str, db: Session = Depends(get_db)):
    """Delete an appointment (404 if missing)"""
    ResourceStore(db).delete(AppointmentEntity, appointment_id)
    return None
