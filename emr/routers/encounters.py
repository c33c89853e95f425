"""Encounter endpoints."""
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Query, Request, Response, status
from sqlalchemy.orm import Session

from ..database import get_db
from ..fhir import Encounter, EncounterMapper, FHIRBundler, parse_resource, resource_url
from ..models import EncounterEntity, generate_id
from ..store import ResourceStore

router = APIRouter(prefix="/fhir/Encounter", tags=["Encounter"])


def _bundle(request: Request, entities) -> dict:
    bundler = FHIRBundler(str(request.base_url))
    bundler.add_resources([EncounterMapper.to_resource(entity) for entity in entities])
    return bundler.to_dict()


@router.get("")
def list_encounters(request: Request, db: Session = Depends(get_db)):
    """Return every encounter as a search-set Bundle, newest first"""
    return _bundle(request, ResourceStore(db).list_all(EncounterEntity))


# Declared before /{encounter_id} so "search" is not taken for an ID
@router.get("/search")
def search_encounters(
    request: Request,
    patient: Optional[str] = Query(None, description="Owning patient ID"),
    db: Session = Depends(get_db)
):
    """
    Search encounters by patient, newest first
    
    Without a patient parameter every encounter is returned. An unknown
    patient yields an empty Bundle, not an error.
    """
    store = ResourceStore(db)
    if patient:
        entities = store.search_by_person(EncounterEntity, patient)
    else:
        entities = store.list_all(EncounterEntity)
    return _bundle(request, entities)


@router.get("/{encounter_id}")
def get_encounter(encounter_id: str, db: Session = Depends(get_db)):
    """Fetch a specific encounter by ID (404 if missing)"""
    entity = ResourceStore(db).get_by_id(EncounterEntity, encounter_id)
    return EncounterMapper.to_resource(entity).to_dict()


@router.post("", status_code=status.HTTP_201_CREATED)
def create_encounter(
    request: Request,
    response: Response,
    payload: Any = Body(...),
    db: Session = Depends(get_db)
):
    """
    Create an encounter from a FHIR Encounter resource
    
    The patient is taken from subject.reference ("Patient/{id}") and the
    period start becomes the encounter date. Returns 400 if that patient
    doesn't exist.
    """
    encounter = parse_resource(payload, Encounter)
    
    entity = EncounterMapper.to_entity(encounter)
    entity.id = generate_id()
    entity = ResourceStore(db).create(entity)
    
    created = EncounterMapper.to_resource(entity)
    response.headers["Location"] = resource_url(str(request.base_url), created)
    return created.to_dict()


@router.put("/{encounter_id}")
def update_encounter(
    encounter_id: str,
    payload: Any = Body(...),
    db: Session = Depends(get_db)
):
    """Replace an existing encounter (404 if missing, 400 if its patient is unknown)"""
    store = ResourceStore(db)
    store.get_by_id(EncounterEntity, encounter_id)
    
    encounter = parse_resource(payload, Encounter)
    encounter.id = encounter_id
    
    entity = store.update(EncounterEntity, encounter_id, EncounterMapper.to_entity(encounter))
    return EncounterMapper.to_resource(entity).to_dict()


@router.delete("/{encounter_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_encounter(encounter_id: str, db: Session = Depends(get_db)):
    """Delete an encounter (404 if missing)"""
    ResourceStore(db).delete(EncounterEntity, encounter_id)
    return None
