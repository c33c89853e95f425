"""
Resource Store

SQLAlchemy persistence for patients, appointments and encounters.

Every public method is one unit of work: it commits on success and
rolls back on failure. Appointment and encounter ownership is checked
against the patients table before writing, and the database foreign
key (ON DELETE CASCADE) removes a patient's children when the patient
is deleted.
"""
from typing import List, Type, Union
import logging

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from .exceptions import ConstraintViolation, NotFound, PersistenceFailure
from .fhir.mappers import as_utc
from .models import (
    PatientEntity,
    AppointmentEntity,
    EncounterEntity,
    ENTITY_TYPES,
    generate_id,
    utcnow,
)

logger = logging.getLogger(__name__)

Entity = Union[PatientEntity, AppointmentEntity, EncounterEntity]

# Columns the store owns; everything else is replaced on update
_MANAGED_COLUMNS = {"id", "created_at", "updated_at"}


def _entity_class(kind: Union[str, Type[Entity]]) -> Type[Entity]:
    if isinstance(kind, str):
        try:
            return ENTITY_TYPES[kind]
        except KeyError:
            raise ValueError(f"Unknown resource type: {kind}")
    return kind


def _type_name(entity_class: Type[Entity]) -> str:
    for name, cls in ENTITY_TYPES.items():
        if cls is entity_class:
            return name
    return entity_class.__name__


class ResourceStore:
    """
    CRUD operations over the EMR tables.
    
    Usage:
        store = ResourceStore(db)
        patient = store.create(PatientMapper.to_entity(resource))
        encounters = store.search_by_person("Encounter", patient.id)
    """
    
    def __init__(self, db: Session):
        self.db = db
    
    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    
    def get_by_id(self, kind: Union[str, Type[Entity]], resource_id: str) -> Entity:
        """
        Fetch one record.
        
        Raises:
            NotFound: no record of that kind has this id
        """
        entity_class = _entity_class(kind)
        logger.debug("Loading %s/%s", _type_name(entity_class), resource_id)
        try:
            entity = self.db.get(entity_class, resource_id)
        except SQLAlchemyError as e:
            raise PersistenceFailure(str(e)) from e
        if entity is None:
            raise NotFound(_type_name(entity_class), resource_id)
        return entity
    
    def exists(self, kind: Union[str, Type[Entity]], resource_id: str) -> bool:
        try:
            self.get_by_id(kind, resource_id)
        except NotFound:
            return False
        return True
    
    def list_all(self, kind: Union[str, Type[Entity]]) -> List[Entity]:
        """All records of a kind; encounters newest first."""
        entity_class = _entity_class(kind)
        query = self.db.query(entity_class)
        if entity_class is EncounterEntity:
            query = query.order_by(EncounterEntity.date.desc())
        try:
            return query.all()
        except SQLAlchemyError as e:
            raise PersistenceFailure(str(e)) from e
    
    def search_by_person(self, kind: Union[str, Type[Entity]], patient_id: str) -> List[Entity]:
        """Appointments or encounters owned by a patient; encounters newest first."""
        entity_class = _entity_class(kind)
        if entity_class is PatientEntity:
            raise ValueError("Patients cannot be searched by owning patient")
        
        query = self.db.query(entity_class).filter(entity_class.patient_id == patient_id)
        if entity_class is EncounterEntity:
            query = query.order_by(EncounterEntity.date.desc())
        try:
            return query.all()
        except SQLAlchemyError as e:
            raise PersistenceFailure(str(e)) from e
    
    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    
    def create(self, entity: Entity) -> Entity:
        """
        Insert a new record.
        
        Assigns an id if the entity has none and stamps created/updated times.
        
        Raises:
            ConstraintViolation: the owning patient does not exist
            PersistenceFailure: the database failed the insert
        """
        self._check_owner(entity)
        
        if not entity.id:
            entity.id = generate_id()
        now = utcnow()
        entity.created_at = now
        entity.updated_at = now
        
        self.db.add(entity)
        self._commit(entity)
        self.db.refresh(entity)
        logger.info("Created %s/%s", _type_name(type(entity)), entity.id)
        return entity
    
    def update(self, kind: Union[str, Type[Entity]], resource_id: str, replacement: Entity) -> Entity:
        """
        Replace every mutable column of an existing record.
        
        The stored id and created_at are kept; updated_at is refreshed.
        
        Raises:
            NotFound: no record with this id
            ConstraintViolation: the new owning patient does not exist
        """
        entity_class = _entity_class(kind)
        entity = self.get_by_id(entity_class, resource_id)
        self._check_owner(replacement)
        
        for column in entity_class.__table__.columns:
            if column.key in _MANAGED_COLUMNS:
                continue
            value = getattr(replacement, column.key)
            # Unset attributes on a transient entity fall back to the column default
            if value is None and column.default is not None and column.default.is_scalar:
                value = column.default.arg
            setattr(entity, column.key, value)
        
        previous = as_utc(entity.updated_at)
        now = utcnow()
        if previous is not None and previous > now:
            now = previous
        entity.updated_at = now
        
        self._commit(entity)
        self.db.refresh(entity)
        logger.info("Updated %s/%s", _type_name(entity_class), resource_id)
        return entity
    
    def delete(self, kind: Union[str, Type[Entity]], resource_id: str) -> None:
        """
        Remove a record. Deleting a patient removes its appointments and
        encounters through the foreign key cascade.
        
        Raises:
            NotFound: no record with this id
        """
        entity_class = _entity_class(kind)
        entity = self.get_by_id(entity_class, resource_id)
        
        # Children are removed by the database, not the session
        children = []
        if entity_class is PatientEntity:
            children = [
                obj for obj in self.db.identity_map.values()
                if isinstance(obj, (AppointmentEntity, EncounterEntity)) and obj.patient_id == resource_id
            ]
        
        self.db.delete(entity)
        self._commit(entity)
        for child in children:
            self.db.expunge(child)
        logger.info("Deleted %s/%s", _type_name(entity_class), resource_id)
    
    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    
    def _check_owner(self, entity: Entity) -> None:
        if isinstance(entity, PatientEntity):
            return
        if not entity.patient_id or not self.exists(PatientEntity, entity.patient_id):
            logger.warning(
                "%s references missing patient %r", _type_name(type(entity)), entity.patient_id
            )
            raise ConstraintViolation(entity.patient_id)
    
    def _commit(self, entity: Entity) -> None:
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            if isinstance(entity, PatientEntity):
                raise PersistenceFailure(str(e.orig)) from e
            raise ConstraintViolation(entity.patient_id, str(e.orig)) from e
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceFailure(str(e)) from e
