"""API routers for the FHIR resource endpoints."""

from .appointments import router as appointments_router
from .encounters import router as encounters_router
from .patients import router as patients_router

__all__ = [
    "appointments_router",
    "encounters_router",
    "patients_router",
]
