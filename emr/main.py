from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging

from . import models, schemas, database
from .config import settings
from .exceptions import EMRError
from .routers import appointments_router, encounters_router, patients_router

from contextlib import asynccontextmanager

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)

# Resource type named by each route prefix, for body parse errors
_RESOURCE_PREFIXES = ("Patient", "Appointment", "Encounter")

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize database tables on startup"""
    models.Base.metadata.create_all(bind=database.engine)
    logger.info("Database tables created")
    yield

# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    description="Electronic Medical Records API serving FHIR Patient, Appointment and Encounter resources",
    version="1.0.0",
    debug=settings.debug,
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(patients_router)
app.include_router(appointments_router)
app.include_router(encounters_router)

# ============================================================================
# ERROR HANDLING
# ============================================================================

@app.exception_handler(EMRError)
async def emr_error_handler(request: Request, exc: EMRError):
    """Translate store/parse errors into {error, details} responses"""
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.details, exc_info=exc)
    else:
        logger.warning("%s %s -> %d: %s", request.method, request.url.path, exc.status_code, exc.message)
    body = schemas.ErrorResponse(**exc.to_dict())
    return JSONResponse(status_code=exc.status_code, content=body.model_dump(exclude_none=True))

@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Unreadable request bodies are reported as 400 like other malformed input"""
    segments = request.url.path.strip("/").split("/")
    resource_type = next((s for s in segments if s in _RESOURCE_PREFIXES), "")
    error = f"Invalid FHIR {resource_type} resource" if resource_type else "Invalid request"
    logger.warning("%s %s -> 400: %s", request.method, request.url.path, error)
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=schemas.ErrorResponse(
            error=error,
            details=str(jsonable_encoder(exc.errors()))
        ).model_dump(exclude_none=True)
    )

# ============================================================================
# HEALTH
# ============================================================================

@app.get("/health", response_model=schemas.HealthResponse)
def health_check():
    """
    Health check endpoint - returns {"status": "ok"}
    
    This endpoint verifies the server is running properly.
    """
    return {"status": "ok"}


def main():
    """Entry point for the emr-serve command."""
    import uvicorn

    uvicorn.run(
        "emr.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )


if __name__ == "__main__":
    main()
