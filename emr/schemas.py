from pydantic import BaseModel
from typing import Optional

# Health check schema
class HealthResponse(BaseModel):
    """Health check response"""
    status: str

# Error schema
class ErrorResponse(BaseModel):
    """Body of every 4xx/5xx response"""
    error: str
    details: Optional[str] = None
    patientId: Optional[str] = None
