from typing import List

from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    """Application configuration with environment variable support"""
    
    # Database
    database_url: str = "sqlite:///./emr.db"
    
    # App
    app_name: str = "EMR FHIR Server"
    debug: bool = False
    log_level: str = "INFO"
    
    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    
    # Origins allowed to call the API (the browser UI runs on :3000 in development)
    cors_origins: List[str] = ["http://localhost:3000"]
    
    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

settings = Settings()
