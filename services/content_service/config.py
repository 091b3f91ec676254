# config.py - Service configuration for content_service
# This file contains configuration settings for the content generation workflow service.

from pydantic_settings import BaseSettings
from typing import Optional

class Settings(BaseSettings):
    # Redis Configuration (run records)
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_db: int = 2
    redis_password: Optional[str] = None
    run_record_ttl: int = 7 * 24 * 3600  # seconds

    # Service Configuration
    service_name: str = "content-service"
    service_port: int = 8005
    log_level: str = "INFO"

    # LLM backends
    llm_api_url: str = "http://localhost:8000"
    llm_api_key: Optional[str] = None
    openai_api_key: Optional[str] = None
    azure_openai_endpoint: Optional[str] = None
    azure_openai_api_version: str = "2024-02-15-preview"

    # Image generation backend
    image_api_url: Optional[str] = None
    image_api_key: Optional[str] = None
    image_timeout: float = 60.0

    # Event integration
    events_enabled: bool = True
    communication_service_url: str = "http://localhost:8004"
    monitoring_service_url: str = "http://localhost:8003"

    # Workflow Configuration
    default_workflow_id: str = "standard"
    max_concurrent_runs: int = 50
    run_retention: float = 600.0  # seconds finished runs stay in memory without redis
    run_timeout: float = 900.0  # seconds, whole-run deadline
    retry_base_delay: float = 1.0
    retry_max_delay: float = 10.0

    class Config:
        env_prefix = "CONTENT_SERVICE_"
        env_file = ".env"

settings = Settings()
