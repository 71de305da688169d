"""Configuration management using Pydantic Settings."""

import os
from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # API Keys (only needed by the LLM day generator)
    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4o-mini"
    bedrock_model_id: str = "us.amazon.nova-pro-v1:0"
    aws_region: str = "us-east-1"
    aws_profile: Optional[str] = None
    use_openai_primary: bool = True

    # App Configuration
    environment: str = "development"
    log_level: str = "INFO"

    # Generation limits
    max_trip_days: int = 14
    max_generator_calls: int = 20
    generation_concurrency: int = 1
    day_generation_timeout: float = 60.0
    director_timeout: float = 15.0

    # Director / refinement loop
    enable_validation: bool = True
    max_refinement_iterations: int = 3
    budget_warning_threshold: float = 0.10
    budget_reject_threshold: float = 0.20
    budget_under_threshold: float = 0.30
    budget_buffer_percentage: float = 0.10
    include_accommodation: bool = True
    max_activities_per_day: int = 5
    min_buffer_minutes: int = 15
    toddler_buffer_minutes: int = 30
    elderly_buffer_minutes: int = 20
    max_activity_hours_per_day: int = 10
    walking_threshold_km: float = 2.0

    # Streaming
    heartbeat_interval: float = 15.0
    cache_ttl_seconds: int = 24 * 60 * 60

    class Config:
        """Pydantic configuration."""
        env_file = os.path.join(os.path.dirname(__file__), "..", "..", ".env")
        env_prefix = "TRIPSTREAM_"
        case_sensitive = False
        extra = "ignore"


# Global settings instance
settings = Settings()
