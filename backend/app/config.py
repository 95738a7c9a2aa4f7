from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Dict


class Settings(BaseSettings):
    database_url: str = "sqlite:///./data/matches.db"
    log_level: str = "INFO"

    # Redis configuration
    redis_url: str = "redis://localhost:6379"
    cache_enabled: bool = True

    # Celery configuration
    celery_broker_url: str = "redis://localhost:6379/0"
    celery_result_backend: str = "redis://localhost:6379/0"

    # Match scoring weights (must sum to 100)
    match_weights: Dict[str, int] = {
        "accessibility": 35,
        "subtype": 25,
        "education": 15,
        "regime": 15,
        "location": 10,
    }
    match_compatibility_threshold: int = 50

    # Batch recomputation
    batch_concurrency: int = 8
    pair_timeout_seconds: float = 5.0
    candidate_batch_limit: int = 20  # Default jobs returned per candidate
    job_batch_limit: int = 10  # Default candidates returned per job

    class Config:
        env_file = ".env"


@lru_cache
def get_settings() -> Settings:
    return Settings()
