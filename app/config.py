"""Configuration du service de recherche d'annonces."""
from typing import List
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Configuration de l'application."""

    # ➡️ MongoDB
    MONGODB_URL: str = "mongodb://localhost:27017"
    MONGODB_DATABASE: str = "listings"
    LISTINGS_COLLECTION: str = "properties"
    REVIEWS_COLLECTION: str = "reviews"

    # Redis (cache du géocodage inverse)
    REDIS_URL: str = "redis://redis:6379/0"
    GEOCODE_CACHE_TTL: int = 3600  # 0 désactive le cache

    # Géocodage inverse
    GEOCODER_URL: str = "https://api.bigdatacloud.net/data/reverse-geocode-client"
    GEOCODER_LANGUAGE: str = "en"
    GEOCODER_TIMEOUT: float = 5.0

    # Géospatial
    EARTH_RADIUS_KM: float = 6371.0
    KM_MULTIPLIER: float = 0.001
    MILE_MULTIPLIER: float = 0.000621371

    # Tri / projection par défaut
    DEFAULT_SORT: str = "-createdAt"
    EXCLUDED_FIELDS: List[str] = ["__v"]

    # Logs
    LOG_DIR: str = "logs"
    LOG_LEVEL: str = "INFO"

    # Performance
    ENABLE_METRICS: bool = True

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"


settings = Settings()
