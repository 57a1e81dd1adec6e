"""Géocodage inverse : coordonnées -> nom de ville (BigDataCloud)."""
import asyncio
from typing import Any, Optional

import httpx

from app.config import settings
from app.errors import ExternalServiceError
from app.logger import logger
from app.models import Locality

CacheManager = Any


class ReverseGeocoder:
    """
    Client HTTP du service de géocodage inverse.

    Un seul appel externe par requête, borné par `timeout`. Aucun repli :
    un échec ou un timeout remonte en `ExternalServiceError`. Le cache Redis
    n'est consulté qu'avant l'appel, jamais à la place d'un appel échoué.
    """

    def __init__(
            self,
            base_url: str = settings.GEOCODER_URL,
            language: str = settings.GEOCODER_LANGUAGE,
            timeout: float = settings.GEOCODER_TIMEOUT,
            cache: Optional[CacheManager] = None,
            cache_ttl: int = settings.GEOCODE_CACHE_TTL,
            client: Optional[httpx.AsyncClient] = None):
        self.base_url = base_url
        self.language = language
        self.timeout = timeout
        self.cache = cache
        self.cache_ttl = cache_ttl
        self._client = client
        self._lock = asyncio.Lock()

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            async with self._lock:
                if self._client is None:
                    self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    def _cache_key(self, lat: float, lng: float) -> str:
        # ~11 m de précision : même ville
        return f"geocode:{self.language}:{lat:.4f},{lng:.4f}"

    async def reverse_geocode(self, lat: float, lng: float) -> Locality:
        """Résout la ville correspondant à (lat, lng)."""
        use_cache = self.cache is not None and self.cache_ttl > 0
        cache_key = self._cache_key(lat, lng)
        if use_cache:
            cached = await self.cache.get(cache_key)
            if cached is not None:
                logger.debug("Geocode cache HIT for key: {}", cache_key)
                return Locality(name=cached)

        client = await self._get_client()
        params = {
            "latitude": lat,
            "longitude": lng,
            "localityLanguage": self.language,
        }
        try:
            response = await asyncio.wait_for(
                client.get(self.base_url, params=params), timeout=self.timeout
            )
            response.raise_for_status()
            data = response.json()
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            logger.error("Reverse geocoding timed out for ({}, {})", lat, lng)
            raise ExternalServiceError("Reverse geocoding timed out") from e
        except httpx.HTTPStatusError as e:
            logger.error(
                "Reverse geocoding HTTP error {} for ({}, {})",
                e.response.status_code, lat, lng
            )
            raise ExternalServiceError(
                f"Reverse geocoding failed with status {e.response.status_code}"
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Reverse geocoding failed for ({}, {}): {}", lat, lng, e)
            raise ExternalServiceError(f"Reverse geocoding failed: {e}") from e

        city = data.get("city") if isinstance(data, dict) else None
        if city is None:
            raise ExternalServiceError("Reverse geocoding returned no locality")

        locality = Locality(name=str(city))
        logger.info("Resolved ({}, {}) to locality '{}'", lat, lng, locality.name)
        if use_cache and locality.name:
            await self.cache.set(cache_key, locality.name, expire=self.cache_ttl)
        return locality

    async def close(self):
        """Ferme le client HTTP."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
