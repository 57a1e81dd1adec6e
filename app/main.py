"""Main module for the FastAPI application."""
from contextlib import asynccontextmanager
from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse
from redis.exceptions import ConnectionError as RedisConnectionError
from .config import settings
from .models import SearchResponse
from .errors import (
    ExternalServiceError,
    ListingNotFoundError,
    ListingSearchError,
    StoreError,
    ValidationError,
)
from .db.mongo_connector import MongoConnector, MongoListingStore
from .geocoding.reverse_geocoder import ReverseGeocoder
from .search.listing_service import ListingSearchService
from .cache import cache_manager
from .logger import logger


# --- Initialisation des variables globales ---

# Connecteur MongoDB (initialisé au démarrage)
db_connector: MongoConnector = MongoConnector(settings.MONGODB_URL, settings.MONGODB_DATABASE)

listing_store: MongoListingStore = MongoListingStore(
    db_connector,
    collection=settings.LISTINGS_COLLECTION,
    reviews_collection=settings.REVIEWS_COLLECTION,
)

# Géocodage inverse (cache Redis des villes déjà résolues)
geocoder: ReverseGeocoder = ReverseGeocoder(cache=cache_manager)

search_service: ListingSearchService = ListingSearchService(
    store=listing_store,
    geocoder=geocoder,
)
# Alias `service` : les tests patchent `main.service`
service = search_service


@asynccontextmanager
async def lifespan(_app: FastAPI):
    """Handle FastAPI startup and shutdown events."""
    logger.info("Starting up Listings Search API...")

    try:
        await db_connector.connect()
        logger.info("MongoDB connection established successfully.")
    except ConnectionError as e:
        logger.error("Failed to connect to MongoDB: {error}", error=e)

    try:
        await cache_manager.redis.ping()
        logger.info("Redis cache connected successfully.")
    except RedisConnectionError as e:
        logger.error("Failed to connect to Redis: {error}", error=e)

    yield

    logger.info("Shutting down Listings Search API...")
    await db_connector.close()
    logger.info("MongoDB connection closed.")
    await geocoder.close()
    await cache_manager.close()
    logger.info("Redis connection closed.")


app = FastAPI(
    title="Listings Search API",
    lifespan=lifespan
)


def get_service() -> ListingSearchService:
    """Dépendance FastAPI pour obtenir l'instance du service de recherche."""
    return service


def _error(status_code: int, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": {"error": str(exc)}})


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    logger.warning("Rejected request {path}: {error}", path=request.url.path, error=exc)
    return _error(status.HTTP_400_BAD_REQUEST, exc)


@app.exception_handler(ListingNotFoundError)
async def not_found_handler(request: Request, exc: ListingNotFoundError):
    logger.info("Listing not found on {path}", path=request.url.path)
    return _error(status.HTTP_404_NOT_FOUND, exc)


@app.exception_handler(ExternalServiceError)
async def external_service_error_handler(request: Request, exc: ExternalServiceError):
    logger.error("External service failure on {path}: {error}", path=request.url.path, error=exc)
    return _error(status.HTTP_502_BAD_GATEWAY, exc)


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError):
    logger.error("Store failure on {path}: {error}", path=request.url.path, error=exc)
    return _error(status.HTTP_503_SERVICE_UNAVAILABLE, exc)


@app.get("/listings", response_model=SearchResponse)
async def search_listings(request: Request, svc: ListingSearchService = Depends(get_service)):
    """
    GET /listings

    Tous les paramètres de la query string sont transmis tels quels :
    page, limit, sort, fields, keyword et filtres (`pricePerNight[gte]=100`).
    """
    params = request.query_params
    logger.info("Received search: {params}", params=str(params))
    try:
        return await svc.search(params)
    except ListingSearchError:
        raise
    except Exception as e:
        logger.exception("Error processing search request")
        raise HTTPException(status_code=500, detail={"error": str(e)}) from e


@app.get("/listings/near/{coordinates}/{unit}", response_model=SearchResponse)
async def listings_near(
        coordinates: str,
        unit: str,
        request: Request,
        svc: ListingSearchService = Depends(get_service)):
    """Annonces de la ville du point `lat,lng`, triées par distance (km ou mi)."""
    logger.info("Received nearest search at {coordinates} ({unit})",
                coordinates=coordinates, unit=unit)
    return await svc.search_nearest(coordinates, unit, request.query_params)


@app.get("/listings/within/{coordinates}/{distance}", response_model=SearchResponse)
async def listings_within(
        coordinates: str,
        distance: str,
        request: Request,
        svc: ListingSearchService = Depends(get_service)):
    """Annonces à moins de `distance` km du point `lat,lng`."""
    logger.info("Received radius search at {coordinates} ({distance} km)",
                coordinates=coordinates, distance=distance)
    return await svc.search_within_radius(coordinates, distance, request.query_params)


@app.get("/listings/count")
async def count_listings(svc: ListingSearchService = Depends(get_service)):
    """Nombre total d'annonces."""
    return {"total": await svc.count_listings()}


@app.get("/listings/{listing_id}")
async def get_listing(listing_id: str,
                      svc: ListingSearchService = Depends(get_service)):
    """Annonce unique avec ses avis."""
    return await svc.get_listing(listing_id)


@app.get("/")
def root():
    """Root endpoint to check API status."""
    return {"status": "ok", "message": "Listings Search API is running 🚀"}


@app.get("/health", status_code=status.HTTP_200_OK, tags=["Monitoring"])
async def health_check():
    """
    Health check endpoint.

    Returns 200 OK if MongoDB and Redis are reachable, otherwise 503 Service Unavailable.
    """
    services_status = {"database": "ok", "redis": "ok"}
    try:
        await cache_manager.redis.ping()
    except RedisConnectionError:
        services_status["redis"] = "error"
        logger.error("Health check failed: Redis connection error.")

    try:
        await db_connector.ping()
    except ConnectionError:
        services_status["database"] = "error"
        logger.error("Health check failed: Database connection error.")

    if "error" in services_status.values():
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=services_status)

    return services_status
