"""Module contenant le service de recherche d'annonces."""
from typing import Any, Dict, Mapping, Optional

from bson import ObjectId

from app.errors import ListingNotFoundError, ValidationError
from app.geocoding.reverse_geocoder import ReverseGeocoder
from app.logger import logger
from app.models import SearchResponse
from app.search.executor import ListingStore, QueryExecutor
from app.search.filter_compiler import FilterCompiler, parse_page
from app.search.geo_pipeline import GeoPipelineBuilder, parse_coordinates

# Ordre stable pour paginer la recherche par rayon (aucun tri métier)
RADIUS_SORT = [("_id", 1)]


class ListingSearchService:
    """Recherche générique, proximité dans une ville et rayon sur la sphère."""

    def __init__(
            self,
            store: ListingStore,
            geocoder: ReverseGeocoder,
            compiler: Optional[FilterCompiler] = None,
            geo_builder: Optional[GeoPipelineBuilder] = None):
        self.store = store
        self.executor = QueryExecutor(store)
        self.geocoder = geocoder
        self.compiler = compiler or FilterCompiler()
        self.geo_builder = geo_builder or GeoPipelineBuilder()

    async def search(self, request: Mapping[str, Any]) -> SearchResponse:
        """Recherche générique : mot-clé ou filtres, tri, projection, pagination."""
        compiled = self.compiler.compile(request)
        return await self.executor.execute(
            compiled.filter, compiled.sort, compiled.projection, compiled.page
        )

    async def search_nearest(
            self,
            coordinates: str,
            unit: str,
            request: Mapping[str, Any]) -> SearchResponse:
        """
        Annonces de la ville du point, triées par distance croissante.

        Args:
            coordinates: "lat,lng"
            unit: "km" ou autre (miles)
            request: doit contenir page et limit

        Raises:
            ValidationError: coordonnées ou pagination invalides
            ExternalServiceError: échec du géocodage inverse
        """
        point = parse_coordinates(coordinates)
        page = parse_page(request, required=True)

        locality = await self.geocoder.reverse_geocode(point.lat, point.lng)
        logger.debug("Nearest search around {} in '{}' ({})", point, locality.name, unit)

        return await self.executor.execute_pipeline(
            self.geo_builder.nearest_match_stages(point, unit, locality.name),
            page,
            self.geo_builder.nearest_tail_stages(),
        )

    async def search_within_radius(
            self,
            coordinates: str,
            distance: str,
            request: Mapping[str, Any]) -> SearchResponse:
        """Annonces situées à moins de `distance` km du point."""
        point = parse_coordinates(coordinates)
        geo_filter = self.geo_builder.build_radius_filter(point, distance)
        page = parse_page(request, required=True)

        return await self.executor.execute(
            geo_filter,
            RADIUS_SORT,
            self.compiler.compile_projection(None),
            page,
        )

    async def get_listing(self, listing_id: str) -> Dict[str, Any]:
        """Annonce unique, avis inclus."""
        if not ObjectId.is_valid(listing_id):
            raise ValidationError(f"Invalid listing id: {listing_id!r}")
        listing = await self.store.find_one_with_reviews(listing_id)
        if listing is None:
            raise ListingNotFoundError(listing_id)
        return listing

    async def count_listings(self) -> int:
        """Nombre total d'annonces (statistique admin)."""
        return await self.store.count_documents({})
