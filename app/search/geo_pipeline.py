"""Construction des requêtes géospatiales (proximité dans une ville, rayon sur la sphère)."""
import math
from typing import Any, Dict, List

from pydantic import ValidationError as PydanticValidationError

from app.config import settings
from app.errors import ValidationError
from app.models import GeoPoint

# Champs renvoyés par la recherche de proximité
NEAREST_PROJECTION: Dict[str, int] = {
    "distance": 1,
    "name": 1,
    "location.city": 1,
    "propertyType": 1,
    "location.state": 1,
    "pricePerNight": 1,
    "ratingsAverage": 1,
    "images": 1,
    "owner": 1,
}

LOCALITY_FIELD = "location.city"


def parse_coordinates(raw: str) -> GeoPoint:
    """`"48.85,2.35"` -> GeoPoint(lat=48.85, lng=2.35). L'ordre d'entrée est lat,lng."""
    parts = [part.strip() for part in str(raw).split(",")]
    if len(parts) != 2:
        raise ValidationError(f"Coordinates must be 'lat,lng', got {raw!r}")
    try:
        lat, lng = float(parts[0]), float(parts[1])
    except ValueError as e:
        raise ValidationError(f"Coordinates must be numeric, got {raw!r}") from e
    if not (math.isfinite(lat) and math.isfinite(lng)):
        raise ValidationError(f"Coordinates must be finite, got {raw!r}")
    try:
        return GeoPoint(lat=lat, lng=lng)
    except PydanticValidationError as e:
        raise ValidationError(f"Coordinates out of range: {raw!r}") from e


def distance_multiplier(unit: str) -> float:
    """km -> 0.001 ; toute autre unité -> miles (mètres * 0.000621371)."""
    if unit == "km":
        return settings.KM_MULTIPLIER
    return settings.MILE_MULTIPLIER


def radius_in_radians(distance: Any) -> float:
    """
    Convertit une distance en km en rayon angulaire (distance / rayon terrestre).

    Raises:
        ValidationError: si la distance n'est pas un nombre fini et positif.
    """
    try:
        value = float(str(distance).strip())
    except ValueError as e:
        raise ValidationError("invalid radius") from e
    radius = value / settings.EARTH_RADIUS_KM
    if not math.isfinite(radius) or radius < 0:
        raise ValidationError("invalid radius")
    return radius


class GeoPipelineBuilder:
    """Fabrique les étapes d'agrégation et les filtres géospatiaux."""

    @staticmethod
    def geo_near_stage(point: GeoPoint, unit: str) -> Dict[str, Any]:
        """Étape `$geoNear` : calcule `distance` et trie par distance croissante."""
        return {
            "$geoNear": {
                "near": {"type": "Point", "coordinates": point.coordinates},
                "distanceField": "distance",
                "distanceMultiplier": distance_multiplier(unit),
                "spherical": True,
            }
        }

    def nearest_match_stages(
            self,
            point: GeoPoint,
            unit: str,
            locality: str) -> List[Dict[str, Any]]:
        """Étapes partagées par la page et le comptage : proximité puis ville."""
        return [
            self.geo_near_stage(point, unit),
            {"$match": {LOCALITY_FIELD: locality}},
        ]

    @staticmethod
    def nearest_tail_stages() -> List[Dict[str, Any]]:
        """Étapes appliquées à la page seulement, après skip/limit."""
        return [{"$project": dict(NEAREST_PROJECTION)}]

    def build_nearest_pipeline(
            self,
            point: GeoPoint,
            unit: str,
            locality: str) -> List[Dict[str, Any]]:
        """Pipeline complet (sans pagination) de la recherche de proximité."""
        return self.nearest_match_stages(point, unit, locality) + self.nearest_tail_stages()

    @staticmethod
    def build_radius_filter(point: GeoPoint, distance: Any) -> Dict[str, Any]:
        """Filtre d'inclusion dans la calotte sphérique centrée sur `point`."""
        radius = radius_in_radians(distance)
        return {
            "location": {
                "$geoWithin": {"$centerSphere": [point.coordinates, radius]}
            }
        }
