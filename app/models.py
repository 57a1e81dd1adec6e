"""Modèles Pydantic pour les requêtes et réponses."""
from typing import Any, Dict, List, Optional, Tuple
from pydantic import BaseModel, ConfigDict, Field


class PageSpec(BaseModel): # pylint: disable=too-few-public-methods
    """Pagination demandée par le client (page >= 1, limit >= 1)."""
    page: int = Field(ge=1)
    limit: int = Field(ge=1)

    model_config = ConfigDict(frozen=True)

    @property
    def skip(self) -> int:
        """Nombre de documents à sauter."""
        return (self.page - 1) * self.limit


class GeoPoint(BaseModel): # pylint: disable=too-few-public-methods
    """Point géographique saisi sous la forme "lat,lng"."""
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)

    model_config = ConfigDict(frozen=True)

    @property
    def coordinates(self) -> List[float]:
        """Coordonnées GeoJSON : toujours [longitude, latitude]."""
        return [self.lng, self.lat]


class Locality(BaseModel): # pylint: disable=too-few-public-methods
    """Résultat du géocodage inverse."""
    name: str


class CompiledQuery(BaseModel): # pylint: disable=too-few-public-methods
    """Filtre, tri, projection et pagination prêts pour la base."""
    filter: Dict[str, Any] = Field(default_factory=dict)
    sort: List[Tuple[str, int]] = Field(default_factory=list)
    projection: Dict[str, int] = Field(default_factory=dict)
    page: Optional[PageSpec] = None


class SearchResponse(BaseModel): # pylint: disable=too-few-public-methods
    """Enveloppe de réponse : résultats de la page + total avant pagination."""
    results: List[Dict[str, Any]]
    total: int = Field(ge=0)


class ErrorResponse(BaseModel): # pylint: disable=too-few-public-methods
    """Corps d'erreur renvoyé par les handlers d'exception."""
    detail: Dict[str, str]
