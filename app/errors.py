"""Exceptions du moteur de recherche d'annonces."""


class ListingSearchError(Exception):
    """Erreur de base du service."""


class ValidationError(ListingSearchError):
    """Requête mal formée : opérateur inconnu, valeur non numérique, rayon invalide..."""


class ExternalServiceError(ListingSearchError):
    """Échec (ou timeout) du service de géocodage inverse."""


class StoreError(ListingSearchError):
    """Échec de lecture côté base de documents."""


class ListingNotFoundError(ListingSearchError):
    """Annonce introuvable (lecture unitaire uniquement)."""

    def __init__(self, listing_id: str):
        super().__init__(f"Listing not found: {listing_id}")
        self.listing_id = listing_id
