# tests/conftest.py
import pytest
from unittest.mock import MagicMock, AsyncMock

from app.models import Locality
from .fake_store import FakeListingStore, make_listing


@pytest.fixture
def ten_listings():
    """Dix annonces à Paris, de plus en plus loin de Notre-Dame vers l'est."""
    return [make_listing(i, 2.3499 + i * 0.002, 48.8530) for i in range(10)]


@pytest.fixture
def fake_store(ten_listings):
    return FakeListingStore(ten_listings)


@pytest.fixture
def mock_geocoder():
    """Géocodeur mocké : renvoie toujours Paris."""
    geocoder = MagicMock()
    geocoder.reverse_geocode = AsyncMock(return_value=Locality(name="Paris"))
    return geocoder


@pytest.fixture
def mock_cache_manager():
    """Fixture pour un mock du gestionnaire de cache Redis."""
    cache = MagicMock()
    cache.get = AsyncMock(return_value=None)  # Par défaut, le cache est toujours vide (miss)
    cache.set = AsyncMock()
    return cache


@pytest.fixture
def listing_service(fake_store, mock_geocoder):
    from app.search.listing_service import ListingSearchService

    return ListingSearchService(store=fake_store, geocoder=mock_geocoder)
