"""MongoDB database connector."""
from typing import Any, Dict, List, Optional, Tuple

from bson import ObjectId
from pymongo import AsyncMongoClient
from pymongo.errors import PyMongoError

from app.errors import StoreError
from app.logger import logger


def normalize_document(value: Any) -> Any:
    """Convertit récursivement les ObjectId en chaînes (sérialisation JSON)."""
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, dict):
        return {key: normalize_document(item) for key, item in value.items()}
    if isinstance(value, list):
        return [normalize_document(item) for item in value]
    return value


class MongoConnector:
    """Gère le client asynchrone MongoDB à partir de l'URL."""

    def __init__(self, mongodb_url: str, database: str):
        self.mongodb_url = mongodb_url
        self.database_name = database
        self._client: Optional[AsyncMongoClient] = None

    async def connect(self):
        """Initialise le client et vérifie la connexion."""
        self._client = AsyncMongoClient(self.mongodb_url, tz_aware=True)
        await self.ping()
        logger.info("MongoDB client initialised for database '{}'.", self.database_name)

    async def ping(self):
        """Lève ConnectionError si la base ne répond pas."""
        if not self._client:
            raise ConnectionError("MongoDB client not initialized. Call .connect() first.")
        try:
            await self._client.admin.command("ping")
        except PyMongoError as e:
            raise ConnectionError(f"MongoDB unreachable: {e}") from e

    def collection(self, name: str):
        """Renvoie la collection `name` de la base configurée."""
        if not self._client:
            raise StoreError("MongoDB client not initialized. Call .connect() first.")
        return self._client[self.database_name][name]

    async def close(self):
        """Ferme le client proprement."""
        if self._client:
            await self._client.close()
            self._client = None


class MongoListingStore:
    """Lecture des annonces : find, count_documents, aggregate."""

    def __init__(self, connector: MongoConnector, collection: str, reviews_collection: str):
        self.connector = connector
        self.collection_name = collection
        self.reviews_collection = reviews_collection

    @property
    def collection(self):
        return self.connector.collection(self.collection_name)

    async def find(
            self,
            filter_: Dict[str, Any],
            sort: Optional[List[Tuple[str, int]]] = None,
            projection: Optional[Dict[str, int]] = None,
            skip: int = 0,
            limit: int = 0) -> List[Dict[str, Any]]:
        try:
            cursor = self.collection.find(filter_, projection or None)
            if sort:
                cursor = cursor.sort(sort)
            if skip:
                cursor = cursor.skip(skip)
            if limit:
                cursor = cursor.limit(limit)
            documents = await cursor.to_list(None)
        except PyMongoError as e:
            raise StoreError(f"find failed: {e}") from e
        return [normalize_document(doc) for doc in documents]

    async def count_documents(self, filter_: Dict[str, Any]) -> int:
        try:
            return await self.collection.count_documents(filter_)
        except PyMongoError as e:
            raise StoreError(f"count_documents failed: {e}") from e

    async def aggregate(self, pipeline: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        try:
            cursor = await self.collection.aggregate(pipeline)
            documents = await cursor.to_list(None)
        except PyMongoError as e:
            raise StoreError(f"aggregate failed: {e}") from e
        return [normalize_document(doc) for doc in documents]

    async def find_one_with_reviews(self, listing_id: str) -> Optional[Dict[str, Any]]:
        """Annonce unique avec ses avis (`reviews.property` -> `_id`)."""
        pipeline = [
            {"$match": {"_id": ObjectId(listing_id)}},
            {
                "$lookup": {
                    "from": self.reviews_collection,
                    "localField": "_id",
                    "foreignField": "property",
                    "as": "reviews",
                }
            },
            {"$project": {"__v": 0, "reviews.__v": 0}},
        ]
        documents = await self.aggregate(pipeline)
        return documents[0] if documents else None
