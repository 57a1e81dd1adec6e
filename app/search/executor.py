"""Exécution des requêtes : page + comptage lancés en parallèle."""
import asyncio
import copy
import time
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple

import psutil

from app.config import settings
from app.logger import logger
from app.models import PageSpec, SearchResponse


class ListingStore(Protocol):
    """Capacités de lecture attendues de la base de documents."""

    async def find(
            self,
            filter_: Dict[str, Any],
            sort: Optional[List[Tuple[str, int]]] = None,
            projection: Optional[Dict[str, int]] = None,
            skip: int = 0,
            limit: int = 0) -> List[Dict[str, Any]]:
        ...

    async def count_documents(self, filter_: Dict[str, Any]) -> int:
        ...

    async def aggregate(self, pipeline: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        ...

    async def find_one_with_reviews(self, listing_id: str) -> Optional[Dict[str, Any]]:
        ...


class QueryExecutor:
    """
    Exécute un filtre (ou un pipeline) contre la base et assemble l'enveloppe.

    Le comptage utilise toujours le même filtre que la page ; tri et projection
    ne concernent que la requête qui renvoie les documents.
    """

    def __init__(self, store: ListingStore):
        self.store = store

    async def execute(
            self,
            filter_: Dict[str, Any],
            sort: List[Tuple[str, int]],
            projection: Dict[str, int],
            page: Optional[PageSpec]) -> SearchResponse:
        """Lance `find` + `count_documents`, ou `find` seul sans pagination."""
        start_time = time.time()

        if page is None:
            results = await self.store.find(
                copy.deepcopy(filter_), sort=sort, projection=projection
            )
            total = len(results)
        else:
            # Chaque lecture reçoit sa propre copie du filtre
            results, total = await asyncio.gather(
                self.store.find(
                    copy.deepcopy(filter_),
                    sort=sort,
                    projection=projection,
                    skip=page.skip,
                    limit=page.limit,
                ),
                self.store.count_documents(copy.deepcopy(filter_)),
            )

        self._log_metrics("find", start_time, len(results), total)
        return SearchResponse(results=results, total=total)

    async def execute_pipeline(
            self,
            match_stages: Sequence[Dict[str, Any]],
            page: PageSpec,
            tail_stages: Sequence[Dict[str, Any]] = ()) -> SearchResponse:
        """
        Version agrégation : la page et le comptage partagent `match_stages`.

        Page    : match_stages + $skip + $limit + tail_stages
        Comptage: match_stages + $count
        """
        start_time = time.time()

        page_pipeline = (
            copy.deepcopy(list(match_stages))
            + [{"$skip": page.skip}, {"$limit": page.limit}]
            + copy.deepcopy(list(tail_stages))
        )
        count_pipeline = copy.deepcopy(list(match_stages)) + [{"$count": "total"}]

        results, counted = await asyncio.gather(
            self.store.aggregate(page_pipeline),
            self.store.aggregate(count_pipeline),
        )
        # $count ne renvoie aucun document quand rien ne correspond
        total = counted[0]["total"] if counted else 0

        self._log_metrics("aggregate", start_time, len(results), total)
        return SearchResponse(results=results, total=total)

    @staticmethod
    def _log_metrics(kind: str, start_time: float, returned: int, total: int):
        if not settings.ENABLE_METRICS:
            return
        duration = time.time() - start_time
        memory_mb = psutil.Process().memory_info().rss / 1024 / 1024
        logger.info(
            "Requête {kind} : {returned}/{total} documents | "
            "Durée = {duration:.4f}s | RAM = {memory:.2f} Mo",
            kind=kind, returned=returned, total=total,
            duration=duration, memory=memory_mb
        )
