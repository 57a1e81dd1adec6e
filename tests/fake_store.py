# tests/fake_store.py
import copy
import math
import operator
import re
from datetime import datetime, timedelta, timezone

_MISSING = object()
_EARTH_RADIUS_M = 6371000.0
_COMPARATORS = {
    "$gte": operator.ge,
    "$gt": operator.gt,
    "$lte": operator.le,
    "$lt": operator.lt,
}

def _get_path(doc, path):
    value = doc
    for part in path.split("."):
        if not isinstance(value, dict) or part not in value:
            return _MISSING
        value = value[part]
    return value

def _set_path(doc, path, value):
    parts = path.split(".")
    for part in parts[:-1]:
        doc = doc.setdefault(part, {})
    doc[parts[-1]] = value

def haversine_m(a, b):
    """Distance en mètres entre deux points [lng, lat]."""
    lng1, lat1 = map(math.radians, a)
    lng2, lat2 = map(math.radians, b)
    h = (math.sin((lat2 - lat1) / 2) ** 2
         + math.cos(lat1) * math.cos(lat2) * math.sin((lng2 - lng1) / 2) ** 2)
    return 2 * _EARTH_RADIUS_M * math.asin(math.sqrt(h))

def _matches(doc, filter_):
    for field, cond in filter_.items():
        value = _get_path(doc, field)
        if isinstance(cond, dict) and any(key.startswith("$") for key in cond):
            for op, arg in cond.items():
                if op == "$options":
                    continue
                if value is _MISSING:
                    return False
                if op == "$regex":
                    flags = re.IGNORECASE if "i" in cond.get("$options", "") else 0
                    if not re.search(arg, str(value), flags):
                        return False
                elif op in _COMPARATORS:
                    if not _COMPARATORS[op](value, arg):
                        return False
                elif op == "$geoWithin":
                    center, radius = arg["$centerSphere"]
                    angle = haversine_m(value["coordinates"], center) / _EARTH_RADIUS_M
                    if angle > radius:
                        return False
                else:
                    raise NotImplementedError(op)
        elif value is _MISSING or value != cond:
            return False
    return True

def _project(doc, projection):
    if not projection:
        return doc
    if any(flag for field, flag in projection.items() if field != "_id"):
        out = {}
        if projection.get("_id", 1):
            out["_id"] = doc["_id"]
        for field, flag in projection.items():
            if field == "_id" or not flag:
                continue
            value = _get_path(doc, field)
            if value is not _MISSING:
                _set_path(out, field, value)
        return out
    for field in projection:
        doc.pop(field, None)
    return doc

def _sort(docs, sort):
    for field, direction in reversed(sort or []):
        docs.sort(key=lambda d, f=field: _get_path(d, f), reverse=direction < 0)
    return docs

class FakeListingStore:
    """Base en mémoire : sous-ensemble des filtres et étapes émis par le moteur."""

    def __init__(self, documents=None):
        self.documents = list(documents or [])
        self.calls = []

    async def find(self, filter_, sort=None, projection=None, skip=0, limit=0):
        self.calls.append(("find", copy.deepcopy(filter_), sort, projection, skip, limit))
        docs = [copy.deepcopy(d) for d in self.documents if _matches(d, filter_)]
        docs = _sort(docs, sort)[skip:]
        if limit:
            docs = docs[:limit]
        return [_project(d, projection) for d in docs]

    async def count_documents(self, filter_):
        self.calls.append(("count_documents", copy.deepcopy(filter_)))
        return sum(1 for d in self.documents if _matches(d, filter_))

    async def aggregate(self, pipeline):
        self.calls.append(("aggregate", copy.deepcopy(pipeline)))
        docs = [copy.deepcopy(d) for d in self.documents]
        for stage in pipeline:
            (op, arg), = stage.items()
            if op == "$geoNear":
                center = arg["near"]["coordinates"]
                for d in docs:
                    meters = haversine_m(d["location"]["coordinates"], center)
                    d[arg["distanceField"]] = meters * arg.get("distanceMultiplier", 1)
                docs.sort(key=lambda d: d[arg["distanceField"]])
            elif op == "$match":
                docs = [d for d in docs if _matches(d, arg)]
            elif op == "$skip":
                docs = docs[arg:]
            elif op == "$limit":
                docs = docs[:arg]
            elif op == "$project":
                docs = [_project(d, arg) for d in docs]
            elif op == "$count":
                docs = [{arg: len(docs)}] if docs else []
            else:
                raise NotImplementedError(op)
        return docs

    async def find_one_with_reviews(self, listing_id):
        self.calls.append(("find_one_with_reviews", listing_id))
        for d in self.documents:
            if d["_id"] == listing_id:
                doc = copy.deepcopy(d)
                doc.pop("__v", None)
                doc["reviews"] = []
                return doc
        return None

def make_listing(index, lng, lat, city="Paris", **overrides):
    """Annonce de test ; coordonnées GeoJSON [lng, lat]."""
    listing = {
        "_id": f"65a0000000000000000000{index:02d}",
        "name": f"Listing {index}",
        "owner": "65b000000000000000000001",
        "address": f"{index} rue de Test",
        "location": {
            "type": "Point",
            "coordinates": [lng, lat],
            "city": city,
            "state": "Ile-de-France",
        },
        "propertyType": "apartment",
        "pricePerNight": 50 + index * 10,
        "ratingsAverage": 4.0,
        "images": [f"listing-{index}.jpeg"],
        "createdAt": datetime(2024, 1, 1, tzinfo=timezone.utc) + timedelta(days=index),
        "__v": 0,
    }
    listing.update(overrides)
    return listing

