"""Compilation d'une requête de recherche d'annonces en filtre MongoDB.

Le paramétrage arrive sous forme plate (query string) :

    ?propertyType=villa&pricePerNight[gte]=100&sort=-ratingsAverage,name&page=1&limit=5

Chaque clé est analysée explicitement et convertie en contrainte typée
(`Exact`, `Compare`, `Contains`), puis rendue en document de filtre.
Aucune substitution textuelle n'est faite sur la requête sérialisée.
"""
import math
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from pymongo import ASCENDING, DESCENDING

from app.config import settings
from app.errors import ValidationError
from app.logger import logger
from app.models import CompiledQuery, PageSpec

# Clés de contrôle : jamais traitées comme des champs filtrables
RESERVED_KEYS = frozenset({"page", "sort", "limit", "fields", "keyword"})

COMPARISON_OPERATORS: Dict[str, str] = {
    "gte": "$gte",
    "gt": "$gt",
    "lte": "$lte",
    "lt": "$lt",
}

_BRACKET_KEY = re.compile(r"^(?P<field>[^\[\]]+)\[(?P<op>[^\[\]]*)\]$")

Comparable = Union[int, float, datetime]
SortSpec = List[Tuple[str, int]]


@dataclass(frozen=True)
class Exact:
    """Égalité stricte sur la valeur fournie."""
    value: Any

    def to_query(self) -> Any:
        return self.value


@dataclass(frozen=True)
class Compare:
    """Comparaison (>=, >, <=, <) contre une valeur numérique ou une date."""
    op: str
    value: Comparable

    def to_query(self) -> Dict[str, Comparable]:
        return {COMPARISON_OPERATORS[self.op]: self.value}


@dataclass(frozen=True)
class Contains:
    """Sous-chaîne insensible à la casse (recherche par mot-clé)."""
    text: str

    def to_query(self) -> Dict[str, str]:
        return {"$regex": re.escape(self.text), "$options": "i"}


Constraint = Union[Exact, Compare, Contains]


def validate_field_name(field: str) -> str:
    """Refuse les noms de champ vides ou commençant par `$` (opérateurs Mongo)."""
    field = field.strip()
    if not field or field.startswith("$") or "[" in field or "]" in field:
        raise ValidationError(f"Invalid field name: {field!r}")
    return field


def parse_comparable(field: str, op: str, raw: Any) -> Comparable:
    """
    Convertit la valeur d'une comparaison en nombre ou en date ISO-8601.

    Raises:
        ValidationError: si la valeur n'est ni un nombre fini ni une date.
    """
    if isinstance(raw, bool):
        raise ValidationError(f"Non-numeric value for {field}[{op}]: {raw!r}")
    if isinstance(raw, (int, float)):
        if isinstance(raw, float) and not math.isfinite(raw):
            raise ValidationError(f"Non-finite value for {field}[{op}]: {raw!r}")
        return raw
    if isinstance(raw, str):
        text = raw.strip()
        try:
            return int(text)
        except ValueError:
            pass
        try:
            number = float(text)
            if math.isfinite(number):
                return number
        except ValueError:
            pass
        try:
            return datetime.fromisoformat(text)
        except ValueError:
            pass
    raise ValidationError(f"Non-numeric value for {field}[{op}]: {raw!r}")


def parse_positive_int(name: str, raw: Any) -> int:
    """Entier strictement positif (page, limit)."""
    try:
        value = int(str(raw).strip())
    except (TypeError, ValueError) as e:
        raise ValidationError(f"{name} must be a positive integer, got {raw!r}") from e
    if value < 1:
        raise ValidationError(f"{name} must be a positive integer, got {raw!r}")
    return value


def parse_page(request: Mapping[str, Any], required: bool = False) -> Optional[PageSpec]:
    """
    Extrait la pagination de la requête.

    Sans `page` ET `limit`, aucune pagination n'est appliquée ; si `required`
    est vrai (recherches géographiques), leur absence est une erreur client.
    """
    raw_page = request.get("page")
    raw_limit = request.get("limit")
    if raw_page in (None, "") or raw_limit in (None, ""):
        if required:
            raise ValidationError("page and limit are required")
        return None
    return PageSpec(
        page=parse_positive_int("page", raw_page),
        limit=parse_positive_int("limit", raw_limit),
    )


def split_filter_key(key: str) -> Tuple[str, Optional[str]]:
    """`"price[gte]"` -> `("price", "gte")`, `"price"` -> `("price", None)`."""
    if "[" not in key and "]" not in key:
        return validate_field_name(key), None
    match = _BRACKET_KEY.match(key)
    if match is None:
        raise ValidationError(f"Malformed filter key: {key!r}")
    op = match["op"]
    if op not in COMPARISON_OPERATORS:
        raise ValidationError(f"Unknown operator {op!r} in {key!r}")
    return validate_field_name(match["field"]), op


class FilterCompiler:
    """Traduit une requête plate en filtre, tri, projection et pagination."""

    def __init__(
            self,
            default_sort: str = settings.DEFAULT_SORT,
            excluded_fields: Optional[List[str]] = None):
        self.default_sort = default_sort
        self.excluded_fields = list(
            settings.EXCLUDED_FIELDS if excluded_fields is None else excluded_fields
        )

    def compile(self, request: Mapping[str, Any]) -> CompiledQuery:
        """Compile la requête complète."""
        compiled = CompiledQuery(
            filter=self.compile_filter(request),
            sort=self.compile_sort(request.get("sort")),
            projection=self.compile_projection(request.get("fields")),
            page=parse_page(request),
        )
        logger.debug(
            "Compiled request -> filter={} sort={} projection={} page={}",
            compiled.filter, compiled.sort, compiled.projection, compiled.page
        )
        return compiled

    def compile_filter(self, request: Mapping[str, Any]) -> Dict[str, Any]:
        """
        Construit le document de filtre.

        Le mot-clé et les filtres structurés s'excluent : si `keyword` est
        présent, seul `name` est filtré et les autres champs sont ignorés.
        """
        keyword = request.get("keyword")
        if keyword:
            return {"name": Contains(str(keyword)).to_query()}
        return self.render(self.parse_constraints(request))

    def parse_constraints(self, request: Mapping[str, Any]) -> Dict[str, List[Constraint]]:
        """Analyse champ par champ les clés non réservées."""
        constraints: Dict[str, List[Constraint]] = {}
        for key in request.keys():
            if key in RESERVED_KEYS:
                continue
            value = request[key]
            field, op = split_filter_key(key)
            if op is not None:
                self._add(constraints, field, Compare(op, parse_comparable(field, op, value)))
            elif isinstance(value, Mapping):
                # Forme imbriquée {"pricePerNight": {"gte": "100"}} (corps JSON)
                if not value:
                    raise ValidationError(f"Empty operator mapping for {field!r}")
                for sub_op, sub_value in value.items():
                    if sub_op not in COMPARISON_OPERATORS:
                        raise ValidationError(f"Unknown operator {sub_op!r} for {field!r}")
                    self._add(
                        constraints, field,
                        Compare(sub_op, parse_comparable(field, sub_op, sub_value))
                    )
            elif isinstance(value, (str, int, float, bool)):
                self._add(constraints, field, Exact(value))
            else:
                raise ValidationError(f"Unsupported value for {field!r}: {value!r}")
        return constraints

    @staticmethod
    def _add(constraints: Dict[str, List[Constraint]], field: str, constraint: Constraint):
        existing = constraints.setdefault(field, [])
        if isinstance(constraint, Exact):
            if existing:
                raise ValidationError(f"Conflicting constraints on {field!r}")
        else:
            for other in existing:
                if isinstance(other, Exact):
                    raise ValidationError(f"Conflicting constraints on {field!r}")
                if other.op == constraint.op:
                    raise ValidationError(f"Duplicate operator {constraint.op!r} on {field!r}")
        existing.append(constraint)

    @staticmethod
    def render(constraints: Dict[str, List[Constraint]]) -> Dict[str, Any]:
        """Rend les contraintes typées en document de filtre MongoDB."""
        query: Dict[str, Any] = {}
        for field, items in constraints.items():
            if len(items) == 1 and not isinstance(items[0], Compare):
                query[field] = items[0].to_query()
                continue
            merged: Dict[str, Any] = {}
            for item in items:
                merged.update(item.to_query())
            query[field] = merged
        return query

    def compile_sort(self, raw: Optional[str]) -> SortSpec:
        """
        `"-ratingsAverage,name"` -> `[("ratingsAverage", -1), ("name", 1), ("_id", 1)]`.

        `_id` ferme toujours la marche pour que l'ordre des ex-aequo soit stable
        d'une exécution à l'autre.
        """
        sort = self._parse_sort(raw) if raw else []
        if not sort:
            sort = self._parse_sort(self.default_sort)
        if all(field != "_id" for field, _ in sort):
            sort.append(("_id", ASCENDING))
        return sort

    @staticmethod
    def _parse_sort(raw: str) -> SortSpec:
        sort: SortSpec = []
        seen = set()
        for token in str(raw).split(","):
            token = token.strip()
            if not token:
                continue
            direction = ASCENDING
            if token.startswith("-"):
                direction = DESCENDING
                token = token[1:]
            field = validate_field_name(token)
            if field in seen:
                continue
            seen.add(field)
            sort.append((field, direction))
        return sort

    def compile_projection(self, raw: Optional[str]) -> Dict[str, int]:
        """
        `"name,pricePerNight"` -> inclusion ; `"-images"` -> exclusion.

        Sans `fields`, seuls les attributs internes (`__v`) sont exclus.
        """
        includes: List[str] = []
        excludes: List[str] = []
        for token in str(raw or "").split(","):
            token = token.strip()
            if not token:
                continue
            if token.startswith("-"):
                excludes.append(validate_field_name(token[1:]))
            else:
                includes.append(validate_field_name(token))

        if not includes and not excludes:
            return {field: 0 for field in self.excluded_fields}
        # MongoDB n'accepte pas le mélange inclusion/exclusion, sauf pour _id
        if includes and any(field != "_id" for field in excludes):
            raise ValidationError("Cannot mix included and excluded fields")
        projection = {field: 1 for field in includes}
        projection.update({field: 0 for field in excludes})
        return projection
