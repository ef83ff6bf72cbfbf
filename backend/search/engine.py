from __future__ import annotations

import dataclasses
import logging
import math
import numbers
import re
import time
from typing import Any, Mapping

import pandas as pd

from ..catalog.loader import get_catalog
from ..catalog.models import CatalogRecord, EntityType
from ..catalog.store import RECORD_COLUMN, CatalogStore
from ..errors import InvalidQuery, UnsupportedFilter
from ..pagination import clamp_window, page_count
from .cache import cache_get, cache_set
from .config import DEFAULT_SEARCH_CONFIG, SearchConfig
from .models import SearchPage, SearchResult

logger = logging.getLogger(__name__)

SEARCHABLE_TYPES = (EntityType.restaurant, EntityType.dish, EntityType.product)

# Scalar text fields and the weight bucket each one scores into.
TEXT_FIELDS: dict[EntityType, dict[str, str]] = {
    EntityType.restaurant: {"name": "name", "description": "description", "cuisine_type": "primary"},
    EntityType.dish: {"name": "name", "description": "description"},
    EntityType.product: {"name": "name", "description": "description", "category": "primary"},
}

# Array fields; every matching element adds the secondary weight.
LIST_FIELDS: dict[EntityType, tuple[str, ...]] = {
    EntityType.restaurant: ("specialties",),
    EntityType.dish: ("ingredients", "allergens", "menu_names", "restaurant_names"),
    EntityType.product: ("ingredients",),
}

NUMERIC_FIELDS: dict[EntityType, tuple[str, ...]] = {
    EntityType.restaurant: (),
    EntityType.dish: ("chen_pi_age",),
    EntityType.product: (),
}


# ── Query handling ───────────────────────────────────────────────────────


def tokenize(query: str) -> list[str]:
    """Lowercase, split on whitespace runs, drop empty tokens."""
    return [token for token in query.strip().lower().split() if token]


def build_patterns(tokens: list[str]) -> list[re.Pattern[str]]:
    """Case-insensitive substring patterns; regex metacharacters are escaped."""
    return [re.compile(re.escape(token), re.IGNORECASE) for token in tokens]


def parse_entity_type(value: str | EntityType) -> EntityType:
    try:
        entity_type = EntityType(value)
    except ValueError:
        raise UnsupportedFilter(f"Invalid filter type: {value}") from None
    if entity_type not in SEARCHABLE_TYPES:
        raise UnsupportedFilter(f"Invalid filter type: {entity_type.value}")
    return entity_type


def _as_number(token: str) -> float | None:
    try:
        value = float(token)
    except ValueError:
        return None
    return value if math.isfinite(value) else None


def _is_number(value: Any) -> bool:
    return (
        isinstance(value, numbers.Real)
        and not isinstance(value, bool)
        and not math.isnan(value)
    )


def _as_list(value: Any) -> list:
    return list(value) if isinstance(value, (list, tuple)) else []


def _matches(pattern: re.Pattern[str], value: Any) -> bool:
    return isinstance(value, str) and pattern.search(value) is not None


# ── Scoring ──────────────────────────────────────────────────────────────


def score_item(
    item: Mapping[str, Any],
    tokens: list[str],
    entity_type: EntityType,
    config: SearchConfig = DEFAULT_SEARCH_CONFIG,
) -> int:
    """
    Relevance score of one catalog item, summed over all tokens.

    ``item`` may be a plain dict or a pandas row; only ``.get`` is used.
    """
    weights = config.weights
    score = 0
    for token, pattern in zip(tokens, build_patterns(tokens)):
        for field, bucket in TEXT_FIELDS[entity_type].items():
            if _matches(pattern, item.get(field)):
                score += weights[bucket]
        for field in LIST_FIELDS[entity_type]:
            for value in _as_list(item.get(field)):
                if _matches(pattern, value):
                    score += weights["secondary"]
        number = _as_number(token)
        if number is not None:
            for field in NUMERIC_FIELDS[entity_type]:
                value = item.get(field)
                if _is_number(value) and float(value) == number:
                    score += weights["numeric"]
    return score


def prefilter(frame: pd.DataFrame, tokens: list[str], entity_type: EntityType) -> pd.DataFrame:
    """
    Broad candidate retrieval: rows where any searchable field loosely
    matches any token. Not the relevance gate, scoring decides that.
    """
    mask = pd.Series(False, index=frame.index)
    for token, pattern in zip(tokens, build_patterns(tokens)):
        for field in TEXT_FIELDS[entity_type]:
            mask |= frame[field].fillna("").astype(str).str.contains(pattern.pattern, case=False, regex=True)
        for field in LIST_FIELDS[entity_type]:
            mask |= frame[field].apply(
                lambda values, p=pattern: any(_matches(p, v) for v in _as_list(values))
            ).astype(bool)
        number = _as_number(token)
        if number is not None:
            for field in NUMERIC_FIELDS[entity_type]:
                mask |= pd.to_numeric(frame[field], errors="coerce") == number
    return frame.loc[mask]


# ── Display fields ───────────────────────────────────────────────────────


def _allergen_alert(allergens: list[str]) -> str:
    return f"Allergens: {', '.join(allergens)}" if allergens else "No allergens"


def display_fields(record: CatalogRecord, entity_type: EntityType) -> dict[str, str]:
    """Presentation helpers; not part of ranking."""
    if entity_type == EntityType.restaurant:
        return {
            "vr_experience": "VR Experience Available" if record.is_vr_experience else "",
            "capacity": f"Capacity: {record.max_capacity}" if record.max_capacity else "",
        }
    fields = {
        "formatted_price": f"¥{record.price:.2f}",
        "allergen_alert": _allergen_alert(list(record.allergens)),
    }
    if entity_type == EntityType.dish:
        fields["signature"] = "Signature Dish" if record.is_signature_dish else ""
        fields["chen_pi_label"] = (
            f"{record.chen_pi_age} Year Aged Chen Pi" if record.chen_pi_age else ""
        )
    else:
        fields["featured"] = "Featured Product" if record.is_featured else ""
        fields["availability"] = (
            "Available for Delivery" if record.available_for_delivery else "In-Store Only"
        )
    return fields


# ── Search ───────────────────────────────────────────────────────────────


def search(
    query: str | None,
    entity_type: str | EntityType,
    page: int = 1,
    limit: int | None = None,
    catalog: CatalogStore | None = None,
    config: SearchConfig = DEFAULT_SEARCH_CONFIG,
) -> SearchPage:
    start_time = time.time()

    # Validation happens before the store is touched.
    if query is None or not query.strip():
        raise InvalidQuery()
    entity_type = parse_entity_type(entity_type)
    tokens = tokenize(query)
    page, limit, skip = clamp_window(
        page, limit if limit is not None else config.default_limit, config.max_limit
    )

    store = catalog or get_catalog()

    # --- Cache check ---
    request_dict = {
        "tokens": tokens,
        "filter": entity_type.value,
        "page": page,
        "limit": limit,
        "_store": store.cache_token,
        "_revision": store.revision,
        "_config": dataclasses.asdict(config),
    }
    cached = cache_get(request_dict, ttl=config.cache_ttl)
    if cached is not None:
        logger.info("Search %r (%s): %d results, cache hit", query, entity_type.value, cached.total)
        return cached.model_copy(deep=True)

    # --- Candidate retrieval ---
    candidates = prefilter(store.frame(entity_type), tokens, entity_type)

    # --- Scoring ---
    if candidates.empty:
        ranked = candidates.assign(_score=pd.Series(dtype="int64"))
    else:
        scores = candidates.apply(
            score_item,
            axis=1,
            tokens=tokens,
            entity_type=entity_type,
            config=config,
        )
        ranked = candidates.assign(_score=scores)
        ranked = ranked.loc[ranked["_score"] > 0]
        # Stable sort keeps catalog insertion order between equal scores.
        ranked = ranked.sort_values("_score", ascending=False, kind="stable")

    total = len(ranked)
    window = ranked.iloc[skip: skip + limit]

    results = [
        SearchResult(
            entity=record.model_dump(mode="json"),
            relevance_score=int(score),
            display=display_fields(record, entity_type),
        )
        for record, score in zip(window[RECORD_COLUMN], window["_score"])
    ]

    response = SearchPage(
        results=results,
        total=total,
        page=page,
        limit=limit,
        pages=page_count(total, limit),
        filter=entity_type.value,
    )
    cache_set(request_dict, response.model_copy(deep=True))

    elapsed_ms = round((time.time() - start_time) * 1000, 1)
    logger.info(
        "Search %r (%s): %d results in %.1f ms", query, entity_type.value, total, elapsed_ms
    )
    return response
