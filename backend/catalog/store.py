from __future__ import annotations

import logging
import threading
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, TypeVar

import pandas as pd
from pydantic import ValidationError as PydanticValidationError

from ..errors import NotFound, ValidationError
from ..retry import call_with_retries
from .config import DEFAULT_CATALOG_CONFIG, CatalogConfig
from .models import (
    MODEL_BY_TYPE,
    REFERENCE_FIELDS,
    CatalogRecord,
    EntityType,
    Product,
    entity_type_of,
)
from .slugs import restaurant_slug, slugify, unique_slug

logger = logging.getLogger(__name__)

T = TypeVar("T")

RECORD_COLUMN = "_record"

# Immutable once a record has been written.
_FROZEN_FIELDS = {"id", "slug", "created_at"}


class CatalogStore:
    """
    In-memory catalog: a record list plus a lazily built pandas DataFrame per
    collection.

    Every frame carries a ``_record`` column holding a copy of the record for
    that row, so a filtered / sorted frame maps straight back to records
    without relying on positional indices. ``revision`` increases on every
    write; together with ``cache_token``, unique per store instance, it keys
    caches.
    """

    def __init__(self, config: CatalogConfig = DEFAULT_CATALOG_CONFIG) -> None:
        self._config = config
        self._records: dict[EntityType, list[CatalogRecord]] = {t: [] for t in EntityType}
        self._frames: dict[EntityType, pd.DataFrame] = {}
        self._lock = threading.RLock()
        self._revision = 0
        self.cache_token = uuid.uuid4().hex

    @property
    def revision(self) -> int:
        return self._revision

    # ── Reads ────────────────────────────────────────────────────────────

    def _records_for(self, entity_type: EntityType) -> list[CatalogRecord]:
        with self._lock:
            return list(self._records[EntityType(entity_type)])

    def _read(self, fn: Callable[[], T]) -> T:
        return call_with_retries(
            fn,
            attempts=self._config.read_attempts,
            backoff=self._config.read_backoff,
        )

    def find_by_id(self, entity_type: EntityType, record_id: str) -> CatalogRecord | None:
        def _find() -> CatalogRecord | None:
            for record in self._records_for(entity_type):
                if record.id == record_id:
                    return record.model_copy(deep=True)
            return None

        return self._read(_find)

    def find_by_slug(self, entity_type: EntityType, slug: str) -> CatalogRecord | None:
        def _find() -> CatalogRecord | None:
            for record in self._records_for(entity_type):
                if record.slug == slug:
                    return record.model_copy(deep=True)
            return None

        return self._read(_find)

    def find_many_by_slug(self, entity_type: EntityType, slugs: Iterable[str]) -> list[CatalogRecord]:
        """Records for ``slugs`` in the order given; unknown slugs are skipped."""
        wanted = list(slugs)

        def _find() -> list[CatalogRecord]:
            by_slug = {r.slug: r for r in self._records_for(entity_type)}
            return [by_slug[s].model_copy(deep=True) for s in wanted if s in by_slug]

        return self._read(_find)

    def scan_all(self, entity_type: EntityType) -> list[CatalogRecord]:
        return self._read(
            lambda: [r.model_copy(deep=True) for r in self._records_for(entity_type)]
        )

    def find_product(self, ref: str) -> Product | None:
        """Resolve a product by slug first, then by id."""
        product = self.find_by_slug(EntityType.product, ref)
        if product is None:
            product = self.find_by_id(EntityType.product, ref)
        return product

    def frame(self, entity_type: EntityType) -> pd.DataFrame:
        entity_type = EntityType(entity_type)

        def _build() -> pd.DataFrame:
            with self._lock:
                cached = self._frames.get(entity_type)
                if cached is None:
                    cached = self._build_frame(entity_type)
                    self._frames[entity_type] = cached
                return cached

        return self._read(_build)

    def _build_frame(self, entity_type: EntityType) -> pd.DataFrame:
        records = self._records[entity_type]
        columns = list(MODEL_BY_TYPE[entity_type].model_fields) + [RECORD_COLUMN]
        rows = []
        for record in records:
            row = record.model_dump()
            row[RECORD_COLUMN] = record.model_copy(deep=True)
            rows.append(row)
        df = pd.DataFrame(rows, columns=columns)

        # Dishes are searchable by the names of the menus / restaurants they
        # reference, so resolve those slugs once per frame build.
        if entity_type == EntityType.dish:
            menu_names = {m.slug: m.name for m in self._records[EntityType.menu]}
            restaurant_names = {r.slug: r.name for r in self._records[EntityType.restaurant]}
            df["menu_names"] = df["menus"].apply(
                lambda slugs: [menu_names[s] for s in slugs if s in menu_names]
            )
            df["restaurant_names"] = df["restaurants"].apply(
                lambda slugs: [restaurant_names[s] for s in slugs if s in restaurant_names]
            )
        return df

    # ── Writes ───────────────────────────────────────────────────────────

    def _touch(self) -> None:
        self._frames.clear()
        self._revision += 1

    def _slug_exists(self, entity_type: EntityType, slug: str) -> bool:
        return any(r.slug == slug for r in self._records[entity_type])

    def check_references(self, record: CatalogRecord) -> None:
        """Raise ``ValidationError`` listing every slug reference that does not resolve."""
        entity_type = entity_type_of(record)
        errors: list[str] = []
        with self._lock:
            for field, target in REFERENCE_FIELDS[entity_type].items():
                for slug in getattr(record, field):
                    if not self._slug_exists(target, slug):
                        errors.append(f"{field}: unknown {target.value} '{slug}'")
        if errors:
            raise ValidationError("One or more references are invalid", errors=errors)

    def add(self, record: CatalogRecord) -> CatalogRecord:
        entity_type = entity_type_of(record)
        with self._lock:
            existing = [r.slug for r in self._records[entity_type]]
            if record.slug:
                base = record.slug
            elif entity_type == EntityType.restaurant:
                base = restaurant_slug(record.name, getattr(record, "city", ""))
            else:
                base = slugify(record.name)
            record = record.model_copy(
                update={"slug": unique_slug(base or entity_type.value, existing)},
                deep=True,
            )
            self.check_references(record)
            self._records[entity_type].append(record)
            self._touch()
        logger.info("Added %s %s", entity_type.value, record.slug)
        return record.model_copy(deep=True)

    def update(self, entity_type: EntityType, slug: str, changes: dict[str, Any]) -> CatalogRecord:
        entity_type = EntityType(entity_type)
        model = MODEL_BY_TYPE[entity_type]
        changes = {k: v for k, v in changes.items() if k not in _FROZEN_FIELDS}
        with self._lock:
            records = self._records[entity_type]
            for index, current in enumerate(records):
                if current.slug == slug:
                    break
            else:
                raise NotFound(f"{entity_type.value.capitalize()} not found")

            data = current.model_dump()
            data.update(changes)
            data["updated_at"] = datetime.now(timezone.utc)
            try:
                updated = model.model_validate(data)
            except PydanticValidationError as exc:
                raise ValidationError(
                    "Invalid update",
                    errors=[f"{'.'.join(map(str, e['loc']))}: {e['msg']}" for e in exc.errors()],
                ) from exc
            self.check_references(updated)
            records[index] = updated
            self._touch()
        logger.info("Updated %s %s", entity_type.value, slug)
        return updated.model_copy(deep=True)

    def referrers(self, entity_type: EntityType, slug: str) -> list[str]:
        """Every ``field: <type> '<slug>'`` entry whose slug reference points at this record."""
        entity_type = EntityType(entity_type)
        found: list[str] = []
        with self._lock:
            for source_type, fields in REFERENCE_FIELDS.items():
                for field, target in fields.items():
                    if target != entity_type:
                        continue
                    for record in self._records[source_type]:
                        if slug in getattr(record, field):
                            found.append(f"{field}: {source_type.value} '{record.slug}'")
        return found

    def delete(self, entity_type: EntityType, slug: str) -> CatalogRecord:
        """Remove a record; refused while any other record still references its slug."""
        entity_type = EntityType(entity_type)
        with self._lock:
            records = self._records[entity_type]
            for index, current in enumerate(records):
                if current.slug == slug:
                    break
            else:
                raise NotFound(f"{entity_type.value.capitalize()} not found")

            referenced_by = self.referrers(entity_type, slug)
            if referenced_by:
                raise ValidationError(
                    f"{entity_type.value.capitalize()} is still referenced", errors=referenced_by,
                )
            del records[index]
            self._touch()
        logger.info("Deleted %s %s", entity_type.value, slug)
        return current

    def count(self, entity_type: EntityType) -> int:
        with self._lock:
            return len(self._records[EntityType(entity_type)])
