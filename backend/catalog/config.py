from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class CatalogConfig:
    """
    Configuration for the in-memory catalog store and its seed file.
    """

    seed_path: Path = Path(__file__).resolve().parent.parent / "data" / "seed" / "catalog.json"
    read_attempts: int = 3
    read_backoff: float = 0.05  # seconds, doubled per retry


DEFAULT_CATALOG_CONFIG = CatalogConfig()
