from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class SearchConfig:
    name_weight: int = 3
    description_weight: int = 2
    primary_weight: int = 2  # cuisine_type, category
    secondary_weight: int = 1  # per matching array element
    numeric_weight: int = 2  # exact numeric match, e.g. chen_pi_age
    default_limit: int = 10
    max_limit: int = 100
    cache_ttl: float = 60.0  # seconds

    @property
    def weights(self) -> dict[str, int]:
        return {
            "name": self.name_weight,
            "description": self.description_weight,
            "primary": self.primary_weight,
            "secondary": self.secondary_weight,
            "numeric": self.numeric_weight,
        }


DEFAULT_SEARCH_CONFIG = SearchConfig()
