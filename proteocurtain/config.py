# proteocurtain/config.py

"""
Central configuration for the proteocurtain engine.

Every value has a default so the core runs without any environment set up.
Values are read from environment variables, loading a .env file first when
python-dotenv is installed.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from proteocurtain.constants import (
    DEFAULT_BACKGROUND_CAP,
    DEFAULT_TYPEAHEAD_LIMIT,
    TYPEAHEAD_MIN_LENGTH,
)

# Load .env file if python-dotenv is installed
try:
    from dotenv import load_dotenv

    load_dotenv()
except ImportError:
    # If dotenv is not installed, env vars still work.
    pass


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


def _env_optional_int(name: str) -> Optional[int]:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return None
    return int(raw)


# ---------------------------------------------------------
#  Volcano processing
# ---------------------------------------------------------

VOLCANO_BACKGROUND_CAP = int(os.getenv("VOLCANO_BACKGROUND_CAP", str(DEFAULT_BACKGROUND_CAP)))
VOLCANO_RANDOM_SEED = _env_optional_int("VOLCANO_RANDOM_SEED")
VOLCANO_P_CUTOFF = float(os.getenv("VOLCANO_P_CUTOFF", "0.05"))
VOLCANO_LOG2FC_CUTOFF = float(os.getenv("VOLCANO_LOG2FC_CUTOFF", "0.6"))

# ---------------------------------------------------------
#  Search
# ---------------------------------------------------------

TYPEAHEAD_MIN_LENGTH_ENV = int(os.getenv("TYPEAHEAD_MIN_LENGTH", str(TYPEAHEAD_MIN_LENGTH)))
TYPEAHEAD_LIMIT = int(os.getenv("TYPEAHEAD_LIMIT", str(DEFAULT_TYPEAHEAD_LIMIT)))
BATCH_SEARCH_MAX_WORKERS = int(os.getenv("BATCH_SEARCH_MAX_WORKERS", "1"))

# ---------------------------------------------------------
#  UniProt annotation lookups (disabled by default)
# ---------------------------------------------------------

UNIPROT_LOOKUP_ENABLED = _env_bool("UNIPROT_LOOKUP_ENABLED", "false")
UNIPROT_BASE_URL = os.getenv("UNIPROT_BASE_URL", "https://rest.uniprot.org")
UNIPROT_TIMEOUT = float(os.getenv("UNIPROT_TIMEOUT", "10"))
UNIPROT_MAX_ATTEMPTS = int(os.getenv("UNIPROT_MAX_ATTEMPTS", "3"))
UNIPROT_FAILURE_THRESHOLD = int(os.getenv("UNIPROT_FAILURE_THRESHOLD", "5"))
UNIPROT_RECOVERY_TIMEOUT = float(os.getenv("UNIPROT_RECOVERY_TIMEOUT", "60"))
UNIPROT_MAX_WORKERS = int(os.getenv("UNIPROT_MAX_WORKERS", "4"))

# ---------------------------------------------------------
#  Volcano point cache
# ---------------------------------------------------------

POINT_CACHE_ENABLED = _env_bool("POINT_CACHE_ENABLED", "true")
POINT_CACHE_TTL = int(os.getenv("POINT_CACHE_TTL", "3600"))
POINT_CACHE_MAX_SIZE = int(os.getenv("POINT_CACHE_MAX_SIZE", "32"))


# ---------------------------------------------------------
#  CONFIG STRUCTURES
# ---------------------------------------------------------


@dataclass(frozen=True)
class VolcanoConfig:
    background_cap: int = VOLCANO_BACKGROUND_CAP
    random_seed: Optional[int] = VOLCANO_RANDOM_SEED
    p_cutoff: float = VOLCANO_P_CUTOFF
    log2_fc_cutoff: float = VOLCANO_LOG2FC_CUTOFF


@dataclass(frozen=True)
class SearchConfig:
    typeahead_min_length: int = TYPEAHEAD_MIN_LENGTH_ENV
    typeahead_limit: int = TYPEAHEAD_LIMIT
    # 1 keeps batch resolution on the calling thread
    batch_max_workers: int = BATCH_SEARCH_MAX_WORKERS


@dataclass(frozen=True)
class AnnotationConfig:
    enabled: bool = UNIPROT_LOOKUP_ENABLED
    base_url: str = UNIPROT_BASE_URL
    timeout: float = UNIPROT_TIMEOUT
    max_attempts: int = UNIPROT_MAX_ATTEMPTS
    # Consecutive failed requests before lookups stop for recovery_timeout seconds
    failure_threshold: int = UNIPROT_FAILURE_THRESHOLD
    recovery_timeout: float = UNIPROT_RECOVERY_TIMEOUT
    max_workers: int = UNIPROT_MAX_WORKERS


@dataclass(frozen=True)
class PointCacheConfig:
    enabled: bool = POINT_CACHE_ENABLED
    ttl: int = POINT_CACHE_TTL
    max_size: int = POINT_CACHE_MAX_SIZE


@dataclass(frozen=True)
class AppConfig:
    volcano: VolcanoConfig
    search: SearchConfig
    annotation: AnnotationConfig
    point_cache: PointCacheConfig


# ---------------------------------------------------------
#  SINGLETON ACCESSOR
# ---------------------------------------------------------

_config_singleton: AppConfig | None = None


def get_config() -> AppConfig:
    global _config_singleton
    if _config_singleton is None:
        _config_singleton = AppConfig(
            volcano=VolcanoConfig(),
            search=SearchConfig(),
            annotation=AnnotationConfig(),
            point_cache=PointCacheConfig(),
        )
    return _config_singleton


def reset_config() -> None:
    """Drop the cached config so the next get_config() starts fresh."""
    global _config_singleton
    _config_singleton = None
