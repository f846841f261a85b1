# search_gateway/config/settings.py

"""Central configuration for the search gateway."""

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()


class Settings:
    """Central configuration for the search gateway."""

    # --- Caching (seconds) ---
    RESULT_CACHE_TTL: float = 300.0          # Search result sets
    FACET_CACHE_TTL: float = 600.0           # Facets change slowly
    AUTOCOMPLETE_CACHE_TTL: float = 3600.0   # Suggestions are stable
    TRENDING_CACHE_TTL: float = 1800.0
    CACHE_BACKEND: str = os.getenv("CACHE_BACKEND", "memory")
    REDIS_URL: str = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    REDIS_NAMESPACE: str = "search_gateway"

    # --- Query limits ---
    MAX_QUERY_LENGTH: int = 500
    MAX_PAGE: int = 10_000
    MAX_PAGE_SIZE: int = 100
    DEFAULT_PAGE_SIZE: int = 20
    MIN_AUTOCOMPLETE_LENGTH: int = 2
    DEFAULT_SUGGESTIONS: int = 5
    MAX_SUGGESTIONS: int = 50
    DEFAULT_TRENDING: int = 10
    MAX_RATING: float = 5.0

    # --- Resilience ---
    CIRCUIT_BREAKER_THRESHOLD: int = 5      # Consecutive failures to trip
    CIRCUIT_BREAKER_COOLDOWN: float = 60.0  # Seconds before leaving Open
    CIRCUIT_BREAKER_HALF_OPEN: bool = True  # Probe once before closing
    PRIMARY_TIMEOUT: float = 5.0
    AUTOCOMPLETE_TIMEOUT: float = 0.5
    FALLBACK_TIMEOUT: float = 30.0
    AGGREGATION_TIMEOUT: float = 10.0       # Facets and trending

    # --- Metrics ---
    LATENCY_BUFFER_SIZE: int = 1000
    METRICS_REPORT_INTERVAL: float = 300.0
    HEALTH_SLOW_MS: float = 5000.0

    # --- Logging ---
    CONSOLE_LOG_LEVEL: str = os.getenv("LOG_LEVEL", "WARNING").upper()

    # --- Primary index (Meilisearch) ---
    INDEX_HOST: str = os.getenv("MEILI_HOST", "http://localhost:7700")
    INDEX_API_KEY: str = os.getenv("MEILI_API_KEY", "")
    INDEX_UID: str = os.getenv("MEILI_INDEX", "products")
    INDEX_BATCH_SIZE: int = 1000

    # --- Paths ---
    BASE_DIR: Path = Path(__file__).resolve().parent.parent.parent
    DATA_DIR: Path = BASE_DIR / "data"
    CATALOG_DB_PATH: Path = Path(
        os.getenv("CATALOG_DB_PATH", str(DATA_DIR / "catalog.db"))
    )
    LOGS_DIR: Path = BASE_DIR / "logs"
