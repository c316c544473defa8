"""
Configuration module for loading environment variables
"""

import os
from typing import Optional


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes")


class Config:
    """Application configuration"""

    # Road network provider
    NETWORK_DIR: str = os.getenv("SAFE_ROUTING_NETWORK_DIR", "osm_graphs")

    # Crime report store (HTTP store wins over a local file when both are set)
    CRIME_STORE_URL: Optional[str] = os.getenv("SAFE_ROUTING_CRIME_STORE_URL")
    CRIME_FILE: Optional[str] = os.getenv("SAFE_ROUTING_CRIME_FILE")
    CRIME_STORE_TIMEOUT_S: float = float(
        os.getenv("SAFE_ROUTING_CRIME_STORE_TIMEOUT_S", "10")
    )
    LOOKBACK_DAYS: int = int(os.getenv("SAFE_ROUTING_LOOKBACK_DAYS", "90"))

    # Short-lived crime report cache (Redis)
    CRIME_CACHE_ENABLED: bool = _env_bool("CRIME_CACHE_ENABLED")
    CRIME_CACHE_TTL_S: int = int(os.getenv("CRIME_CACHE_TTL_S", "30"))

    # Risk weighting
    RISK_RADIUS_M: float = float(os.getenv("SAFE_ROUTING_RISK_RADIUS_M", "50"))
    RISK_MULTIPLIER: float = float(os.getenv("SAFE_ROUTING_RISK_MULTIPLIER", "100"))
    RISK_FALLOFF: str = os.getenv("SAFE_ROUTING_RISK_FALLOFF", "gaussian")
    RISK_SIGMA_M: float = float(os.getenv("SAFE_ROUTING_RISK_SIGMA_M", "25"))

    # Snapping and diagnostics
    MAX_SNAP_M: float = float(os.getenv("SAFE_ROUTING_MAX_SNAP_M", "500"))
    PROXIMITY_M: float = float(os.getenv("SAFE_ROUTING_PROXIMITY_M", "50"))

    # Alternatives
    ALTERNATIVES: int = int(os.getenv("SAFE_ROUTING_ALTERNATIVES", "3"))
    OVERLAP_THRESHOLD: float = float(
        os.getenv("SAFE_ROUTING_OVERLAP_THRESHOLD", "0.5")
    )
    PENALTY_FACTOR: float = float(os.getenv("SAFE_ROUTING_PENALTY_FACTOR", "10"))
    ATTEMPT_MULTIPLIER: int = int(os.getenv("SAFE_ROUTING_ATTEMPT_MULTIPLIER", "3"))
    STOP_ON_REJECTION: bool = _env_bool("SAFE_ROUTING_STOP_ON_REJECTION", "true")

    # Search budget
    BUDGET_MS: int = int(os.getenv("SAFE_ROUTING_BUDGET_MS", "5000"))
    MAX_EXPANSIONS: int = int(os.getenv("SAFE_ROUTING_MAX_EXPANSIONS", "2000000"))

    # Upstream retry
    UPSTREAM_ATTEMPTS: int = int(os.getenv("SAFE_ROUTING_UPSTREAM_ATTEMPTS", "3"))
    UPSTREAM_BACKOFF_S: float = float(
        os.getenv("SAFE_ROUTING_UPSTREAM_BACKOFF_S", "0.2")
    )

    @classmethod
    def validate_crime_store_config(cls) -> bool:
        """Check if a crime report source is configured"""
        return any([cls.CRIME_STORE_URL, cls.CRIME_FILE])


config = Config()
