"""
Application-wide constants for the SafeRoute safe routing backend.

This module contains all shared constants used across the application.
"""

import os

# ========= Service Configuration =========
# Service configuration: service_name -> (module_path, port)
SERVICES = {
    "safe_routing": ("services.safe_routing.main", 20002),
}

# ========= Geometry =========
# Mean Earth radius used by every great-circle and projection computation
EARTH_RADIUS_M = 6371000.0

# ========= Crime Weighting =========
# Severity of each reported crime type (murder is the most severe)
CRIME_TYPE_WEIGHTS = {
    "murder": 10.0,
    "robbery": 7.0,
    "harassment": 6.0,
    "assault": 6.0,
    "theft": 3.0,
    "vandalism": 2.0,
    "other": 1.0,
}

# Recency buckets: (max age in days, factor). Older reports fall through to
# RECENCY_FLOOR.
RECENCY_BUCKETS = (
    (1, 1.0),
    (7, 0.8),
    (21, 0.6),
    (42, 0.4),
    (56, 0.2),
)
RECENCY_FLOOR = 0.1

# ========= Redis Configuration =========
# Redis connection settings
REDIS_HOST = os.getenv("REDIS_HOST", "localhost")
REDIS_PORT = int(os.getenv("REDIS_PORT", "6379"))
REDIS_DB = int(os.getenv("REDIS_DB", "0"))
# Note: REDIS_PASSWORD should be read from env in redis_client, not here (security)

# ========= Crime Cache Configuration =========
# Key prefix for cached crime report batches
CRIME_CACHE_KEY_PREFIX = "crime_reports:"
