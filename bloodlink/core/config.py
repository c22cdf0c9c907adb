"""
Basic configuration

- CORS origins for development and production
- Storage backend and data directory
- Matching limits and logging level
- Supports environment variables for production deployments
"""
import os

# Default localhost origins for development
DEFAULT_CORS_ORIGINS = [
    "http://localhost:3000",
    "http://localhost:8081",
]

# Get additional CORS origins from environment variable
ADDITIONAL_CORS_ORIGINS = os.getenv("CORS_ORIGINS", "").split(",") if os.getenv("CORS_ORIGINS") else []

# Filter out empty strings from split
ADDITIONAL_CORS_ORIGINS = [origin.strip() for origin in ADDITIONAL_CORS_ORIGINS if origin.strip()]

# Combine default and additional origins
CORS_ORIGINS = DEFAULT_CORS_ORIGINS + ADDITIONAL_CORS_ORIGINS

# Storage: "json" persists under DATA_DIR, "memory" keeps everything in-process
STORAGE_BACKEND = os.getenv("STORAGE_BACKEND", "json").strip().lower()
DATA_DIR = os.getenv("DATA_DIR", "data")
CACHE_TTL_SECONDS = int(os.getenv("CACHE_TTL_SECONDS", "60"))
# Seconds a JSON store write waits for the file lock held by another process
STORAGE_LOCK_TIMEOUT_SECONDS = float(os.getenv("STORAGE_LOCK_TIMEOUT_SECONDS", "10"))

# Maximum number of donors returned by a compatibility match
MATCHING_DONOR_LIMIT = int(os.getenv("MATCHING_DONOR_LIMIT", "50"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
