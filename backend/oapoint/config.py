"""
Runtime configuration read from environment variables.

Values are read once at import time, the same way DATABASE_URL and
LOG_LEVEL are.
"""

import os

# JWT verification (tokens are issued by the auth service, not here)
JWT_SECRET = os.getenv("JWT_SECRET", "change-me-in-production")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_HOURS = int(os.getenv("ACCESS_TOKEN_EXPIRE_HOURS", "24"))

# External code-execution service
JUDGE_URL = os.getenv("JUDGE_URL", "http://localhost:2358")
JUDGE_API_KEY = os.getenv("JUDGE_API_KEY", "")
JUDGE_TIMEOUT_SECONDS = float(os.getenv("JUDGE_TIMEOUT_SECONDS", "10"))
JUDGE_CACHE_TTL_SECONDS = int(os.getenv("JUDGE_CACHE_TTL_SECONDS", "300"))

# Per-IP request pacing
RATE_LIMIT_MIN_DELAY_MS = int(os.getenv("RATE_LIMIT_MIN_DELAY_MS", "100"))
RATE_LIMIT_MAX_REQUESTS = int(os.getenv("RATE_LIMIT_MAX_REQUESTS", "300"))
RATE_LIMIT_WINDOW_SECONDS = int(os.getenv("RATE_LIMIT_WINDOW_SECONDS", "60"))
RATE_LIMIT_ENTRY_TTL_SECONDS = int(os.getenv("RATE_LIMIT_ENTRY_TTL_SECONDS", "600"))
RATE_LIMIT_MAX_ENTRIES = int(os.getenv("RATE_LIMIT_MAX_ENTRIES", "10000"))

CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
