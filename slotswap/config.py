import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./slotswap.db")

# "development" or "production"
ENVIRONMENT = os.getenv("ENVIRONMENT", "development").lower()

# Security - CRITICAL: No default secret key in production
SECRET_KEY = os.getenv("SECRET_KEY")
if not SECRET_KEY:
    import warnings

    warnings.warn(
        "SECRET_KEY not set! Using insecure default - DO NOT USE IN PRODUCTION", RuntimeWarning, stacklevel=2
    )
    SECRET_KEY = "INSECURE-DEV-KEY-CHANGE-IN-PRODUCTION"  # noqa: S105 - Dev fallback only

JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "1440"))

# Swap negotiation
# In-process per-slot locks serialize propose/respond/update/delete on the same slot.
# Required when the store has no row-level locking (SQLite); harmless on PostgreSQL.
SLOT_LOCKS_ENABLED = os.getenv("SLOT_LOCKS_ENABLED", "true").lower() == "true"
# How many times a transaction is attempted when the store reports a conflict
TX_RETRY_ATTEMPTS = max(1, int(os.getenv("TX_RETRY_ATTEMPTS", "3")))

# CORS / headers
ALLOWED_ORIGINS = os.getenv(
    "ALLOWED_ORIGINS",
    "http://localhost:5173,http://localhost:3000",
).split(",")
SECURITY_HEADERS_ENABLED = os.getenv("SECURITY_HEADERS_ENABLED", "true").lower() == "true"
