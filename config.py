import os
from dotenv import load_dotenv

# 1. Load environment variables from .env file
load_dotenv()

# 2. Database URL is mandatory. Fail fast if it's missing.
DATABASE_URL = os.environ.get("DATABASE_URL")

if not DATABASE_URL:
    raise ValueError("DATABASE_URL is not set. Please check your .env file.")

SQL_ECHO = os.environ.get("SQL_ECHO", "false").lower() in ("1", "true", "yes")

# 3. Logging
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
LOG_FILE = os.environ.get("LOG_FILE")  # e.g. logs/errors.log, unset = console only

# 4. Per-operation deadline in seconds. Empty means no deadline.
_timeout = os.environ.get("BOOKING_TIMEOUT_SECONDS", "")
BOOKING_TIMEOUT_SECONDS = float(_timeout) if _timeout else None

CORS_ORIGINS = [
    origin.strip()
    for origin in os.environ.get("CORS_ORIGINS", "*").split(",")
    if origin.strip()
]
