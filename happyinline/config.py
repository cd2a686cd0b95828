import os
from pathlib import Path

from dotenv import load_dotenv

env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

# MongoDB
MONGODB_URL = os.getenv("MONGODB_URL", "mongodb://localhost:27017")
MONGODB_DB = os.getenv("MONGODB_DB", "happyinline")

# Tokens are issued by the auth backend; we only verify them
JWT_SECRET = os.getenv("JWT_SECRET", "")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_AUDIENCE = os.getenv("JWT_AUDIENCE", "authenticated")

# Presence (disabled when unset)
REDIS_URL = os.getenv("REDIS_URL")
PRESENCE_TTL_SECONDS = int(os.getenv("PRESENCE_TTL_SECONDS", "60"))
PRESENCE_HEARTBEAT_SECONDS = int(os.getenv("PRESENCE_HEARTBEAT_SECONDS", "30"))

# Push notifications (disabled when unset)
FCM_SERVICE_ACCOUNT_FILE = os.getenv("FCM_SERVICE_ACCOUNT_FILE")
FCM_PROJECT_ID = os.getenv("FCM_PROJECT_ID")

# Message feed
MESSAGE_POLL_INTERVAL_SECONDS = float(os.getenv("MESSAGE_POLL_INTERVAL_SECONDS", "2"))
MESSAGE_BACKFILL_LIMIT = int(os.getenv("MESSAGE_BACKFILL_LIMIT", "100"))
MESSAGE_POLL_LIMIT = int(os.getenv("MESSAGE_POLL_LIMIT", "20"))
MESSAGE_SEEN_CAPACITY = int(os.getenv("MESSAGE_SEEN_CAPACITY", "1000"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = os.getenv("LOG_FORMAT", "%(asctime)s %(levelname)s [%(name)s] %(message)s")
