"""
Configuration et utilitaires partagés du pipeline marchands
"""

import os
from datetime import datetime, timezone
from motor.motor_asyncio import AsyncIOMotorClient
from dotenv import load_dotenv
from pathlib import Path

# Charger .env
ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

# MongoDB
MONGO_URL = os.environ.get('MONGO_URL', 'mongodb://localhost:27017')
DB_NAME = os.environ.get('DB_NAME', 'merchant_pipeline')

client = AsyncIOMotorClient(MONGO_URL)
db = client[DB_NAME]

# Collection holding the board records (leads and merchants)
PIPELINE_COLLECTION = os.environ.get('PIPELINE_COLLECTION', 'merchants')

# Status change notification (external email/notification service)
NOTIFY_STATUS_CHANGE_URL = os.environ.get('NOTIFY_STATUS_CHANGE_URL', '')
NOTIFY_TIMEOUT_SECONDS = float(os.environ.get('NOTIFY_TIMEOUT_SECONDS', '10'))

# Drag & drop: pixels travelled before a press becomes a drag
DRAG_ACTIVATION_DISTANCE = float(os.environ.get('DRAG_ACTIVATION_DISTANCE', '8'))

# Position repair job (0 disables the scheduled run)
REPAIR_INTERVAL_MINUTES = int(os.environ.get('REPAIR_INTERVAL_MINUTES', '30'))
SCHEDULER_TIMEZONE = os.environ.get('SCHEDULER_TIMEZONE', 'UTC')

CORS_ORIGINS = os.environ.get('CORS_ORIGINS', '*').split(',')
LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO').upper()


# ==================== HELPERS ====================

def now_iso() -> str:
    """Retourne la date/heure actuelle en ISO"""
    return datetime.now(timezone.utc).isoformat()


def parse_iso(value) -> datetime:
    """Parse an ISO timestamp (or pass a datetime through), always tz-aware."""
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
