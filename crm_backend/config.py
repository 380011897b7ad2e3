"""
Configuration and shared helpers

Settings come from the environment (``.env`` next to this package is loaded
first). The Mongo client is created once at import; routes receive the
database handle through ``get_db`` so it can be swapped in tests.
"""

import os
import uuid
import logging
from datetime import datetime, timezone, timedelta
from pathlib import Path
from typing import Optional

import bcrypt
from dotenv import load_dotenv
from jose import JWTError, jwt
from motor.motor_asyncio import AsyncIOMotorClient

logger = logging.getLogger("config")

# Load .env
ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

# MongoDB
MONGO_URL = os.environ.get('MONGO_URL', 'mongodb://localhost:27017')
DB_NAME = os.environ.get('DB_NAME', 'crm_database')

client = AsyncIOMotorClient(MONGO_URL)
db = client[DB_NAME]

# Auth
_DEFAULT_SECRET = "dev-secret-change-me"
JWT_SECRET = os.environ.get('JWT_SECRET', _DEFAULT_SECRET)
JWT_ALGORITHM = os.environ.get('JWT_ALGORITHM', 'HS256')
JWT_EXPIRE_DAYS = int(os.environ.get('JWT_EXPIRE_DAYS', '30'))

if JWT_SECRET == _DEFAULT_SECRET:
    logger.warning("[CONFIG] JWT_SECRET not set, using the development secret")

# Server
ENVIRONMENT = os.environ.get('ENVIRONMENT', 'development')
CORS_ORIGINS = os.environ.get('CORS_ORIGINS', '*').split(',')

# Scheduler
SCHEDULER_ENABLED = os.environ.get('SCHEDULER_ENABLED', 'true').lower() in ('1', 'true', 'yes')
SCHEDULER_TIMEZONE = os.environ.get('SCHEDULER_TIMEZONE', 'UTC')

# Lifecycle / automation thresholds
INACTIVITY_DAYS = int(os.environ.get('INACTIVITY_DAYS', '30'))
LEAD_CONVERSION_POSITIVE_INTERACTIONS = int(
    os.environ.get('LEAD_CONVERSION_POSITIVE_INTERACTIONS', '2')
)
TASK_ARCHIVE_DAYS = int(os.environ.get('TASK_ARCHIVE_DAYS', '182'))  # ~6 months


def get_db():
    """FastAPI dependency returning the database handle."""
    return db


def is_production() -> bool:
    return ENVIRONMENT.lower() == "production"


# ==================== HELPERS ====================

def new_id() -> str:
    return str(uuid.uuid4())


def now_iso() -> str:
    """Current UTC time as an ISO string"""
    return datetime.now(timezone.utc).isoformat()


def to_iso(value: datetime) -> str:
    """UTC ISO string for a datetime; naive values are taken as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def parse_iso(value: Optional[str]) -> Optional[datetime]:
    """Parse a stored ISO timestamp back to an aware datetime."""
    if not value:
        return None
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def hash_password(password: str) -> str:
    """Hash a password with bcrypt"""
    return bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt()).decode('utf-8')


def verify_password(password: str, hashed: str) -> bool:
    if not hashed:
        return False
    try:
        return bcrypt.checkpw(password.encode('utf-8'), hashed.encode('utf-8'))
    except ValueError:
        return False


def create_access_token(user_id: str, role: str, expires_delta: Optional[timedelta] = None) -> str:
    """Signed JWT for a user"""
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(days=JWT_EXPIRE_DAYS))
    payload = {"sub": user_id, "role": role, "exp": expire}
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)


def decode_access_token(token: str) -> Optional[dict]:
    """Returns the token payload, or None when invalid or expired."""
    try:
        return jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except JWTError:
        return None
