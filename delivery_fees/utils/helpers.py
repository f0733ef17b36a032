# delivery_fees/utils/helpers.py

import os
import json
import uuid
import logging
import psycopg2
from psycopg2.extras import register_uuid
from flask import request
from supabase import create_client, Client
from datetime import date, datetime, time
from decimal import Decimal
from typing import Optional

logger = logging.getLogger(__name__)

# --- Supabase ---
supabase: Optional[Client] = None
try:
    SUPABASE_URL = os.environ.get("SUPABASE_URL")
    SUPABASE_SERVICE_KEY = os.environ.get("SUPABASE_SERVICE_KEY")
    if not SUPABASE_URL or not SUPABASE_SERVICE_KEY:
        raise ValueError("SUPABASE_URL and SUPABASE_SERVICE_KEY are required.")
    supabase = create_client(SUPABASE_URL, SUPABASE_SERVICE_KEY)
    logger.info("✅ Supabase client initialised.")
except Exception as e:
    logger.error(f"❌ Failed to initialise Supabase: {e}")
    supabase = None


# --- DB ---
def get_db_connection():
    url = os.environ.get("DATABASE_URL")
    if not url:
        logger.error("❌ DATABASE_URL not set.")
        return None
    try:
        conn = psycopg2.connect(url)
        register_uuid(None, conn)  # UUID columns come back as uuid.UUID
        return conn
    except Exception as e:
        logger.error(f"❌ DB connection failed: {e}", exc_info=True)
        return None


# --- JSON utils ---
class CustomJSONEncoder(json.JSONEncoder):
    def default(self, obj):
        if isinstance(obj, Decimal):
            return float(obj)
        if isinstance(obj, (datetime, date, time)):
            return obj.isoformat()
        if isinstance(obj, uuid.UUID):
            return str(obj)
        return super().default(obj)


def serialize_data(data):
    return json.loads(json.dumps(data, cls=CustomJSONEncoder))


def to_camel(key: str) -> str:
    head, *rest = key.split("_")
    return head + "".join(part.capitalize() for part in rest)


def get_json_object() -> Optional[dict]:
    """Request body as a dict: {} when there is no JSON, None when it is not an object."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    return data if isinstance(data, dict) else None


def serialize_row(row: Optional[dict]) -> Optional[dict]:
    """DB row (snake_case, Decimal, UUID) -> JSON-ready dict with camelCase keys."""
    if row is None:
        return None
    return {to_camel(k): v for k, v in serialize_data(dict(row)).items()}
