# delivery_fees/utils/store.py
"""
Postgres access for delivery pricing tables.

Each function opens its own connection (see helpers.get_db_connection), runs a
single statement and closes it. Table and column names are taken from the
TABLES whitelist below, never from request data.
"""
import logging
from datetime import datetime

import psycopg2
import psycopg2.extras
from psycopg2.extras import Json

from .helpers import get_db_connection

logger = logging.getLogger(__name__)

FEE_SETTINGS = "delivery_fee_settings"
ZONES = "delivery_zones"
GEO_ZONES = "geo_zones"
RULES = "delivery_rules"
DISCOUNTS = "delivery_discounts"

# table -> (writable columns, ORDER BY clause)
TABLES = {
    FEE_SETTINGS: (
        ("restaurant_id", "type", "base_fee", "per_km_fee", "min_fee", "max_fee",
         "free_delivery_threshold", "store_lat", "store_lng", "is_active"),
        "updated_at DESC",
    ),
    ZONES: (
        ("name", "description", "min_distance", "max_distance", "delivery_fee",
         "estimated_time", "is_active"),
        "min_distance ASC, created_at ASC",
    ),
    GEO_ZONES: (
        ("name", "description", "coordinates", "is_active"),
        "created_at ASC",
    ),
    RULES: (
        ("name", "rule_type", "priority", "geo_zone_id", "min_distance", "max_distance",
         "min_order_value", "max_order_value", "fee", "is_active"),
        "priority DESC, created_at ASC",
    ),
    DISCOUNTS: (
        ("name", "discount_type", "discount_value", "min_order_value", "valid_from",
         "valid_until", "is_active"),
        "created_at DESC",
    ),
}

# tables carrying an updated_at column
_TOUCH_ON_UPDATE = (FEE_SETTINGS,)


class StoreUnavailableError(RuntimeError):
    """Raised when no database connection can be obtained."""


def _connect():
    conn = get_db_connection()
    if not conn:
        raise StoreUnavailableError("Database connection error")
    return conn


def _check_table(table):
    if table not in TABLES:
        raise ValueError(f"Unknown table: {table}")


def _writable(table, data):
    columns, _ = TABLES[table]
    values = {}
    for column in columns:
        if column in data:
            value = data[column]
            values[column] = Json(value) if isinstance(value, (list, dict)) else value
    return values


def _fetch(query, params=(), one=False):
    conn = _connect()
    try:
        with conn.cursor(cursor_factory=psycopg2.extras.DictCursor) as cur:
            cur.execute(query, params)
            if one:
                row = cur.fetchone()
                return dict(row) if row else None
            return [dict(row) for row in cur.fetchall()]
    finally:
        conn.close()


def _write(query, params):
    conn = _connect()
    try:
        with conn.cursor(cursor_factory=psycopg2.extras.DictCursor) as cur:
            cur.execute(query, params)
            row = cur.fetchone()
            conn.commit()
            return dict(row) if row else None
    except psycopg2.Error:
        conn.rollback()
        raise
    finally:
        conn.close()


# --- Generic CRUD ---

def list_rows(table, active_only=False):
    _, order_by = TABLES[table]
    where = "WHERE is_active = true" if active_only else ""
    return _fetch(f"SELECT * FROM {table} {where} ORDER BY {order_by}")


def get_row(table, row_id):
    _check_table(table)
    return _fetch(f"SELECT * FROM {table} WHERE id = %s", (row_id,), one=True)


def insert_row(table, data):
    values = _writable(table, data)
    columns = ', '.join(values.keys())
    placeholders = ', '.join(['%s'] * len(values))
    logger.info(f"Inserting into {table}: {list(values.keys())}")
    return _write(
        f"INSERT INTO {table} ({columns}) VALUES ({placeholders}) RETURNING *",
        list(values.values()),
    )


def update_row(table, row_id, data):
    values = _writable(table, data)
    if table in _TOUCH_ON_UPDATE:
        values["updated_at"] = datetime.now()
    if not values:
        return get_row(table, row_id)
    assignments = ', '.join(f"{column} = %s" for column in values)
    logger.info(f"Updating {table} {row_id}: {list(values.keys())}")
    return _write(
        f"UPDATE {table} SET {assignments} WHERE id = %s RETURNING *",
        list(values.values()) + [row_id],
    )


def delete_row(table, row_id):
    _check_table(table)
    return _write(f"DELETE FROM {table} WHERE id = %s RETURNING id", (row_id,)) is not None


# --- Pricing lookups ---

def get_fee_settings(restaurant_id=None):
    """Active settings row for a restaurant, or the global row when restaurant_id is None."""
    if restaurant_id:
        return _fetch(
            f"SELECT * FROM {FEE_SETTINGS} WHERE restaurant_id = %s AND is_active = true "
            "ORDER BY updated_at DESC LIMIT 1",
            (restaurant_id,), one=True,
        )
    return _fetch(
        f"SELECT * FROM {FEE_SETTINGS} WHERE restaurant_id IS NULL AND is_active = true "
        "ORDER BY updated_at DESC LIMIT 1",
        one=True,
    )


def get_ui_setting(key):
    row = _fetch("SELECT value FROM ui_settings WHERE key = %s", (key,), one=True)
    return row["value"] if row else None
