# delivery_fees/routes/delivery_settings.py
import logging
from decimal import Decimal

from flask import Blueprint, request, jsonify
import psycopg2

from .. import config
from ..logic.fee_calculator import (
    DeliveryZone,
    PricingSettings,
    STRATEGIES,
    find_overlapping_zone,
)
from ..utils import store
from ..utils.helpers import get_json_object, serialize_row
from ..utils.parsing import (
    InvalidAmount,
    InvalidCoordinate,
    InvalidIdentifier,
    optional_text,
    parse_bool,
    parse_latitude,
    parse_longitude,
    parse_money,
    parse_uuid,
)

logger = logging.getLogger(__name__)

delivery_settings_bp = Blueprint('delivery_settings', __name__)

MONEY_FIELDS = (
    ('baseFee', 'base_fee'),
    ('perKmFee', 'per_km_fee'),
    ('minFee', 'min_fee'),
    ('maxFee', 'max_fee'),
    ('freeDeliveryThreshold', 'free_delivery_threshold'),
)


def _db_error_response(e):
    logger.error(f"Database error: {e}", exc_info=True)
    return jsonify({"success": False, "error": "Database connection error"}), 500


def _not_an_object():
    return jsonify({
        "success": False,
        "error": "Missing data",
        "details": "request body must be a JSON object"
    }), 400


# --- Pricing settings ---

@delivery_settings_bp.route('/settings', methods=['GET'])
def get_settings():
    """Stored settings for a restaurant (or global), or the defaults flagged isDefault."""
    try:
        restaurant_id = parse_uuid(request.args.get('restaurantId'), 'restaurantId')
    except InvalidIdentifier as e:
        return jsonify({"success": False, "error": "Invalid data", "field": e.field, "message": str(e)}), 400

    try:
        row = store.get_fee_settings(restaurant_id)
    except (psycopg2.Error, store.StoreUnavailableError) as e:
        return _db_error_response(e)

    if not row:
        defaults = PricingSettings.defaults().to_dict()
        defaults["isDefault"] = True
        return jsonify(defaults), 200

    return jsonify(serialize_row(row)), 200


def _parse_settings(data):
    """Validate a settings payload and return the column values to store."""
    strategy = data.get('type')
    if strategy not in STRATEGIES:
        raise InvalidAmount('type', strategy, f"must be one of: {', '.join(STRATEGIES)}")

    values = {'type': strategy, 'restaurant_id': parse_uuid(data.get('restaurantId'), 'restaurantId')}
    for field, column in MONEY_FIELDS:
        default = Decimal(config.UNSET_MAX_FEE) if column == 'max_fee' else Decimal('0')
        values[column] = parse_money(data.get(field), field, default)

    store_lat, store_lng = data.get('storeLat'), data.get('storeLng')
    values['store_lat'] = parse_latitude(store_lat, 'storeLat') if store_lat not in (None, '') else None
    values['store_lng'] = parse_longitude(store_lng, 'storeLng') if store_lng not in (None, '') else None
    values['is_active'] = parse_bool(data.get('isActive'), True)
    return values


@delivery_settings_bp.route('/settings', methods=['POST'])
def save_settings():
    """Create or update pricing settings (global when restaurantId is absent)."""
    logger.info("=== START save_settings ===")
    data = get_json_object()
    if data is None:
        return _not_an_object()
    logger.info(f"Received settings: {data}")

    try:
        values = _parse_settings(data)
    except (InvalidAmount, InvalidCoordinate, InvalidIdentifier) as e:
        logger.warning(f"Invalid settings: {e}")
        return jsonify({
            "success": False,
            "error": "Invalid input values",
            "field": e.field,
            "message": str(e)
        }), 400

    min_fee, max_fee = values['min_fee'], values['max_fee']
    if max_fee < min_fee:
        message = f"maxFee ({max_fee}) must be greater than or equal to minFee ({min_fee})"
        logger.warning(message)
        return jsonify({
            "success": False,
            "error": "Invalid data",
            "field": "maxFee",
            "message": message,
            "details": {"minFee": float(min_fee), "maxFee": float(max_fee)}
        }), 400

    if max_fee > Decimal(config.MAX_FEE_WARNING):
        logger.warning(f"maxFee ({max_fee}) looks too high")

    try:
        existing = store.get_fee_settings(values['restaurant_id'])
        if existing:
            logger.info(f"Updating settings {existing['id']}")
            updated = store.update_row(store.FEE_SETTINGS, existing['id'], values)
            return jsonify({
                "success": True,
                "message": "Settings updated",
                "settings": serialize_row(updated)
            }), 200

        created = store.insert_row(store.FEE_SETTINGS, values)
        logger.info(f"Settings created for {values['restaurant_id'] or 'global'}")
        return jsonify({
            "success": True,
            "message": "Settings saved",
            "settings": serialize_row(created)
        }), 201
    except (psycopg2.Error, store.StoreUnavailableError) as e:
        return _db_error_response(e)


# --- Distance zones ---

def _parse_zone(data, current=None):
    """Merge a zone payload over the current row and validate it.

    Returns (column values, DeliveryZone) where the zone is used for the
    overlap check.
    """
    current = current or {}
    values = {}

    name = optional_text(data['name']) if 'name' in data else current.get('name')
    if not name:
        raise ValueError("name is required")
    values['name'] = name

    if 'description' in data:
        values['description'] = optional_text(data['description'])
    if 'estimatedTime' in data:
        values['estimated_time'] = optional_text(data['estimatedTime'])
    if 'isActive' in data:
        values['is_active'] = parse_bool(data['isActive'], True)

    if 'minDistance' in data:
        values['min_distance'] = parse_money(data['minDistance'], 'minDistance', Decimal('0'))
    if 'maxDistance' in data:
        values['max_distance'] = parse_money(data['maxDistance'], 'maxDistance')
    if 'deliveryFee' in data:
        values['delivery_fee'] = parse_money(data['deliveryFee'], 'deliveryFee')

    merged = {**current, **values}
    if merged.get('max_distance') is None:
        raise ValueError("maxDistance is required")
    if merged.get('delivery_fee') is None:
        raise ValueError("deliveryFee is required")

    zone = DeliveryZone.from_row(merged)
    if zone.min_distance_km >= zone.max_distance_km:
        raise ValueError("minDistance must be less than maxDistance")
    return values, zone


def _overlap_response(zone, other):
    message = (
        f"Zone [{zone.min_distance_km}, {zone.max_distance_km}) overlaps "
        f"'{other.name}' [{other.min_distance_km}, {other.max_distance_km})"
    )
    logger.warning(message)
    return jsonify({
        "success": False,
        "error": "Overlapping zone",
        "message": message,
        "conflictingZoneId": other.id
    }), 409


def _active_zones():
    return [DeliveryZone.from_row(row) for row in store.list_rows(store.ZONES, active_only=True)]


@delivery_settings_bp.route('/zones', methods=['GET'])
def list_zones():
    try:
        zones = store.list_rows(store.ZONES)
        return jsonify([serialize_row(z) for z in zones]), 200
    except (psycopg2.Error, store.StoreUnavailableError) as e:
        return _db_error_response(e)


@delivery_settings_bp.route('/zones', methods=['POST'])
def create_zone():
    data = get_json_object()
    if data is None:
        return _not_an_object()
    try:
        values, zone = _parse_zone(data)
    except ValueError as e:
        return jsonify({"success": False, "error": "Invalid data", "details": str(e)}), 400

    try:
        if zone.is_active:
            other = find_overlapping_zone(_active_zones(), zone)
            if other is not None:
                return _overlap_response(zone, other)

        values.setdefault('min_distance', zone.min_distance_km)
        new_zone = store.insert_row(store.ZONES, values)
        logger.info(f"Delivery zone created: {new_zone['id']}")
        return jsonify({"success": True, "zone": serialize_row(new_zone)}), 201
    except (psycopg2.Error, store.StoreUnavailableError) as e:
        return _db_error_response(e)


@delivery_settings_bp.route('/zones/<uuid:zone_id>', methods=['PUT'])
def update_zone(zone_id):
    zone_id = str(zone_id)
    data = get_json_object()
    if data is None:
        return _not_an_object()
    try:
        current = store.get_row(store.ZONES, zone_id)
        if not current:
            return jsonify({"success": False, "error": "Zone not found"}), 404

        try:
            values, zone = _parse_zone(data, current)
        except ValueError as e:
            return jsonify({"success": False, "error": "Invalid data", "details": str(e)}), 400

        if zone.is_active:
            other = find_overlapping_zone(_active_zones(), zone)
            if other is not None:
                return _overlap_response(zone, other)

        updated = store.update_row(store.ZONES, zone_id, values)
        if not updated:
            return jsonify({"success": False, "error": "Zone not found"}), 404
        return jsonify({"success": True, "zone": serialize_row(updated)}), 200
    except (psycopg2.Error, store.StoreUnavailableError) as e:
        return _db_error_response(e)


@delivery_settings_bp.route('/zones/<uuid:zone_id>', methods=['DELETE'])
def delete_zone(zone_id):
    zone_id = str(zone_id)
    try:
        if not store.delete_row(store.ZONES, zone_id):
            return jsonify({"success": False, "error": "Zone not found"}), 404
        return jsonify({"success": True, "message": "Zone deleted"}), 200
    except (psycopg2.Error, store.StoreUnavailableError) as e:
        return _db_error_response(e)
