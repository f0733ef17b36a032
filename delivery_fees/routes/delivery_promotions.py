# delivery_fees/routes/delivery_promotions.py
"""
Admin CRUD for polygon geo-zones, dynamic delivery rules and delivery discounts.

These tables are maintained for the back-office only; the fee calculation
does not read them.
"""
import json
import logging

from flask import Blueprint, request, jsonify
import psycopg2

from ..logic.geo import Coordinate, is_point_in_polygon
from ..utils import store
from ..utils.helpers import get_json_object, serialize_row
from ..utils.parsing import (
    optional_text,
    parse_bool,
    parse_datetime,
    parse_int,
    parse_money,
    parse_uuid,
)

logger = logging.getLogger(__name__)

delivery_promotions_bp = Blueprint('delivery_promotions', __name__)

RULE_TYPES = ('zone', 'distance', 'order_value')
DISCOUNT_TYPES = ('percentage', 'fixed')


def _invalid(message, details):
    logger.warning(f"{message}: {details}")
    return jsonify({"success": False, "error": message, "details": str(details)}), 400


def _not_found(message):
    return jsonify({"success": False, "error": message}), 404


def _not_an_object():
    return _invalid("Missing data", "request body must be a JSON object")


def _db_error(e):
    logger.error(f"Database error: {e}", exc_info=True)
    return jsonify({"success": False, "error": "Database connection error"}), 500


def _require_name(data, current):
    name = optional_text(data['name']) if 'name' in data else current.get('name')
    if not name:
        raise ValueError("name is required")
    return name


# --- Geo-zones (polygons) ---

def parse_polygon(raw):
    """List of {lat, lng} vertices (or its JSON string) -> list of Coordinates."""
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError:
            raise ValueError("coordinates must be a JSON array of {lat, lng} points")
    if not isinstance(raw, list) or len(raw) < 3:
        raise ValueError("coordinates must contain at least 3 points")
    polygon = []
    for index, point in enumerate(raw):
        if not isinstance(point, dict):
            raise ValueError(f"coordinates[{index}] must be an object with lat and lng")
        polygon.append(Coordinate.validated(point.get('lat'), point.get('lng')))
    return polygon


def _parse_geo_zone(data, current=None):
    current = current or {}
    values = {'name': _require_name(data, current)}
    if 'description' in data:
        values['description'] = optional_text(data['description'])
    if 'isActive' in data:
        values['is_active'] = parse_bool(data['isActive'], True)
    if 'coordinates' in data or not current:
        polygon = parse_polygon(data.get('coordinates'))
        values['coordinates'] = [p.to_dict() for p in polygon]
    return values


@delivery_promotions_bp.route('/geo-zones', methods=['GET'])
def list_geo_zones():
    try:
        return jsonify([serialize_row(z) for z in store.list_rows(store.GEO_ZONES)]), 200
    except (psycopg2.Error, store.StoreUnavailableError) as e:
        return _db_error(e)


@delivery_promotions_bp.route('/geo-zones/lookup', methods=['GET'])
def lookup_geo_zones():
    """Active geo-zones containing a point."""
    try:
        point = Coordinate.validated(request.args.get('lat'), request.args.get('lng'))
    except ValueError as e:
        return _invalid("Invalid coordinates", e)

    try:
        rows = store.list_rows(store.GEO_ZONES, active_only=True)
    except (psycopg2.Error, store.StoreUnavailableError) as e:
        return _db_error(e)

    matches = []
    for row in rows:
        try:
            polygon = parse_polygon(row.get('coordinates'))
        except ValueError as e:
            logger.error(f"Error parsing coordinates for zone {row.get('name')}: {e}")
            continue
        if is_point_in_polygon(point, polygon):
            matches.append(serialize_row(row))
    return jsonify(matches), 200


@delivery_promotions_bp.route('/geo-zones', methods=['POST'])
def create_geo_zone():
    data = get_json_object()
    if data is None:
        return _not_an_object()
    try:
        values = _parse_geo_zone(data)
    except ValueError as e:
        return _invalid("Invalid geo-zone data", e)
    try:
        zone = store.insert_row(store.GEO_ZONES, values)
        return jsonify(serialize_row(zone)), 201
    except (psycopg2.Error, store.StoreUnavailableError) as e:
        return _db_error(e)


@delivery_promotions_bp.route('/geo-zones/<uuid:zone_id>', methods=['PATCH'])
def update_geo_zone(zone_id):
    zone_id = str(zone_id)
    data = get_json_object()
    if data is None:
        return _not_an_object()
    try:
        current = store.get_row(store.GEO_ZONES, zone_id)
        if not current:
            return _not_found("Geo-zone not found")
        try:
            values = _parse_geo_zone(data, current)
        except ValueError as e:
            return _invalid("Invalid geo-zone data", e)
        zone = store.update_row(store.GEO_ZONES, zone_id, values)
        if not zone:
            return _not_found("Geo-zone not found")
        return jsonify(serialize_row(zone)), 200
    except (psycopg2.Error, store.StoreUnavailableError) as e:
        return _db_error(e)


@delivery_promotions_bp.route('/geo-zones/<uuid:zone_id>', methods=['DELETE'])
def delete_geo_zone(zone_id):
    zone_id = str(zone_id)
    try:
        if not store.delete_row(store.GEO_ZONES, zone_id):
            return _not_found("Geo-zone not found")
        return '', 204
    except (psycopg2.Error, store.StoreUnavailableError) as e:
        return _db_error(e)


# --- Dynamic delivery rules ---

def _check_range(merged, low, high, label):
    if merged.get(low) is not None and merged.get(high) is not None and merged[low] > merged[high]:
        raise ValueError(f"{label}: minimum must not exceed maximum")


def _parse_rule(data, current=None):
    current = current or {}
    values = {'name': _require_name(data, current)}

    rule_type = data['ruleType'] if 'ruleType' in data else current.get('rule_type')
    if rule_type not in RULE_TYPES:
        raise ValueError(f"ruleType must be one of: {', '.join(RULE_TYPES)}")
    values['rule_type'] = rule_type

    if 'priority' in data:
        values['priority'] = parse_int(data['priority'], 'priority', 0)
    if 'geoZoneId' in data:
        values['geo_zone_id'] = parse_uuid(data['geoZoneId'], 'geoZoneId')
    if 'isActive' in data:
        values['is_active'] = parse_bool(data['isActive'], True)
    for field, column in (('minDistance', 'min_distance'), ('maxDistance', 'max_distance'),
                          ('minOrderValue', 'min_order_value'), ('maxOrderValue', 'max_order_value'),
                          ('fee', 'fee')):
        if field in data:
            values[column] = parse_money(data[field], field)

    merged = {**current, **values}
    if merged.get('fee') is None:
        raise ValueError("fee is required")
    if rule_type == 'zone' and not merged.get('geo_zone_id'):
        raise ValueError("geoZoneId is required for zone rules")
    _check_range(merged, 'min_distance', 'max_distance', 'distance')
    _check_range(merged, 'min_order_value', 'max_order_value', 'order value')
    return values


@delivery_promotions_bp.route('/rules', methods=['GET'])
def list_rules():
    try:
        return jsonify([serialize_row(r) for r in store.list_rows(store.RULES)]), 200
    except (psycopg2.Error, store.StoreUnavailableError) as e:
        return _db_error(e)


@delivery_promotions_bp.route('/rules', methods=['POST'])
def create_rule():
    data = get_json_object()
    if data is None:
        return _not_an_object()
    try:
        values = _parse_rule(data)
    except ValueError as e:
        return _invalid("Invalid rule data", e)
    try:
        rule = store.insert_row(store.RULES, values)
        return jsonify(serialize_row(rule)), 201
    except (psycopg2.Error, store.StoreUnavailableError) as e:
        return _db_error(e)


@delivery_promotions_bp.route('/rules/<uuid:rule_id>', methods=['PATCH'])
def update_rule(rule_id):
    rule_id = str(rule_id)
    data = get_json_object()
    if data is None:
        return _not_an_object()
    try:
        current = store.get_row(store.RULES, rule_id)
        if not current:
            return _not_found("Rule not found")
        try:
            values = _parse_rule(data, current)
        except ValueError as e:
            return _invalid("Invalid rule data", e)
        rule = store.update_row(store.RULES, rule_id, values)
        if not rule:
            return _not_found("Rule not found")
        return jsonify(serialize_row(rule)), 200
    except (psycopg2.Error, store.StoreUnavailableError) as e:
        return _db_error(e)


@delivery_promotions_bp.route('/rules/<uuid:rule_id>', methods=['DELETE'])
def delete_rule(rule_id):
    rule_id = str(rule_id)
    try:
        if not store.delete_row(store.RULES, rule_id):
            return _not_found("Rule not found")
        return '', 204
    except (psycopg2.Error, store.StoreUnavailableError) as e:
        return _db_error(e)


# --- Delivery discounts ---

def _parse_discount(data, current=None):
    current = current or {}
    values = {'name': _require_name(data, current)}

    discount_type = data['discountType'] if 'discountType' in data else current.get('discount_type')
    if discount_type not in DISCOUNT_TYPES:
        raise ValueError(f"discountType must be one of: {', '.join(DISCOUNT_TYPES)}")
    values['discount_type'] = discount_type

    if 'discountValue' in data:
        values['discount_value'] = parse_money(data['discountValue'], 'discountValue')
    if 'minOrderValue' in data:
        values['min_order_value'] = parse_money(data['minOrderValue'], 'minOrderValue')
    if 'validFrom' in data:
        values['valid_from'] = parse_datetime(data['validFrom'], 'validFrom')
    if 'validUntil' in data:
        values['valid_until'] = parse_datetime(data['validUntil'], 'validUntil')
    if 'isActive' in data:
        values['is_active'] = parse_bool(data['isActive'], True)

    merged = {**current, **values}
    value = merged.get('discount_value')
    if value is None:
        raise ValueError("discountValue is required")
    if discount_type == 'percentage' and value > 100:
        raise ValueError("a percentage discount cannot exceed 100")
    valid_from = parse_datetime(merged.get('valid_from'), 'validFrom')
    valid_until = parse_datetime(merged.get('valid_until'), 'validUntil')
    if valid_from and valid_until and valid_until < valid_from:
        raise ValueError("validUntil must not be before validFrom")
    return values


@delivery_promotions_bp.route('/discounts', methods=['GET'])
def list_discounts():
    try:
        return jsonify([serialize_row(d) for d in store.list_rows(store.DISCOUNTS)]), 200
    except (psycopg2.Error, store.StoreUnavailableError) as e:
        return _db_error(e)


@delivery_promotions_bp.route('/discounts', methods=['POST'])
def create_discount():
    data = get_json_object()
    if data is None:
        return _not_an_object()
    try:
        values = _parse_discount(data)
    except ValueError as e:
        return _invalid("Invalid discount data", e)
    try:
        discount = store.insert_row(store.DISCOUNTS, values)
        return jsonify(serialize_row(discount)), 201
    except (psycopg2.Error, store.StoreUnavailableError) as e:
        return _db_error(e)


@delivery_promotions_bp.route('/discounts/<uuid:discount_id>', methods=['PATCH'])
def update_discount(discount_id):
    discount_id = str(discount_id)
    data = get_json_object()
    if data is None:
        return _not_an_object()
    try:
        current = store.get_row(store.DISCOUNTS, discount_id)
        if not current:
            return _not_found("Discount not found")
        try:
            values = _parse_discount(data, current)
        except ValueError as e:
            return _invalid("Invalid discount data", e)
        discount = store.update_row(store.DISCOUNTS, discount_id, values)
        if not discount:
            return _not_found("Discount not found")
        return jsonify(serialize_row(discount)), 200
    except (psycopg2.Error, store.StoreUnavailableError) as e:
        return _db_error(e)


@delivery_promotions_bp.route('/discounts/<uuid:discount_id>', methods=['DELETE'])
def delete_discount(discount_id):
    discount_id = str(discount_id)
    try:
        if not store.delete_row(store.DISCOUNTS, discount_id):
            return _not_found("Discount not found")
        return '', 204
    except (psycopg2.Error, store.StoreUnavailableError) as e:
        return _db_error(e)
