from flask import Blueprint, jsonify
import logging

from ..logic.geo import Coordinate, haversine_distance, estimate_delivery_time
from ..logic.settings_resolver import get_delivery_fee
from ..utils.helpers import get_json_object
from ..utils.parsing import InvalidCoordinate, is_blank, parse_money, parse_uuid

logger = logging.getLogger(__name__)

delivery_calculator_bp = Blueprint('delivery_calculator', __name__)


def _not_an_object():
    logger.warning("Request body is not a JSON object")
    return jsonify({
        "success": False,
        "error": "Missing data",
        "details": "request body must be a JSON object"
    }), 400


@delivery_calculator_bp.route('/calculate', methods=['POST'])
def calculate_delivery_fee():
    """Calculate the delivery fee for a customer location and restaurant."""
    try:
        logger.info("=== START calculate_delivery_fee ===")

        data = get_json_object()
        if data is None:
            return _not_an_object()
        logger.info(f"Received data: {data}")

        customer_lat = data.get('customerLat')
        customer_lng = data.get('customerLng')
        if is_blank(customer_lat) or is_blank(customer_lng):
            logger.warning("Customer coordinates not provided")
            return jsonify({
                "success": False,
                "error": "Missing data",
                "details": "customerLat and customerLng are required"
            }), 400

        customer_location = Coordinate.validated(customer_lat, customer_lng, prefix='customer')
        subtotal = parse_money(data.get('orderSubtotal'), 'orderSubtotal', default=0)
        restaurant_id = parse_uuid(data.get('restaurantId'), 'restaurantId')

        result = get_delivery_fee(customer_location, restaurant_id, subtotal)
        logger.info(f"Fee calculated: {result.fee} ({result.distance_km} km, {result.strategy})")

        return jsonify({"success": True, **result.to_dict()}), 200

    except ValueError as e:
        logger.warning(f"Validation error: {e}")
        return jsonify({
            "success": False,
            "error": "Invalid data",
            "details": str(e)
        }), 400

    except Exception as e:
        logger.error(f"Unexpected error calculating delivery fee: {e}", exc_info=True)
        return jsonify({
            "success": False,
            "error": "Internal error calculating the delivery fee"
        }), 500


@delivery_calculator_bp.route('/distance', methods=['POST'])
def calculate_distance():
    """Distance and delivery time estimate between two points."""
    try:
        data = get_json_object()
        if data is None:
            return _not_an_object()
        fields = ('fromLat', 'fromLng', 'toLat', 'toLng')

        if any(is_blank(data.get(f)) for f in fields):
            return jsonify({
                "success": False,
                "error": "Missing data",
                "details": "fromLat, fromLng, toLat and toLng are required"
            }), 400

        origin = Coordinate.validated(data['fromLat'], data['fromLng'], prefix='from')
        destination = Coordinate.validated(data['toLat'], data['toLng'], prefix='to')

        distance = haversine_distance(origin, destination)

        return jsonify({
            "success": True,
            "distance": distance,
            "unit": "km",
            "estimatedTime": estimate_delivery_time(distance)
        }), 200

    except InvalidCoordinate as e:
        logger.warning(f"Invalid coordinate: {e}")
        return jsonify({
            "success": False,
            "error": "Invalid data",
            "field": e.field,
            "details": str(e)
        }), 400

    except Exception as e:
        logger.error(f"Unexpected error calculating distance: {e}", exc_info=True)
        return jsonify({
            "success": False,
            "error": "Internal server error"
        }), 500
