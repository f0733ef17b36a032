# delivery_fees/logic/settings_resolver.py
"""
Resolution of the PricingContext used by the fee calculator.

Settings: restaurant-specific row -> global row -> hard-coded defaults.
Origin:   settings row store_lat/store_lng -> ui_settings store_lat/store_lng
          -> the restaurant's own coordinates.

Lookup failures are logged and treated as "not configured" so a checkout is
never blocked by a pricing lookup.
"""
import logging
from typing import Optional

import psycopg2

from ..utils import store
from ..utils import helpers
from .fee_calculator import (
    PricingContext,
    PricingSettings,
    DeliveryZone,
    SOURCE_DEFAULT,
    SOURCE_GLOBAL,
    SOURCE_RESTAURANT,
    ZONE_BASED,
    calculate_delivery_fee,
)
from .geo import Coordinate

logger = logging.getLogger(__name__)

LOOKUP_ERRORS = (psycopg2.Error, store.StoreUnavailableError, ValueError)


def _settings_row(restaurant_id=None):
    try:
        return store.get_fee_settings(restaurant_id)
    except LOOKUP_ERRORS as e:
        logger.error(f"Error fetching delivery fee settings ({restaurant_id or 'global'}): {e}", exc_info=True)
        return None


def resolve_settings(restaurant_id=None):
    """Return (PricingSettings, source)."""
    if restaurant_id:
        row = _settings_row(restaurant_id)
        if row and row.get('type'):
            try:
                return PricingSettings.from_row(row), SOURCE_RESTAURANT
            except ValueError as e:
                logger.error(f"Invalid settings stored for restaurant {restaurant_id}: {e}")

    row = _settings_row()
    if row and row.get('type'):
        try:
            return PricingSettings.from_row(row), SOURCE_GLOBAL
        except ValueError as e:
            logger.error(f"Invalid global delivery settings: {e}")

    logger.warning("Using default delivery fee settings")
    return PricingSettings.defaults(), SOURCE_DEFAULT


def get_store_location() -> Optional[Coordinate]:
    """Platform store location from ui_settings."""
    try:
        lat = store.get_ui_setting('store_lat')
        lng = store.get_ui_setting('store_lng')
    except LOOKUP_ERRORS as e:
        logger.error(f"Error fetching store location: {e}", exc_info=True)
        return None
    return Coordinate.from_optional(lat, lng)


def get_restaurant_location(restaurant_id) -> Optional[Coordinate]:
    """Restaurant coordinates from the Supabase restaurants table."""
    if not restaurant_id or not helpers.supabase:
        return None
    try:
        response = helpers.supabase.table('restaurants').select(
            'latitude, longitude'
        ).eq('id', restaurant_id).execute()
    except Exception as e:
        logger.error(f"Error fetching restaurant {restaurant_id}: {e}", exc_info=True)
        return None

    if not response.data:
        logger.warning(f"Restaurant not found: {restaurant_id}")
        return None
    restaurant = response.data[0]
    return Coordinate.from_optional(restaurant.get('latitude'), restaurant.get('longitude'))


def load_zones():
    try:
        rows = store.list_rows(store.ZONES, active_only=True)
    except LOOKUP_ERRORS as e:
        logger.error(f"Error fetching delivery zones: {e}", exc_info=True)
        return ()
    zones = []
    for row in rows:
        try:
            zones.append(DeliveryZone.from_row(row))
        except ValueError as e:
            logger.error(f"Skipping invalid delivery zone {row.get('id')}: {e}")
    return tuple(zones)


def resolve_origin(settings: PricingSettings, restaurant_id=None) -> Optional[Coordinate]:
    if settings.store_location is not None:
        return settings.store_location
    location = get_store_location()
    if location is not None:
        return location
    return get_restaurant_location(restaurant_id)


def resolve_pricing_context(restaurant_id=None) -> PricingContext:
    settings, source = resolve_settings(restaurant_id)
    origin = resolve_origin(settings, restaurant_id)
    if origin is None:
        logger.warning("Store location not configured, distance will be ignored")
    zones = load_zones() if settings.strategy == ZONE_BASED else ()
    return PricingContext(settings=settings, origin=origin, zones=zones, source=source)


def get_delivery_fee(customer_location: Coordinate, restaurant_id=None, order_subtotal=0):
    """Resolve the pricing context for a restaurant and compute the fee."""
    context = resolve_pricing_context(restaurant_id)
    return calculate_delivery_fee(customer_location, context, order_subtotal)
