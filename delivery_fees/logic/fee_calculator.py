# delivery_fees/logic/fee_calculator.py
"""
Delivery fee calculation.

Pricing strategies:
  - fixed:             the base fee, whatever the distance
  - per_km:            base fee + distance * per-km fee
  - zone_based:        flat fee of the distance zone that contains the order
  - restaurant_custom: per_km pricing taken strictly from the restaurant's own settings

The calculator is pure: settings, origin and zones arrive in a PricingContext
resolved beforehand (see settings_resolver), so the same inputs always yield
the same fee.
"""
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional, Sequence, Tuple

from .. import config
from ..utils.parsing import parse_money, quantize_money
from .geo import Coordinate, estimate_delivery_time, haversine_distance

logger = logging.getLogger(__name__)

FIXED = 'fixed'
PER_KM = 'per_km'
ZONE_BASED = 'zone_based'
RESTAURANT_CUSTOM = 'restaurant_custom'
STRATEGIES = (FIXED, PER_KM, ZONE_BASED, RESTAURANT_CUSTOM)

SOURCE_RESTAURANT = 'restaurant'
SOURCE_GLOBAL = 'global'
SOURCE_DEFAULT = 'default'

ZERO = Decimal('0')


@dataclass(frozen=True)
class PricingSettings:
    strategy: str
    base_fee: Decimal
    per_km_fee: Decimal
    min_fee: Decimal
    max_fee: Decimal
    free_delivery_threshold: Decimal
    store_location: Optional[Coordinate] = None
    restaurant_id: Optional[str] = None

    @classmethod
    def defaults(cls) -> "PricingSettings":
        return cls(
            strategy=config.DEFAULT_STRATEGY,
            base_fee=Decimal(config.DEFAULT_BASE_FEE),
            per_km_fee=Decimal(config.DEFAULT_PER_KM_FEE),
            min_fee=Decimal(config.DEFAULT_MIN_FEE),
            max_fee=Decimal(config.DEFAULT_MAX_FEE),
            free_delivery_threshold=Decimal(config.DEFAULT_FREE_DELIVERY_THRESHOLD),
        )

    @classmethod
    def from_row(cls, row: dict) -> "PricingSettings":
        """Build settings from a delivery_fee_settings row.

        Stored rows are sanitised rather than rejected: negative amounts become
        zero and a max_fee below min_fee is raised to min_fee.
        """
        strategy = row.get('type') or config.DEFAULT_STRATEGY
        if strategy not in STRATEGIES:
            raise ValueError(f"Unknown pricing strategy: {strategy}")

        def money(key, default='0'):
            value = parse_money(row.get(key), key, Decimal(default), allow_negative=True)
            return max(ZERO, value)

        min_fee = money('min_fee')
        max_fee = max(min_fee, money('max_fee', config.UNSET_MAX_FEE))
        restaurant_id = row.get('restaurant_id')
        return cls(
            strategy=strategy,
            base_fee=money('base_fee'),
            per_km_fee=money('per_km_fee'),
            min_fee=min_fee,
            max_fee=max_fee,
            free_delivery_threshold=money('free_delivery_threshold'),
            store_location=Coordinate.from_optional(row.get('store_lat'), row.get('store_lng')),
            restaurant_id=str(restaurant_id) if restaurant_id else None,
        )

    def to_dict(self) -> dict:
        return {
            "type": self.strategy,
            "baseFee": float(self.base_fee),
            "perKmFee": float(self.per_km_fee),
            "minFee": float(self.min_fee),
            "maxFee": float(self.max_fee),
            "freeDeliveryThreshold": float(self.free_delivery_threshold),
            "storeLat": self.store_location.latitude if self.store_location else None,
            "storeLng": self.store_location.longitude if self.store_location else None,
            "restaurantId": self.restaurant_id,
        }


@dataclass(frozen=True)
class DeliveryZone:
    """A distance band [min_distance_km, max_distance_km) with a flat fee."""
    name: str
    min_distance_km: Decimal
    max_distance_km: Decimal
    flat_fee: Decimal
    estimated_time_label: Optional[str] = None
    id: Optional[str] = None
    is_active: bool = True

    @classmethod
    def from_row(cls, row: dict) -> "DeliveryZone":
        return cls(
            name=row.get('name') or '',
            min_distance_km=parse_money(row.get('min_distance'), 'min_distance', ZERO),
            max_distance_km=parse_money(row.get('max_distance'), 'max_distance'),
            flat_fee=parse_money(row.get('delivery_fee'), 'delivery_fee'),
            estimated_time_label=row.get('estimated_time'),
            id=str(row['id']) if row.get('id') else None,
            is_active=bool(row.get('is_active', True)),
        )

    def contains(self, distance_km: Decimal) -> bool:
        return self.min_distance_km <= distance_km < self.max_distance_km

    def overlaps(self, other: "DeliveryZone") -> bool:
        return self.min_distance_km < other.max_distance_km and other.min_distance_km < self.max_distance_km


@dataclass(frozen=True)
class PricingContext:
    settings: PricingSettings
    origin: Optional[Coordinate] = None
    zones: Tuple[DeliveryZone, ...] = ()
    source: str = SOURCE_DEFAULT


@dataclass(frozen=True)
class FeeBreakdown:
    base_fee: Decimal
    distance_fee: Decimal
    total_before_clamp: Decimal


@dataclass(frozen=True)
class FeeComputationResult:
    fee: Decimal
    distance_km: float
    estimated_time_label: str
    breakdown: FeeBreakdown
    is_free_delivery: bool = False
    free_delivery_reason: Optional[str] = None
    strategy: Optional[str] = None
    applied_zone: Optional[DeliveryZone] = field(default=None, compare=False)

    def to_dict(self) -> dict:
        data = {
            "fee": float(self.fee),
            "distance": self.distance_km,
            "estimatedTime": self.estimated_time_label,
            "feeBreakdown": {
                "baseFee": float(self.breakdown.base_fee),
                "distanceFee": float(self.breakdown.distance_fee),
                "totalBeforeLimit": float(self.breakdown.total_before_clamp),
            },
            "isFreeDelivery": self.is_free_delivery,
            "strategy": self.strategy,
        }
        if self.free_delivery_reason:
            data["freeDeliveryReason"] = self.free_delivery_reason
        if self.applied_zone is not None:
            data["appliedZone"] = self.applied_zone.name
        return data


def find_zone(zones: Sequence[DeliveryZone], distance_km) -> Optional[DeliveryZone]:
    """First active zone whose half-open interval contains the distance."""
    distance = Decimal(str(distance_km))
    for zone in sorted(zones, key=lambda z: z.min_distance_km):
        if zone.is_active and zone.contains(distance):
            return zone
    return None


def find_overlapping_zone(zones: Sequence[DeliveryZone], candidate: DeliveryZone) -> Optional[DeliveryZone]:
    for zone in zones:
        if not zone.is_active or (candidate.id and zone.id == candidate.id):
            continue
        if zone.overlaps(candidate):
            return zone
    return None


def clamp_fee(fee: Decimal, settings: PricingSettings) -> Decimal:
    return quantize_money(max(settings.min_fee, min(settings.max_fee, fee)))


def calculate_quick_fee(distance_km, base_fee=None, per_km_fee=None) -> Decimal:
    """Simplified per-km fee clamped to the default bounds."""
    base = Decimal(config.DEFAULT_BASE_FEE) if base_fee is None else Decimal(str(base_fee))
    per_km = Decimal(config.DEFAULT_PER_KM_FEE) if per_km_fee is None else Decimal(str(per_km_fee))
    fee = base + Decimal(str(distance_km)) * per_km
    return clamp_fee(fee, PricingSettings.defaults())


def _strategy_fee(context: PricingContext, settings: PricingSettings, distance: Decimal):
    """Return (base_fee, distance_fee, zone) for the selected strategy."""
    strategy = settings.strategy

    if strategy == FIXED:
        return settings.base_fee, ZERO, None

    if strategy == ZONE_BASED:
        zone = find_zone(context.zones, distance)
        if zone is not None:
            return zone.flat_fee, ZERO, zone
        logger.info(f"No delivery zone for {distance} km, using per-km fallback")
        return settings.base_fee, distance * Decimal(config.DEFAULT_PER_KM_FEE), None

    # per_km and restaurant_custom share the formula
    return settings.base_fee, distance * settings.per_km_fee, None


def calculate_delivery_fee(customer_location: Coordinate, context: PricingContext,
                           order_subtotal=ZERO) -> FeeComputationResult:
    """Compute the delivery fee, distance and ETA for one order."""
    settings = context.settings
    subtotal = parse_money(order_subtotal, 'orderSubtotal', ZERO)

    if settings.strategy == RESTAURANT_CUSTOM and context.source != SOURCE_RESTAURANT:
        logger.warning("restaurant_custom pricing without restaurant settings, using defaults")
        settings = PricingSettings.defaults()

    origin = context.origin
    if origin is None or origin.is_unset():
        # unconfigured store location: flat base fee, no distance component
        distance_km = 0.0
        base_fee, distance_fee, zone = settings.base_fee, ZERO, None
    else:
        distance_km = haversine_distance(origin, customer_location)
        base_fee, distance_fee, zone = _strategy_fee(context, settings, Decimal(str(distance_km)))

    total_before_clamp = quantize_money(base_fee + distance_fee)
    fee = clamp_fee(total_before_clamp, settings)

    is_free_delivery = False
    free_delivery_reason = None
    threshold = settings.free_delivery_threshold
    if threshold > 0 and subtotal >= threshold:
        fee = quantize_money(ZERO)
        is_free_delivery = True
        free_delivery_reason = f"توصيل مجاني للطلبات فوق {threshold.normalize():f} ريال"

    return FeeComputationResult(
        fee=fee,
        distance_km=distance_km,
        estimated_time_label=estimate_delivery_time(distance_km),
        breakdown=FeeBreakdown(
            base_fee=quantize_money(base_fee),
            distance_fee=quantize_money(distance_fee),
            total_before_clamp=total_before_clamp,
        ),
        is_free_delivery=is_free_delivery,
        free_delivery_reason=free_delivery_reason,
        strategy=settings.strategy,
        applied_zone=zone,
    )
