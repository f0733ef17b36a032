# delivery_fees/config.py

"""
Central configuration for delivery pricing.
Business rules that may change over time live here; every value can be
overridden through an environment variable of the same name.
"""

import os

# =================================================
# Default tariff (used when nothing is stored)
# =================================================
# Base fee charged on every delivery.
DEFAULT_BASE_FEE = os.environ.get('DEFAULT_BASE_FEE', '5')

# Additional cost per kilometre.
DEFAULT_PER_KM_FEE = os.environ.get('DEFAULT_PER_KM_FEE', '2')

# Bounds applied to every computed fee.
DEFAULT_MIN_FEE = os.environ.get('DEFAULT_MIN_FEE', '3')
DEFAULT_MAX_FEE = os.environ.get('DEFAULT_MAX_FEE', '50')

# Subtotal above which delivery is free. 0 disables the rule.
DEFAULT_FREE_DELIVERY_THRESHOLD = os.environ.get('DEFAULT_FREE_DELIVERY_THRESHOLD', '0')

DEFAULT_STRATEGY = os.environ.get('DEFAULT_STRATEGY', 'per_km')


# =================================================
# Settings validation
# =================================================
# maxFee assumed when an admin saves settings without one.
UNSET_MAX_FEE = os.environ.get('UNSET_MAX_FEE', '1000')

# Saving a maxFee above this only logs a warning.
MAX_FEE_WARNING = os.environ.get('MAX_FEE_WARNING', '100000')


# =================================================
# Distance and delivery time estimation
# =================================================
EARTH_RADIUS_KM = float(os.environ.get('EARTH_RADIUS_KM', '6371'))

# Average courier speed in the city.
AVERAGE_SPEED_KMH = float(os.environ.get('AVERAGE_SPEED_KMH', '30'))

# Average kitchen preparation time.
PREP_TIME_MINUTES = float(os.environ.get('PREP_TIME_MINUTES', '15'))

# Upper bound of the ETA range is the lower bound plus 30%.
ETA_MARGIN = os.environ.get('ETA_MARGIN', '1.3')


# =================================================
# CORS
# =================================================
PROD_ORIGINS = [
    "https://store.tawsil.app",
    "https://admin.tawsil.app",
    "https://driver.tawsil.app",
]

LOCAL_HOSTS = [
    "http://localhost:3000", "http://127.0.0.1:3000",
    "http://localhost:5173", "http://127.0.0.1:5173",
]

EXTRA_ALLOWED_ORIGINS = [
    o.strip() for o in os.environ.get("EXTRA_ALLOWED_ORIGINS", "").split(",") if o.strip()
]
