import os
import re
import logging
from datetime import datetime
from flask import Flask, jsonify, request, make_response
from flask_cors import CORS
from dotenv import load_dotenv

# --- Logging ---
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)

load_dotenv()

from . import config  # noqa: E402  (reads the environment loaded above)
from .routes.delivery_calculator import delivery_calculator_bp  # noqa: E402
from .routes.delivery_settings import delivery_settings_bp  # noqa: E402
from .routes.delivery_promotions import delivery_promotions_bp  # noqa: E402
from .utils import helpers  # noqa: E402

API_PREFIX = '/api/delivery-fees'

# --- App ---
app = Flask(__name__)
app.url_map.strict_slashes = False

config_path = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'config.py')
app.config.from_pyfile(config_path)

# ---------------- CORS ----------------
ALLOWED_ORIGINS = set(config.PROD_ORIGINS + config.LOCAL_HOSTS + config.EXTRA_ALLOWED_ORIGINS)


def is_allowed_origin(origin: str) -> bool:
    if not origin:
        return False
    if origin in ALLOWED_ORIGINS:
        return True
    # any localhost port
    if re.match(r"^http://localhost:\d+$", origin) or re.match(r"^http://127\.0\.0\.1:\d+$", origin):
        return True
    return False


CORS(
    app,
    resources={r"/api/*": {"origins": "*"}},
    supports_credentials=True,
    allow_headers=["Content-Type", "Authorization"],
    methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]
)


@app.before_request
def handle_preflight():
    if request.method == "OPTIONS":
        origin = request.headers.get("Origin", "")
        resp = make_response()
        resp.headers["Access-Control-Allow-Origin"] = origin if is_allowed_origin(origin) else "null"
        resp.headers["Vary"] = "Origin"
        resp.headers["Access-Control-Allow-Credentials"] = "true"
        resp.headers["Access-Control-Allow-Headers"] = "Content-Type, Authorization"
        resp.headers["Access-Control-Allow-Methods"] = "GET, POST, PUT, PATCH, DELETE, OPTIONS"
        return resp, 204


@app.after_request
def add_cors_headers(response):
    origin = request.headers.get("Origin", "")
    if is_allowed_origin(origin):
        response.headers.setdefault("Access-Control-Allow-Origin", origin)
        response.headers.setdefault("Vary", "Origin")
        response.headers.setdefault("Access-Control-Allow-Credentials", "true")
    return response


# --- Blueprints ---
app.register_blueprint(delivery_calculator_bp, url_prefix=API_PREFIX)
app.register_blueprint(delivery_settings_bp, url_prefix=API_PREFIX)
app.register_blueprint(delivery_promotions_bp, url_prefix=API_PREFIX)


# --- Status ---
@app.route('/')
def index():
    return jsonify({"status": "online", "message": "Delivery fee service running"})


@app.route('/health')
def health_check_simple():
    return jsonify({
        "status": "ok",
        "message": "Server is running",
        "timestamp": datetime.now().isoformat(),
        "service": "Delivery Fee API"
    }), 200


@app.route('/api/health')
def health_check():
    conn = helpers.get_db_connection()
    if conn:
        conn.close()
    return jsonify({
        "status": "healthy",
        "database": "connected" if conn else "disconnected",
        "supabase": "configured" if helpers.supabase else "not_configured",
        "cors_enabled": True
    })


# --- Error handlers ---
@app.errorhandler(404)
def not_found(error):
    return jsonify({"success": False, "error": "Endpoint not found", "path": request.path}), 404


@app.errorhandler(405)
def method_not_allowed(error):
    return jsonify({"success": False, "error": "Method not allowed", "method": request.method}), 405


@app.errorhandler(500)
def internal_error(error):
    logger.error(f"Internal error: {error}", exc_info=True)
    return jsonify({"success": False, "error": "Internal server error"}), 500


if __name__ == '__main__':
    port = int(os.environ.get('PORT', 5000))
    debug = os.environ.get('FLASK_DEBUG', 'False').lower() == 'true'
    logger.info(f"Starting server on port {port} (debug: {debug})")
    app.run(host='0.0.0.0', port=port, debug=debug, use_reloader=debug)
