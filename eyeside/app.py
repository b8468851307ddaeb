import os
from typing import Dict, Optional

import click
from dotenv import load_dotenv
from flask import Flask, jsonify, request
from flask_cors import CORS
from pymongo.errors import PyMongoError
from werkzeug.middleware.proxy_fix import ProxyFix

from .auth import is_admin, require_admin, require_identity, verify_token
from .identity import build_verifier
from .payments import PaymentGatewayError, StripeGateway, to_minor_units
from .store import ORDERS, PRODUCTS, REVIEWS, USERS, object_id_filter, store_from_uri

load_dotenv()

DEFAULT_DB_HOST = "cluster0.6vvik.mongodb.net"
DEFAULT_DB_NAME = "eyeSide"
NO_MATCH_UPDATE = {
    "acknowledged": True,
    "matchedCount": 0,
    "modifiedCount": 0,
    "upsertedCount": 0,
    "upsertedId": None,
}
BAD_BODY_MESSAGE = "Request body must be a JSON object."


def build_mongo_uri() -> str:
    explicit = (os.getenv("MONGO_URI") or "").strip()
    if explicit:
        return explicit
    user = os.getenv("DB_USER", "")
    password = os.getenv("DB_PASS", "")
    host = os.getenv("DB_HOST", DEFAULT_DB_HOST)
    name = os.getenv("DB_NAME", DEFAULT_DB_NAME)
    return f"mongodb+srv://{user}:{password}@{host}/{name}?retryWrites=true&w=majority"


def load_config() -> Dict[str, object]:
    trusted_proxy_hops_raw = os.getenv("TRUSTED_PROXY_HOPS", "1")
    try:
        trusted_proxy_hops = max(0, int(trusted_proxy_hops_raw))
    except (TypeError, ValueError):
        trusted_proxy_hops = 1

    cors_origins = [
        origin.strip()
        for origin in os.getenv("CORS_ALLOWED_ORIGINS", "").split(",")
        if origin.strip()
    ]

    return {
        "MONGO_URI": build_mongo_uri(),
        "FIREBASE_SERVICE_ACCOUNT": os.getenv(
            "FIREBASE_SERVICE_ACCOUNT", "eyeside-firebase-adminsdk.json"
        ),
        "FIREBASE_SERVICE_ACCOUNT_JSON": os.getenv("FIREBASE_SERVICE_ACCOUNT_JSON"),
        "STRIPE_SECRET_KEY": os.getenv("STRIPE_SECRET_KEY", ""),
        "STRIPE_CURRENCY": (os.getenv("STRIPE_CURRENCY") or "usd").strip().lower(),
        "STRIPE_API_BASE": os.getenv("STRIPE_API_BASE", "https://api.stripe.com"),
        "CORS_ALLOWED_ORIGINS": cors_origins,
        "TRUSTED_PROXY_HOPS": trusted_proxy_hops,
    }


def read_json_object():
    """Return the JSON body as a dict, or a 400 response when it is not an object."""
    payload = request.get_json(silent=True)
    if payload is None:
        return {}, None
    if not isinstance(payload, dict):
        return None, (jsonify({"message": BAD_BODY_MESSAGE}), 400)
    return payload, None


def normalize_order_owner(order: Dict) -> Dict:
    """Copy a nested ``user.user_uid`` to the top-level ``user_uid`` field."""
    if order.get("user_uid"):
        return order
    nested_user = order.get("user")
    if isinstance(nested_user, dict) and nested_user.get("user_uid"):
        order["user_uid"] = nested_user["user_uid"]
    return order


def create_app(
    config: Optional[Dict] = None, store=None, verifier=None, gateway=None
) -> Flask:
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.update(load_config())
    if config:
        app.config.update(config)

    if app.config["TRUSTED_PROXY_HOPS"]:
        hops = app.config["TRUSTED_PROXY_HOPS"]
        app.wsgi_app = ProxyFix(
            app.wsgi_app, x_for=hops, x_proto=hops, x_host=hops, x_port=hops
        )

    CORS(app, origins=app.config["CORS_ALLOWED_ORIGINS"] or "*")

    # --- Collaborators ---
    if store is None:
        store = store_from_uri(app, app.config["MONGO_URI"])
    if verifier is None:
        verifier = build_verifier(
            app.config["FIREBASE_SERVICE_ACCOUNT"],
            app.config["FIREBASE_SERVICE_ACCOUNT_JSON"],
        )
    if gateway is None:
        gateway = StripeGateway(
            app.config["STRIPE_SECRET_KEY"], app.config["STRIPE_API_BASE"]
        )

    app.extensions["eyeside.store"] = store
    app.extensions["eyeside.verifier"] = verifier
    app.extensions["eyeside.gateway"] = gateway

    @app.errorhandler(PyMongoError)
    def handle_database_error(exc):
        app.logger.exception("Database operation failed: %s", exc)
        return jsonify({"message": "Internal server error"}), 500

    @app.route("/")
    def index():
        return "Server is running fine"

    @app.route("/health")
    def health():
        return {"status": "ok"}, 200

    # Users
    @app.route("/user/<email>", methods=["GET"])
    def get_admin_flag(email: str):
        user_document = store.find_one(USERS, {"email": email})
        return jsonify({"admin": is_admin(user_document)})

    @app.route("/adduser", methods=["POST"])
    def add_user():
        new_user, body_error = read_json_object()
        if body_error:
            return body_error
        return jsonify(store.insert_one(USERS, new_user))

    @app.route("/adduser", methods=["PUT"])
    def upsert_user():
        user, body_error = read_json_object()
        if body_error:
            return body_error
        user.pop("_id", None)
        if not user.get("email"):
            return jsonify(NO_MATCH_UPDATE)

        result = store.update_one(
            USERS, {"email": user["email"]}, user, upsert=True
        )
        return jsonify(result)

    # Products
    @app.route("/products", methods=["GET"])
    def list_products():
        size = request.args.get("size", type=int)
        return jsonify(store.find_many(PRODUCTS, limit=size))

    @app.route("/product/<product_id>", methods=["GET"])
    def get_product(product_id: str):
        query = object_id_filter(product_id)
        if not query:
            return jsonify(None)
        return jsonify(store.find_one(PRODUCTS, query))

    @app.route("/cart/products", methods=["POST"])
    def get_cart_products():
        cart = request.get_json(silent=True) or {}
        if not isinstance(cart, dict):
            return jsonify([])
        return jsonify(store.find_by_ids(PRODUCTS, cart.keys()))

    # Orders
    @app.route("/myorders/<uid>", methods=["GET"])
    def list_my_orders(uid: str):
        return jsonify(store.find_many(ORDERS, {"user_uid": uid}))

    @app.route("/order/<order_id>", methods=["GET"])
    def get_order(order_id: str):
        query = object_id_filter(order_id)
        if not query:
            return jsonify(None)
        return jsonify(store.find_one(ORDERS, query))

    @app.route("/order", methods=["POST"])
    @app.route("/placeorder", methods=["POST"])
    def place_order():
        order, body_error = read_json_object()
        if body_error:
            return body_error
        return jsonify(store.insert_one(ORDERS, normalize_order_owner(order)))

    @app.route("/order/<order_id>", methods=["PUT"])
    def update_order(order_id: str):
        changes, body_error = read_json_object()
        if body_error:
            return body_error
        changes.pop("_id", None)
        query = object_id_filter(order_id)
        if not query or not changes:
            return jsonify(NO_MATCH_UPDATE)
        return jsonify(store.update_one(ORDERS, query, changes))

    # Reviews
    @app.route("/reviews", methods=["GET"])
    def list_reviews():
        return jsonify(store.find_many(REVIEWS))

    @app.route("/addreview", methods=["POST"])
    @verify_token
    def add_review():
        _, identity_error = require_identity()
        if identity_error:
            return identity_error

        new_review, body_error = read_json_object()
        if body_error:
            return body_error

        return jsonify(store.insert_one(REVIEWS, new_review))

    # --- Admin Routes ---

    @app.route("/admin/orders", methods=["GET"])
    @verify_token
    def list_all_orders():
        _, admin_error = require_admin(store)
        if admin_error:
            return admin_error
        return jsonify(store.find_many(ORDERS))

    @app.route("/admin/addproduct", methods=["POST"])
    @verify_token
    def add_product():
        _, admin_error = require_admin(store)
        if admin_error:
            return admin_error

        product, body_error = read_json_object()
        if body_error:
            return body_error

        return jsonify(store.insert_one(PRODUCTS, product))

    @app.route("/admin/status/<order_id>", methods=["PUT"])
    @verify_token
    def update_order_status(order_id: str):
        admin_user, admin_error = require_admin(store)
        if admin_error:
            return admin_error

        payload, body_error = read_json_object()
        if body_error:
            return body_error

        query = object_id_filter(order_id)
        if not query:
            return jsonify(NO_MATCH_UPDATE)

        result = store.update_one(
            ORDERS, query, {"order_status": payload.get("status")}
        )
        app.logger.info(
            "%s set order %s status to %s",
            admin_user.get("email"),
            order_id,
            payload.get("status"),
        )
        return jsonify(result)

    @app.route("/admin/addadmin", methods=["PUT"])
    @verify_token
    def grant_admin():
        admin_user, admin_error = require_admin(store)
        if admin_error:
            return admin_error

        payload, body_error = read_json_object()
        if body_error:
            return body_error

        target_email = payload.get("email")
        if not target_email:
            return jsonify(NO_MATCH_UPDATE)

        result = store.update_one(USERS, {"email": target_email}, {"role": "admin"})
        app.logger.info(
            "%s granted admin role to %s", admin_user.get("email"), target_email
        )
        return jsonify(result)

    @app.route("/admin/order/<order_id>", methods=["DELETE"])
    @verify_token
    def delete_order(order_id: str):
        admin_user, admin_error = require_admin(store)
        if admin_error:
            return admin_error

        query = object_id_filter(order_id)
        if not query:
            return jsonify({"acknowledged": True, "deletedCount": 0})

        result = store.delete_one(ORDERS, query)
        app.logger.info("%s deleted order %s", admin_user.get("email"), order_id)
        return jsonify(result)

    # Payments
    @app.route("/create-payment-intent", methods=["POST"])
    def create_payment_intent():
        payload, body_error = read_json_object()
        if body_error:
            return body_error

        try:
            amount = to_minor_units(payload.get("price"))
        except ValueError as exc:
            return jsonify({"error": str(exc)}), 400

        if not getattr(gateway, "configured", True):
            return jsonify({"error": "Payment configuration is incomplete."}), 500

        try:
            client_secret = gateway.create_intent(
                amount, app.config["STRIPE_CURRENCY"]
            )
        except PaymentGatewayError as exc:
            app.logger.error("Payment intent for %s failed: %s", amount, exc)
            return jsonify({"error": "Failed to create payment intent."}), 502

        return jsonify({"clientSecret": client_secret})

    # --- CLI ---

    @app.cli.command("migrate-order-owners")
    def migrate_order_owners():
        """Backfill top-level user_uid on orders that only carry user.user_uid."""
        updated = 0
        legacy_orders = store.find_many(
            ORDERS,
            {"user_uid": {"$exists": False}, "user.user_uid": {"$exists": True}},
        )
        for order in legacy_orders:
            owner = (order.get("user") or {}).get("user_uid")
            if not owner:
                continue
            store.update_one(ORDERS, object_id_filter(order["_id"]), {"user_uid": owner})
            updated += 1
        click.echo(f"Updated {updated} orders.")

    return app
