"""
backend.py – Flask server
• /api/generate-linkedin   genera il post con Gemini, scala i crediti del piano free
• /api/create-order        ordine Razorpay (blueprint razorpay_routes)
• /api/verify-payment      verifica firma Razorpay e aggiorna il piano
• /api/user/<email>        stato piano/crediti
• pagine statiche (landing / app / payment) da STATIC_DIR
"""

import argparse
import logging
import os
from typing import Optional

from flask import Flask, current_app, jsonify, request, send_from_directory
from flask_cors import CORS
from werkzeug.exceptions import HTTPException

from . import settings
from .common import GUEST_ID
from .credits import can_generate, charge_if_free, credits_remaining
from .generation import GenerationError, GenerationOptions, InvalidOptions, build_prompt
from .log import console, setup_logging
from .razorpay_routes import razorpay_bp
from .services import Services, body_email, build_services, current_services, json_body
from .user_store import UnreadableRecord

logger = logging.getLogger(__name__)

NO_CREDITS = "No credits left. Please upgrade!"
UNREADABLE = "User record needs manual repair"


def create_app(overrides: Optional[dict] = None, services: Optional[Services] = None) -> Flask:
    app = Flask(__name__, static_folder=None)
    app.config.update(settings.as_config())
    if overrides:
        app.config.update(overrides)

    origins = app.config["FRONT_ORIGIN"]
    CORS(app, origins="*" if origins == "*" else [o.strip() for o in origins.split(",")])

    app.extensions["postgen"] = services or build_services(app.config)
    app.register_blueprint(razorpay_bp)
    _register_routes(app)
    return app


def _register_routes(app: Flask) -> None:

    # ─────────────────────────────────────────────────────────────
    # GENERATE – enforcement dei crediti lato server
    # ─────────────────────────────────────────────────────────────
    @app.post("/api/generate-linkedin")
    def generate_linkedin():
        data = json_body()
        if data is None:
            return jsonify(success=False, error="Invalid JSON body"), 400
        email = body_email(data)
        # anonimi: tutti condividono la quota di "guest"
        identifier = email or GUEST_ID

        try:
            options = GenerationOptions.from_payload(data, strict=current_app.config["STRICT_OPTIONS"])
        except InvalidOptions as exc:
            return jsonify(success=False, error=str(exc)), 400

        services = current_services()
        store = services.store
        try:
            if not can_generate(store.get(identifier, strict=True)):
                return jsonify(success=False, error=NO_CREDITS)
        except UnreadableRecord as exc:
            logger.error("Refusing generation for %s: %s", identifier, exc)
            return jsonify(success=False, error=UNREADABLE), 409

        try:
            content = services.generator.generate(build_prompt(options))
        except GenerationError as exc:
            logger.error("Generation error: %s", exc)
            return jsonify(success=False, error=f"AI generation failed: {exc}"), 500

        try:
            with store.locked():
                user = store.get(identifier, strict=True)
                # crediti finiti nel frattempo da un'altra richiesta
                if not can_generate(user):
                    return jsonify(success=False, error=NO_CREDITS)
                charged = charge_if_free(user)
                if charged is not user:
                    store.update(identifier, {"credits": charged.credits})
        except UnreadableRecord as exc:
            logger.error("Refusing generation for %s: %s", identifier, exc)
            return jsonify(success=False, error=UNREADABLE), 409

        return jsonify(success=True, content=content, creditsRemaining=credits_remaining(charged))

    @app.get("/api/user/<path:email>")
    def get_user(email):
        user = current_services().store.get(email)
        return jsonify(success=True, user=user.to_public())

    @app.get("/api/health")
    def health():
        return jsonify(success=True, store=current_services().store.backend)

    # ─────────────────────────────────────────────────────────────
    # PAGINE STATICHE
    # ─────────────────────────────────────────────────────────────
    @app.get("/")
    def landing():
        return send_from_directory(current_app.config["STATIC_DIR"], "landing.html")

    @app.get("/<path:filename>")
    def static_page(filename):
        return send_from_directory(current_app.config["STATIC_DIR"], filename)

    @app.errorhandler(Exception)
    def handle_error(exc):
        if isinstance(exc, HTTPException):
            return jsonify(success=False, error=exc.description), exc.code
        logger.exception("Unhandled error on %s", request.path)
        return jsonify(success=False, error="Internal server error"), 500

    @app.teardown_appcontext
    def close_store(exc):
        try:
            current_services().store.close()
        except Exception as e:
            logger.warning("Errore in chiusura store: %s", e)


def print_banner(port: int) -> None:
    console.print(f"\n✅ LinkedIn Generator is RUNNING on port {port}")
    console.rule()
    console.print("📝 Landing Page : /landing.html")
    console.print("⚡ App          : /app.html")
    console.print("💳 Payment Page : /payment.html")
    console.rule()
    console.print("🤖 Using: Google Gemini AI")
    console.print("💰 Payments: Razorpay\n")


def main(argv=None):
    parser = argparse.ArgumentParser(description="LinkedIn post generator backend")
    parser.add_argument("--host", default="0.0.0.0", help="Bind address")
    parser.add_argument("--port", type=int, default=settings.PORT, help="Port (default: $PORT or 10000)")
    parser.add_argument("--debug", action="store_true", help="Enable Flask debug mode")
    args = parser.parse_args(argv)

    setup_logging("DEBUG" if args.debug else settings.LOG_LEVEL)
    app = create_app()
    if not app.config["GEMINI_API_KEY"]:
        logger.warning("GEMINI_API_KEY not set: generation requests will fail")
    if not app.extensions["postgen"].gateway.configured:
        logger.warning("RAZORPAY_KEY_ID / RAZORPAY_KEY_SECRET not set: payments disabled")
    if not os.path.isdir(app.config["STATIC_DIR"]):
        logger.warning("Static dir %s not found", app.config["STATIC_DIR"])

    print_banner(args.port)
    app.run(host=args.host, port=args.port, debug=args.debug)


if __name__ == "__main__":
    main()
