"""
PUMP CASINO — Round Engine Web Service

Serves the round engine over JSON (api/round_routes.py) and runs the timer
scheduler in a background thread.

Usage:
    python web_app.py                       # http://localhost:5000
    PORT=8080 BALANCE_DB_PATH=data/balances.db python web_app.py
"""
import logging, os
from pathlib import Path

from flask import Flask, jsonify, request
from dotenv import load_dotenv
load_dotenv()

from config.settings import EngineConfig, configure_logging

# ── Structured logging ──
configure_logging()
logger = logging.getLogger("pumpcasino")

from api.round_routes import casino_bp
from round_engine.engine import RoundEngine


def create_app(engine: RoundEngine = None, config=EngineConfig, start_scheduler: bool = True) -> Flask:
    """Build the Flask app around a RoundEngine (a fresh one by default)."""
    app = Flask(__name__)
    app.config["MAX_CONTENT_LENGTH"] = 64 * 1024  # bets are tiny

    if engine is None:
        if config.BALANCE_DB_PATH:
            Path(config.BALANCE_DB_PATH).parent.mkdir(parents=True, exist_ok=True)
        engine = RoundEngine(config=config)
    app.extensions["round_engine"] = engine
    if start_scheduler:
        engine.start()

    app.register_blueprint(casino_bp)
    logger.info("Registered casino blueprint at /api/casino/")

    @app.route("/api/health")
    def health_check():
        """Health check: the entropy source must be usable for bets to work."""
        try:
            engine.rng.check()
            return jsonify({"status": "ok"}), 200
        except Exception as e:
            return jsonify({"status": "error", "detail": str(e)}), 503

    @app.errorhandler(404)
    def error_404(e):
        return jsonify({"error": "not_found", "message": f"No route for {request.path}"}), 404

    @app.errorhandler(405)
    def error_405(e):
        return jsonify({"error": "method_not_allowed", "message": str(e)}), 405

    @app.errorhandler(500)
    def error_500(e):
        logger.error(f"500 error: {e}", exc_info=True)
        return jsonify({"error": "internal", "message": "Internal server error"}), 500

    return app


if __name__ == "__main__":
    port = int(os.getenv("PORT", 5000))
    app = create_app()
    logger.info(f"PUMP CASINO — http://localhost:{port}")
    app.run(debug=os.getenv("FLASK_DEBUG", "false").lower() == "true", host="0.0.0.0", port=port,
            use_reloader=False)
