"""
Emergency call backend: Flask app driving a Twilio phone intake.

Call flow:
  1. Client POSTs /api/emergency-call → record created, Twilio dials the patient
  2. Patient answers → Twilio fetches /voice/call (greeting + symptoms <Gather>)
  3. Each answer is POSTed to the next /voice/collect-* step, which stores it
     on the call record and returns the next question
  4. /voice/collect-location closes the call; Twilio reports lifecycle events
     to /voice/status, which reconciles them into the record
  5. The client polls /api/call-status for live progress

/api/voice-intake runs the same questions for in-browser speech recognition.
"""

import os
import traceback

from flask import Flask, jsonify, request
from flask_cors import CORS
from werkzeug.exceptions import HTTPException

from config import Settings
from db import connect_store
from routes.calls import calls_bp
from routes.voice import voice_bp
from services import dialogue
from services.telephony import TwilioTelephonyProvider


def create_app(settings: Settings = None, store=None, provider=None) -> Flask:
    """
    Build the app. *store* and *provider* default to MongoDB and Twilio built
    from *settings*; tests pass in-memory stand-ins.
    """
    settings = settings or Settings.from_env()
    if store is None:
        store = connect_store(settings)
    if provider is None:
        provider = TwilioTelephonyProvider(settings)

    app = Flask(__name__)
    CORS(app)
    app.config["SETTINGS"] = settings
    app.extensions["call_store"] = store
    app.extensions["telephony"] = provider

    app.register_blueprint(calls_bp)
    app.register_blueprint(voice_bp)

    @app.errorhandler(Exception)
    def handle_any_error(e):
        """Last-resort safety net. Twilio paths get safe TwiML, API paths JSON."""
        print(f"[GLOBAL ERROR] {type(e).__name__}: {e}")
        traceback.print_exc()

        path = request.path or ""
        if path.startswith("/voice/status"):
            return dialogue.empty_ack(), 200, {"Content-Type": "text/xml"}
        if path.startswith("/voice"):
            return dialogue.technical_difficulty(), 200, {"Content-Type": "text/xml"}
        if isinstance(e, HTTPException):
            return e
        return jsonify({"error": "Internal server error", "detail": str(e)}), 500

    @app.route("/api/health")
    def health():
        return jsonify({
            "status": "ok",
            "message": "Backend connected",
            "telephonyConfigured": provider.configured_for_calls,
        })

    return app


if __name__ == "__main__":
    port = int(os.environ.get("PORT", 5001))
    debug = os.environ.get("FLASK_DEBUG", "0").lower() in ("1", "true", "yes")

    print("=" * 60)
    print(f"  Emergency call backend starting on http://0.0.0.0:{port}")
    print("  (If using Twilio locally, expose this port and set PUBLIC_BASE_URL)")
    print("=" * 60)

    create_app().run(
        host="0.0.0.0",
        port=port,
        debug=debug,
        use_reloader=debug,
    )
