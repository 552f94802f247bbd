"""
Twilio-facing voice webhooks. Every route answers with TwiML and HTTP 200,
never a 500: an error here would drop the caller onto Twilio's
"application error" message.
"""
import traceback

from flask import Blueprint, current_app, request

from services import dialogue
from services.intake import (
    handle_dialogue_fetch,
    handle_location,
    handle_severity,
    handle_symptoms,
)
from services.webhook_relay import reconcile_call_status

voice_bp = Blueprint("voice", __name__, url_prefix="/voice")

TWIML_HEADERS = {"Content-Type": "text/xml"}


def _twiml(body: str):
    return body, 200, TWIML_HEADERS


def _store():
    return current_app.extensions["call_store"]


@voice_bp.route("/call", methods=["GET", "POST"])
def dialogue_fetch():
    """Twilio fetches this when the callee answers the outbound call."""
    try:
        return _twiml(handle_dialogue_fetch(
            _store(),
            call_sid=request.values.get("CallSid", ""),
            patient_name=request.values.get("patientName"),
            user_id=request.values.get("userId"),
        ))
    except Exception as e:
        print(f"[voice/call ERROR] {type(e).__name__}: {e}")
        traceback.print_exc()
        return _twiml(dialogue.technical_difficulty("your call"))


def _collect(handler, what: str):
    call_sid = request.values.get("CallSid", "")
    speech = request.values.get("SpeechResult", "")
    caller = request.values.get("From")
    try:
        return _twiml(handler(_store(), call_sid, speech, caller))
    except Exception as e:
        print(f"[voice/collect-{what} ERROR] {type(e).__name__}: {e}")
        traceback.print_exc()
        return _twiml(dialogue.technical_difficulty(f"your {what}"))


@voice_bp.route("/collect-symptoms", methods=["POST"])
def collect_symptoms():
    return _collect(handle_symptoms, "symptoms")


@voice_bp.route("/collect-severity", methods=["POST"])
def collect_severity():
    return _collect(handle_severity, "severity")


@voice_bp.route("/collect-location", methods=["POST"])
def collect_location():
    return _collect(handle_location, "location")


@voice_bp.route("/status", methods=["POST"])
def status_webhook():
    """Call lifecycle events. Always acknowledged so Twilio never retries."""
    try:
        reconcile_call_status(
            _store(),
            call_sid=request.values.get("CallSid"),
            status=request.values.get("CallStatus"),
            duration=request.values.get("CallDuration"),
        )
    except Exception as e:
        print(f"[voice/status ERROR] {type(e).__name__}: {e}")
        traceback.print_exc()
    return _twiml(dialogue.empty_ack())
