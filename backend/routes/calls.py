"""
Client-facing emergency call API routes.
"""
from flask import Blueprint, current_app, jsonify, request
from pymongo.errors import PyMongoError

from services.browser_intake import (
    InvalidIntakeInputError,
    UnknownStepError,
    advance_browser_intake,
    save_browser_intake,
)
from services.call_records import describe_status, is_terminal, serialize_record
from services.initiator import InvalidPhoneNumberError, initiate_emergency_call
from services.telephony import CarrierRejectedError, ProviderNotConfiguredError

calls_bp = Blueprint("calls", __name__, url_prefix="/api")


def _store():
    return current_app.extensions["call_store"]


def _provider():
    return current_app.extensions["telephony"]


def _base_url() -> str:
    settings = current_app.config["SETTINGS"]
    return settings.public_base_url or request.url_root


def _not_configured(e: ProviderNotConfiguredError):
    return jsonify({"error": str(e), "missingCredentials": e.missing}), 503


@calls_bp.route("/emergency-call", methods=["POST"])
def create_emergency_call():
    """
    Place an emergency intake call to the user's phone.

    Request body (JSON):
        - phoneNumber (required): number to call; +1 is added when no country code
        - userId (optional): requesting account
        - patientName (optional): used in the greeting

    Returns {success, providerCallId, status, emergencyCallRecordId}.
    """
    data = request.get_json(silent=True) or {}
    try:
        result = initiate_emergency_call(
            _store(),
            _provider(),
            base_url=_base_url(),
            phone_number=data.get("phoneNumber"),
            user_id=data.get("userId"),
            patient_name=data.get("patientName"),
        )
    except ProviderNotConfiguredError as e:
        return _not_configured(e)
    except InvalidPhoneNumberError as e:
        return jsonify({"error": str(e)}), 400
    except CarrierRejectedError as e:
        return jsonify({"error": str(e), "details": e.details}), 502

    return jsonify(dict(success=True, **result))


@calls_bp.route("/call-status", methods=["POST"])
def call_status():
    """Live status from Twilio for {callSid}, independent of our records."""
    data = request.get_json(silent=True) or {}
    call_sid = data.get("callSid")
    provider = _provider()

    if not provider.configured_for_status:
        print("[Twilio] Missing credentials for call status lookup")
        return _not_configured(ProviderNotConfiguredError(provider.missing_for_status))
    if not call_sid:
        return jsonify({"error": "Call SID is required"}), 400

    try:
        live = provider.fetch_call(call_sid)
    except CarrierRejectedError as e:
        return jsonify({"error": str(e), "details": e.details}), 502

    return jsonify(dict(
        success=True,
        phase=describe_status(live["status"]),
        isTerminal=is_terminal(live["status"]),
        **live,
    ))


@calls_bp.route("/emergency-calls", methods=["GET"])
def list_emergency_calls():
    """All emergency call records, newest first; ?userId= narrows to one account."""
    try:
        records = _store().list_records(user_id=request.args.get("userId"))
    except PyMongoError as e:
        return jsonify({"error": str(e)}), 500
    return jsonify([serialize_record(r) for r in records])


@calls_bp.route("/emergency-calls/<record_id>", methods=["GET"])
def get_emergency_call(record_id: str):
    """Fetch a single emergency call record by id."""
    try:
        record = _store().get(record_id)
    except PyMongoError as e:
        return jsonify({"error": str(e)}), 500
    if not record:
        return jsonify({"error": "Emergency call not found"}), 404
    return jsonify(serialize_record(record))


@calls_bp.route("/voice-intake", methods=["POST"])
def voice_intake():
    """
    One turn of the in-browser voice intake.
    Send JSON: {"step": "symptoms", "speech": "...", "callData": {...}, "userId": "..."}
    """
    data = request.get_json(silent=True) or {}
    try:
        step, prompt, call_data = advance_browser_intake(
            data.get("step", "intro"),
            data.get("speech"),
            data.get("callData"),
        )
    except (UnknownStepError, InvalidIntakeInputError) as e:
        return jsonify({"error": str(e)}), 400

    result = {
        "step": step,
        "prompt": prompt,
        "callData": call_data,
        "complete": step == "complete",
        "emergencyCallRecordId": None,
    }
    if result["complete"] and data.get("step") != "complete":
        try:
            record = save_browser_intake(_store(), call_data, user_id=data.get("userId"))
            result["emergencyCallRecordId"] = record["id"]
        except PyMongoError as e:
            print(f"[BrowserIntake] Error saving intake: {e}")
            return jsonify(dict(result, error="Could not save emergency call")), 500
    return jsonify(result)
