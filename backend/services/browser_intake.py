"""
Browser voice intake: the same questions as the phone call, driven by speech
recognition in the browser instead of a carrier.

Stateless on the server: the client sends the current step, the recognized
speech and the data collected so far, and gets back the next step and prompt.
"""

from services.call_records import COMPLETED, new_call_record
from services.severity import classify_severity

STEPS = ("intro", "name", "symptoms", "severity", "location", "complete")

INTRO_TRIGGERS = ("yes", "help", "emergency")

PROMPTS = {
    "intro": "This is the HealthMatch emergency assistant. Do you need help? Say yes to begin.",
    "name": "Please tell me your name",
    "symptoms": "Thank you. Please describe your symptoms or medical emergency",
    "severity": "On a scale from low to critical, how severe is your condition? "
                "Please say low, medium, high, or critical.",
    "location": "Thank you. Please tell me your current location or address",
    "complete": "Thank you for providing all the information. A doctor has been notified "
                "of your emergency and will be contacting you shortly.",
}


class UnknownStepError(ValueError):
    pass


class InvalidIntakeInputError(ValueError):
    pass


def empty_call_data() -> dict:
    return {"patientName": None, "symptoms": [], "severity": None, "address": None}


def advance_browser_intake(step: str, speech: str, call_data: dict = None) -> tuple:
    """
    One turn of the browser intake. Returns (next_step, prompt, call_data).
    An unrecognised intro, or empty speech, keeps the current step.
    """
    if step not in STEPS:
        raise UnknownStepError(f"Unknown intake step: {step}")
    if call_data is not None and not isinstance(call_data, dict):
        raise InvalidIntakeInputError("callData must be an object")
    if speech is not None and not isinstance(speech, str):
        raise InvalidIntakeInputError("speech must be a string")
    data = dict(empty_call_data(), **(call_data or {}))
    speech = (speech or "").strip()

    if step == "complete":
        return step, PROMPTS[step], data
    if not speech:
        return step, PROMPTS[step], data

    if step == "intro":
        if not any(word in speech.lower() for word in INTRO_TRIGGERS):
            return step, PROMPTS[step], data
        next_step = "name"
    elif step == "name":
        data["patientName"] = speech
        next_step = "symptoms"
    elif step == "symptoms":
        data["symptoms"] = [speech]
        next_step = "severity"
    elif step == "severity":
        data["severity"] = classify_severity(speech)
        next_step = "location"
    else:
        data["address"] = speech
        next_step = "complete"

    return next_step, PROMPTS[next_step], data


def save_browser_intake(store, call_data: dict, user_id: str = None) -> dict:
    """Persist a finished browser intake as a completed call record."""
    record = new_call_record(
        patient_name=call_data.get("patientName"),
        user_id=user_id,
        status=COMPLETED,
        symptoms=call_data.get("symptoms"),
        severity=call_data.get("severity"),
        address=call_data.get("address") or "",
    )
    store.create(record)
    print(f"[BrowserIntake] Saved completed intake as record {record['id']}")
    return record
