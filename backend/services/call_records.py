"""
Emergency call record: field defaults and lifecycle rules.

A record is the permanent audit trail of one call attempt. Step handlers move
its status forward through the intake sequence; the status webhook may set any
provider status at any time (last write wins). Records are never deleted.
"""

import uuid
from datetime import datetime
from typing import List, Optional

# Intake states, in forward order
INITIATED = "initiated"
COLLECTING_DATA = "collecting_data"
COLLECTING_LOCATION = "collecting_location"
COMPLETED = "completed"

# Terminal states other than completed
INCOMPLETE = "incomplete"
FAILED = "failed"
BUSY = "busy"
NO_ANSWER = "no-answer"

TERMINAL_STATUSES = frozenset({COMPLETED, FAILED, BUSY, NO_ANSWER, INCOMPLETE})

# Terminal statuses the provider itself reports (incomplete is ours)
PROVIDER_TERMINAL_STATUSES = frozenset({COMPLETED, FAILED, BUSY, NO_ANSWER})

_INTAKE_RANK = {
    # Provider pre-answer statuses count as "call placed"
    "queued": 0,
    INITIATED: 0,
    "ringing": 0,
    "in-progress": 0,
    COLLECTING_DATA: 1,
    COLLECTING_LOCATION: 2,
    COMPLETED: 3,
}

ADDRESS_TO_BE_COLLECTED = "To be collected"
ADDRESS_COLLECTED_DURING_CALL = "To be collected during call"
ADDRESS_UNKNOWN = "Location unknown"
UNKNOWN_PATIENT = "Unknown Patient"

_PHASE_TEXT = {
    "queued": "Your call is queued and will begin shortly...",
    INITIATED: "Call is being connected to your phone...",
    "ringing": "Your phone is ringing. Please answer the call.",
    "in-progress": "Call is active. Please respond to the AI assistant's questions.",
    COLLECTING_DATA: "Symptoms recorded. Assessing severity...",
    COLLECTING_LOCATION: "Severity recorded. Collecting your location...",
    COMPLETED: "Call has completed. Health information has been collected.",
    INCOMPLETE: "Call ended before your symptoms could be collected.",
    FAILED: "The call could not be completed.",
    BUSY: "The line was busy.",
    NO_ANSWER: "The call was not answered.",
}


def is_terminal(status: Optional[str]) -> bool:
    return status in TERMINAL_STATUSES


def advance_status(current: Optional[str], target: str) -> str:
    """
    Forward-only transition used by the intake step handlers.
    A terminal status is never left; a step never moves a record backwards.
    """
    if is_terminal(current):
        return current
    if target in TERMINAL_STATUSES:
        return target
    if _INTAKE_RANK.get(target, 0) >= _INTAKE_RANK.get(current, 0):
        return target
    return current


def describe_status(status: Optional[str]) -> str:
    """Human-readable phase text for the polling client."""
    if not status:
        return "Connecting to emergency services..."
    return _PHASE_TEXT.get(status, f"Call status: {status}")


def new_call_record(
    phone_number: Optional[str] = None,
    patient_name: Optional[str] = None,
    user_id: Optional[str] = None,
    provider_call_id: Optional[str] = None,
    status: str = INITIATED,
    symptoms: Optional[List[str]] = None,
    severity: Optional[str] = None,
    address: str = ADDRESS_TO_BE_COLLECTED,
    now: Optional[datetime] = None,
) -> dict:
    """Build a fresh record document with a generated id and timestamps."""
    now = now or datetime.utcnow()
    return {
        "id": str(uuid.uuid4()),
        "providerCallId": provider_call_id,
        "userId": user_id,
        "patientName": patient_name or UNKNOWN_PATIENT,
        "phoneNumber": phone_number,
        "symptoms": list(symptoms or []),
        "severity": severity,
        "address": address,
        "status": status,
        "callDurationSeconds": None,
        "createdAt": now,
        "updatedAt": now,
    }


def serialize_record(record: Optional[dict]) -> Optional[dict]:
    """Convert a stored record to the JSON shape the client receives."""
    if record is None:
        return None
    out = dict(record)
    out.pop("_id", None)
    for key in ("createdAt", "updatedAt"):
        if isinstance(out.get(key), datetime):
            out[key] = out[key].isoformat() + "Z"
    out["phase"] = describe_status(out.get("status"))
    out["isTerminal"] = is_terminal(out.get("status"))
    return out
