"""
Intake step handlers: the phone-call state machine.

  /voice/call              greeting, ask for symptoms          (initiated)
  /voice/collect-symptoms  symptoms = [speech], ask severity   (collecting_data)
  /voice/collect-severity  severity = classify(speech), ask location (collecting_location)
  /voice/collect-location  address = speech, closing + hangup  (completed)

Each handler does at most one read and one write against the record store and
ALWAYS returns TwiML. A failed write is logged and the caller still hears the
next prompt: a broken record must never leave someone on a dead line.
"""

import traceback

from services import dialogue
from services.call_records import (
    ADDRESS_COLLECTED_DURING_CALL,
    ADDRESS_UNKNOWN,
    COLLECTING_DATA,
    COLLECTING_LOCATION,
    COMPLETED,
    INITIATED,
    UNKNOWN_PATIENT,
    advance_status,
    is_terminal,
    new_call_record,
)
from services.severity import SEVERITY_BEFORE_SPEECH, classify_severity

HIGH_SEVERITIES = ("high", "critical")


def handle_dialogue_fetch(store, call_sid: str, patient_name: str = None, user_id: str = None) -> str:
    """First TwiML the provider fetches once the callee answers."""
    patient_name = patient_name or "Patient"
    print(f"[Intake] Dialogue requested for {patient_name} (CallSid={call_sid or '-'})")
    try:
        _ensure_initial_record(store, call_sid, patient_name, user_id)
    except Exception as e:
        print(f"[Intake ERROR] dialogue fetch record lookup failed: {type(e).__name__}: {e}")
        traceback.print_exc()
    return dialogue.greeting(patient_name, user_id)


def handle_symptoms(store, call_sid: str, speech: str, caller: str = None) -> str:
    print(f"[Intake] Symptoms for {call_sid}: \"{speech}\"")
    # Overwrites: a re-asked question replaces the earlier utterance.
    _record_step(store, "symptoms", call_sid, speech, caller,
                 fields={"symptoms": [speech]}, target=COLLECTING_DATA)
    return dialogue.severity_prompt()


def handle_severity(store, call_sid: str, speech: str, caller: str = None) -> str:
    severity = classify_severity(speech) if speech else SEVERITY_BEFORE_SPEECH
    print(f"[Intake] Severity for {call_sid}: \"{speech}\" -> {severity}")
    _record_step(store, "severity", call_sid, speech, caller,
                 fields={"severity": severity}, target=COLLECTING_LOCATION)
    return dialogue.location_prompt()


def handle_location(store, call_sid: str, speech: str, caller: str = None) -> str:
    print(f"[Intake] Location for {call_sid}: \"{speech}\"")
    record = _record_step(store, "location", call_sid, speech, caller,
                          fields={"address": speech}, target=COMPLETED)
    if record and record.get("severity") in HIGH_SEVERITIES:
        notify_doctors(record)
    return dialogue.closing()


def notify_doctors(record: dict):
    """Doctor notification is not wired to any channel yet; log only."""
    print(
        f"[Notify] High severity case ({record.get('severity')}) for "
        f"{record.get('patientName')} at {record.get('address')} - would alert on-call doctors"
    )


# =============================================================================
# Record bookkeeping
# =============================================================================

def _ensure_initial_record(store, call_sid, patient_name, user_id):
    if call_sid and store.find_by_provider_call_id(call_sid):
        return
    if not user_id:
        return
    defaults = {
        "patient_name": patient_name,
        "user_id": user_id,
        "status": INITIATED,
        "address": ADDRESS_COLLECTED_DURING_CALL,
    }
    if call_sid:
        record, created = store.find_or_create_call_record(call_sid, defaults)
    else:
        record, created = store.create(new_call_record(**defaults)), True
    if created:
        print(f"[Intake] Created emergency call record {record['id']} from dialogue fetch")


def _self_healed_defaults(caller: str, target: str, fields: dict) -> dict:
    # Severity stays null until the severity step has run.
    severity = None if target == COLLECTING_DATA else SEVERITY_BEFORE_SPEECH
    return {
        "phone_number": caller,
        "patient_name": UNKNOWN_PATIENT,
        "status": target,
        "symptoms": fields.get("symptoms", []),
        "severity": fields.get("severity", severity),
        "address": fields.get("address", ADDRESS_UNKNOWN),
    }


def _record_step(store, step: str, call_sid: str, speech: str, caller: str,
                 fields: dict, target: str):
    """
    Persist one step's result. Returns the stored record, or None when nothing
    was written. Never raises.
    """
    if not speech:
        print(f"[Intake] {step}: no speech for {call_sid}; nothing recorded")
        return None
    try:
        record = store.find_by_provider_call_id(call_sid)
        if record is None:
            if not (call_sid and caller):
                print(f"[Intake] {step}: no record for {call_sid} and no caller number; skipping write")
                return None
            record, created = store.find_or_create_call_record(
                call_sid, _self_healed_defaults(caller, target, fields)
            )
            if created:
                print(f"[Intake] {step}: created record {record['id']} for untracked call {call_sid}")
                return record

        if is_terminal(record.get("status")):
            print(f"[Intake] {step}: record for {call_sid} is already {record['status']}; ignoring")
            return None

        changes = dict(fields)
        changes["status"] = advance_status(record.get("status"), target)
        updated = store.update_by_provider_call_id(call_sid, changes)
        print(f"[Intake] {step}: stored for {call_sid} (status={changes['status']})")
        return updated
    except Exception as e:
        print(f"[Intake ERROR] {step}: could not store result for {call_sid}: {type(e).__name__}: {e}")
        traceback.print_exc()
        return None
