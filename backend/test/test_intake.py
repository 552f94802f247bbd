"""
Phone intake step handlers, called directly and through the /voice routes.
Run from backend/:  pytest test/test_intake.py
"""

import pytest
from pymongo.errors import PyMongoError

from services.call_records import new_call_record
from services.intake import (
    handle_dialogue_fetch,
    handle_location,
    handle_severity,
    handle_symptoms,
)

CALLER = "+15551234567"


def _boom(*args, **kwargs):
    raise PyMongoError("database down")


# =============================================================================
# Happy path on a tracked call
# =============================================================================

def test_full_intake_on_tracked_call(store, tracked_call):
    """Symptoms, severity and location land on the initiator's record."""
    sid = tracked_call["providerCallId"]

    handle_symptoms(store, sid, "chest pain and dizziness", CALLER)
    record = store.find_by_provider_call_id(sid)
    assert record["symptoms"] == ["chest pain and dizziness"]
    assert record["status"] == "collecting_data"

    handle_severity(store, sid, "it's pretty bad", CALLER)
    record = store.find_by_provider_call_id(sid)
    assert record["severity"] == "high"
    assert record["status"] == "collecting_location"

    handle_location(store, sid, "12 Elm Street", CALLER)
    record = store.find_by_provider_call_id(sid)
    assert record["address"] == "12 Elm Street"
    assert record["status"] == "completed"
    assert record["id"] == tracked_call["id"]
    assert record["patientName"] == "Ada"


def test_symptoms_overwrite_instead_of_append(store, tracked_call):
    """A second symptoms answer overwrites the first."""
    sid = tracked_call["providerCallId"]
    handle_symptoms(store, sid, "headache", CALLER)
    handle_symptoms(store, sid, "headache and nausea", CALLER)
    assert store.find_by_provider_call_id(sid)["symptoms"] == ["headache and nausea"]


def test_repeated_symptoms_step_does_not_move_status_back(store, tracked_call):
    """Re-asking symptoms keeps the later status."""
    sid = tracked_call["providerCallId"]
    handle_symptoms(store, sid, "headache", CALLER)
    handle_severity(store, sid, "moderate", CALLER)
    handle_symptoms(store, sid, "headache again", CALLER)
    record = store.find_by_provider_call_id(sid)
    assert record["symptoms"] == ["headache again"]
    assert record["status"] == "collecting_location"


def test_no_speech_writes_nothing_but_still_prompts(store, tracked_call):
    """No speech means no write, but the caller hears the next question."""
    sid = tracked_call["providerCallId"]
    twiml = handle_severity(store, sid, "", CALLER)
    record = store.find_by_provider_call_id(sid)
    assert record["severity"] is None
    assert record["status"] == "queued"
    assert "/voice/collect-location" in twiml


def test_terminal_record_is_not_written(store, tracked_call):
    """Step handlers leave terminal records alone."""
    sid = tracked_call["providerCallId"]
    store.update_by_provider_call_id(sid, {"status": "failed"})
    twiml = handle_symptoms(store, sid, "too late", CALLER)
    record = store.find_by_provider_call_id(sid)
    assert record["symptoms"] == []
    assert record["status"] == "failed"
    assert "<Gather" in twiml


# =============================================================================
# Self-healing: provider talks to us before (or without) a record
# =============================================================================

@pytest.mark.parametrize("handler,speech,field,value,status,severity", [
    (handle_symptoms, "broken arm", "symptoms", ["broken arm"], "collecting_data", None),
    (handle_severity, "critical", "severity", "critical", "collecting_location", "critical"),
    (handle_location, "5 Oak Road", "address", "5 Oak Road", "completed", "medium"),
])
def test_untracked_call_creates_record(store, handler, speech, field, value, status, severity):
    """A step for an unknown call creates the record from the caller number."""
    handler(store, "CA-new", speech, CALLER)
    record = store.find_by_provider_call_id("CA-new")
    assert record is not None
    assert record[field] == value
    assert record["status"] == status
    assert record["patientName"] == "Unknown Patient"
    assert record["phoneNumber"] == CALLER
    assert record["severity"] == severity


def test_self_healed_defaults(store):
    """Self-healed records get placeholder values for what was never asked."""
    handle_location(store, "CA-new", "5 Oak Road", CALLER)
    record = store.find_by_provider_call_id("CA-new")
    assert record["symptoms"] == []
    assert record["severity"] == "medium"
    assert record["userId"] is None


def test_self_healed_at_symptoms_step_has_no_severity(store):
    """Severity stays null until the severity step runs, then gets classified."""
    handle_symptoms(store, "CA-new", "broken arm", CALLER)
    assert store.find_by_provider_call_id("CA-new")["severity"] is None

    handle_severity(store, "CA-new", "serious", CALLER)
    record = store.find_by_provider_call_id("CA-new")
    assert record["severity"] == "high"
    assert record["status"] == "collecting_location"


def test_untracked_call_without_caller_is_ignored(store):
    """No record and no caller number means nothing is written."""
    twiml = handle_symptoms(store, "CA-ghost", "fever", None)
    assert store.find_by_provider_call_id("CA-ghost") is None
    assert "/voice/collect-severity" in twiml


def test_dialogue_fetch_creates_record_for_known_user(store):
    """The greeting creates a record when the user is known."""
    twiml = handle_dialogue_fetch(store, "CA-fetch", "Grace", "user-7")
    record = store.find_by_provider_call_id("CA-fetch")
    assert record["userId"] == "user-7"
    assert record["patientName"] == "Grace"
    assert record["status"] == "initiated"
    assert record["address"] == "To be collected during call"
    assert "Hello Grace" in twiml
    assert "/voice/collect-symptoms" in twiml


def test_dialogue_fetch_reuses_existing_record(store, tracked_call):
    """The greeting does not duplicate the initiator's record."""
    handle_dialogue_fetch(store, tracked_call["providerCallId"], "Ada", "user-1")
    assert len(store.list_records()) == 1


def test_dialogue_fetch_without_user_creates_nothing(store):
    """An anonymous greeting stores nothing."""
    handle_dialogue_fetch(store, "CA-anon", None, None)
    assert store.list_records() == []


# =============================================================================
# Failures never reach the caller
# =============================================================================

def test_store_failure_still_returns_next_prompt(store, tracked_call, monkeypatch):
    """A database failure still gives the caller the next question."""
    monkeypatch.setattr(store, "update_by_provider_call_id", _boom)
    twiml = handle_symptoms(store, tracked_call["providerCallId"], "fever", CALLER)
    assert "/voice/collect-severity" in twiml
    assert "how severe" in twiml


def test_lookup_failure_in_dialogue_fetch_still_greets(store, monkeypatch):
    """A database failure still greets the caller."""
    monkeypatch.setattr(store, "find_by_provider_call_id", _boom)
    twiml = handle_dialogue_fetch(store, "CA1", "Ada", "user-1")
    assert "Hello Ada" in twiml


def test_high_severity_completion_notifies_doctors(store, tracked_call, capsys):
    """High-severity completions trigger the doctor notification."""
    sid = tracked_call["providerCallId"]
    handle_symptoms(store, sid, "can't breathe", CALLER)
    handle_severity(store, sid, "severe", CALLER)
    handle_location(store, sid, "1 Main St", CALLER)
    assert "[Notify]" in capsys.readouterr().out


# =============================================================================
# TwiML shape
# =============================================================================

def test_prompts_redirect_to_their_own_step(store, tracked_call):
    """Prompts gather into the next step and redirect to themselves on silence."""
    sid = tracked_call["providerCallId"]
    severity_twiml = handle_symptoms(store, sid, "fever", CALLER)
    assert 'action="/voice/collect-severity"' in severity_twiml
    assert "<Redirect method=\"POST\">/voice/collect-symptoms</Redirect>" in severity_twiml
    assert 'timeout="5"' in severity_twiml
    assert "Polly.Joanna" in severity_twiml

    closing = handle_location(store, sid, "1 Main St", CALLER)
    assert "<Hangup />" in closing
    assert "<Gather" not in closing


def test_greeting_redirect_keeps_query(store):
    """The greeting's redirect keeps the patient name and user id."""
    twiml = handle_dialogue_fetch(store, "", "Ada Lovelace", "u1")
    assert "/voice/call?patientName=Ada+Lovelace&amp;userId=u1" in twiml


# =============================================================================
# Routes
# =============================================================================

def test_voice_routes_walk_the_flow(client, store):
    """The /voice routes run the whole intake end to end."""
    form = {"CallSid": "CA-route", "From": CALLER}
    r = client.post("/voice/call?patientName=Ada&userId=user-1", data={"CallSid": "CA-route"})
    assert r.status_code == 200
    assert r.headers["Content-Type"].startswith("text/xml")

    client.post("/voice/collect-symptoms", data=dict(form, SpeechResult="fever"))
    client.post("/voice/collect-severity", data=dict(form, SpeechResult="moderate"))
    r = client.post("/voice/collect-location", data=dict(form, SpeechResult="9 Pine Ave"))
    assert b"<Hangup />" in r.data

    record = store.find_by_provider_call_id("CA-route")
    assert record["userId"] == "user-1"
    assert record["symptoms"] == ["fever"]
    assert record["severity"] == "medium"
    assert record["address"] == "9 Pine Ave"
    assert record["status"] == "completed"


def test_voice_route_never_500s(client, monkeypatch):
    """Unexpected errors on /voice give TwiML, never a 500."""
    import routes.voice

    def explode(*args, **kwargs):
        raise RuntimeError("twiml builder broke")

    monkeypatch.setattr(routes.voice, "handle_symptoms", explode)
    r = client.post("/voice/collect-symptoms", data={"CallSid": "CA1", "SpeechResult": "x"})
    assert r.status_code == 200
    assert b"technical difficulties" in r.data
    assert b"<Hangup />" in r.data


def test_unused_record_fields_untouched(store):
    """A step only writes its own field."""
    record = store.create(new_call_record(provider_call_id="CA-x", patient_name="Bo"))
    handle_severity(store, "CA-x", "high", CALLER)
    stored = store.get(record["id"])
    assert stored["symptoms"] == []
    assert stored["address"] == "To be collected"
