"""
Call initiator: creates the call record and asks the provider to place the
emergency intake call.

Exactly one placement attempt per invocation. A user pressing "start call"
again is a brand-new attempt with a brand-new record, never a retry of this one.
"""

import re
from urllib.parse import urlencode

from pymongo.errors import PyMongoError

from services.call_records import ADDRESS_TO_BE_COLLECTED, FAILED, new_call_record
from services.telephony import STATUS_EVENTS, CarrierRejectedError, ProviderNotConfiguredError

MIN_PHONE_LENGTH = 10
DEFAULT_COUNTRY_CODE = "+1"

_SEPARATORS = re.compile(r"[\s\-().]")


class InvalidPhoneNumberError(ValueError):
    pass


def normalize_phone_number(phone_number: str) -> str:
    """
    Strip separators, require at least 10 characters, then make sure the
    number carries a country code.
    """
    if phone_number is not None and not isinstance(phone_number, str):
        raise InvalidPhoneNumberError("Invalid phone number")
    cleaned = _SEPARATORS.sub("", phone_number or "")
    if not cleaned:
        raise InvalidPhoneNumberError("Phone number is required")
    if len(cleaned) < MIN_PHONE_LENGTH:
        raise InvalidPhoneNumberError("Invalid phone number")
    return cleaned if cleaned.startswith("+") else f"{DEFAULT_COUNTRY_CODE}{cleaned}"


def dialogue_url(base_url: str, patient_name: str, user_id: str) -> str:
    query = urlencode({"patientName": patient_name or "", "userId": user_id or ""})
    return f"{base_url.rstrip('/')}/voice/call?{query}"


def status_webhook_url(base_url: str) -> str:
    return f"{base_url.rstrip('/')}/voice/status"


def initiate_emergency_call(store, provider, base_url: str, phone_number: str,
                            user_id: str = None, patient_name: str = None) -> dict:
    """
    Returns {"providerCallId", "status", "emergencyCallRecordId"}.
    Raises ProviderNotConfiguredError, InvalidPhoneNumberError or CarrierRejectedError.
    """
    if not provider.configured_for_calls:
        print("[Initiator] Missing Twilio credentials; refusing to place call")
        raise ProviderNotConfiguredError(provider.missing_for_calls)

    formatted_phone = normalize_phone_number(phone_number)

    record_id = None
    record = new_call_record(
        phone_number=formatted_phone,
        patient_name=patient_name or "Unknown",
        user_id=user_id or None,
        address=ADDRESS_TO_BE_COLLECTED,
    )
    try:
        store.create(record)
        record_id = record["id"]
        print(f"[Initiator] Created emergency call record {record_id}")
    except PyMongoError as e:
        # The call still goes out; the step handlers can self-heal the record.
        print(f"[Initiator] Error creating emergency call record: {e}")

    try:
        placed = provider.place_call(
            to=formatted_phone,
            from_=provider.from_number,
            dialogue_url=dialogue_url(base_url, patient_name, user_id),
            status_webhook_url=status_webhook_url(base_url),
            status_events=STATUS_EVENTS,
        )
    except CarrierRejectedError:
        if record_id:
            _mark_failed(store, record_id)
        raise

    if record_id:
        try:
            store.attach_provider_call_id(record_id, placed.provider_call_id, placed.status)
            print(f"[Initiator] Record {record_id} linked to call {placed.provider_call_id}")
        except PyMongoError as e:
            print(f"[Initiator] Error saving call SID on record {record_id}: {e}")

    return {
        "providerCallId": placed.provider_call_id,
        "status": placed.status,
        "emergencyCallRecordId": record_id,
    }


def _mark_failed(store, record_id: str):
    try:
        store.update(record_id, {"status": FAILED})
    except PyMongoError as e:
        print(f"[Initiator] Error marking record {record_id} failed: {e}")
