"""
Status webhook relay: folds Twilio call-lifecycle events into the call record.

This is an out-of-band channel and always wins: the provider's status is
written unconditionally, with no state-machine guard. If the provider reports
a terminal status before any symptoms were captured, the record is flagged
`incomplete` instead.
"""

import traceback
from typing import Optional

from services.call_records import INCOMPLETE, PROVIDER_TERMINAL_STATUSES


def parse_duration(raw) -> Optional[int]:
    if raw in (None, ""):
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


def reconcile_call_status(store, call_sid: str, status: str, duration=None) -> Optional[dict]:
    """Apply one status event. Returns the stored record, or None if nothing matched."""
    print(f"[Webhook] Status update for call {call_sid}: {status}")
    if not call_sid or not status:
        print("[Webhook] Missing CallSid or CallStatus; ignoring event")
        return None

    try:
        record = store.update_by_provider_call_id(call_sid, {
            "status": status,
            "callDurationSeconds": parse_duration(duration),
        })
        if record is None:
            print(f"[Webhook] No emergency call record for {call_sid}; ignoring event")
            return None

        if status in PROVIDER_TERMINAL_STATUSES and not record.get("symptoms"):
            print(f"[Webhook] Call {call_sid} ended ({status}) without collecting symptoms")
            record = store.update_by_provider_call_id(call_sid, {"status": INCOMPLETE})
        return record
    except Exception as e:
        print(f"[Webhook ERROR] Could not update record for {call_sid}: {type(e).__name__}: {e}")
        traceback.print_exc()
        return None
