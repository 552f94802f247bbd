"""
Telephony provider: places outbound calls and reads live call status via the
Twilio REST API.

Credentials are validated once when the provider is built. A missing
credential surfaces as ProviderNotConfiguredError (operator must fix config);
anything Twilio itself refuses surfaces as CarrierRejectedError with the
carrier's detail attached.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

import requests
from twilio.base.exceptions import TwilioException, TwilioRestException
from twilio.rest import Client

from config import STATUS_CREDENTIALS

STATUS_EVENTS = ["initiated", "ringing", "answered", "completed"]


class ProviderNotConfiguredError(Exception):
    """Required Twilio credentials are absent."""

    def __init__(self, missing: dict):
        super().__init__(
            "Twilio credentials are not configured. "
            "Please set up the required environment variables."
        )
        self.missing = missing


class CarrierRejectedError(Exception):
    """Twilio refused the request or could not be reached."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.details = details or {}


@dataclass
class PlacedCall:
    provider_call_id: str
    status: str


def _iso(value) -> Optional[str]:
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def _carrier_details(e: TwilioRestException) -> dict:
    return {
        "status": e.status,
        "code": e.code,
        "message": e.msg,
        "moreInfo": f"https://www.twilio.com/docs/errors/{e.code}" if e.code else None,
    }


# Raised by the client itself or its HTTP transport, with no carrier response.
_TRANSPORT_ERRORS = (TwilioException, requests.exceptions.RequestException)


class TwilioTelephonyProvider:
    """Thin wrapper around twilio.rest.Client for the two calls we make."""

    def __init__(self, settings):
        self.settings = settings
        self.missing_for_calls = settings.missing_credentials()
        self.missing_for_status = settings.missing_credentials(STATUS_CREDENTIALS)
        self._client = None

    @property
    def configured_for_calls(self) -> bool:
        return not any(self.missing_for_calls.values())

    @property
    def configured_for_status(self) -> bool:
        return not any(self.missing_for_status.values())

    @property
    def from_number(self) -> Optional[str]:
        return self.settings.twilio_phone_number

    def _get_client(self) -> Client:
        if self._client is None:
            self._client = Client(self.settings.twilio_account_sid, self.settings.twilio_auth_token)
        return self._client

    def place_call(self, to: str, from_: str, dialogue_url: str, status_webhook_url: str,
                   status_events=STATUS_EVENTS) -> PlacedCall:
        """Ask Twilio to dial *to*; it will fetch TwiML from *dialogue_url*."""
        if not self.configured_for_calls:
            raise ProviderNotConfiguredError(self.missing_for_calls)
        try:
            call = self._get_client().calls.create(
                to=to,
                from_=from_,
                url=dialogue_url,
                status_callback=status_webhook_url,
                status_callback_event=list(status_events),
                status_callback_method="POST",
            )
        except TwilioRestException as e:
            print(f"[Twilio] Call to {to} rejected: {e.status} {e.code} {e.msg}")
            raise CarrierRejectedError("Failed to initiate call", _carrier_details(e)) from e
        except _TRANSPORT_ERRORS as e:
            print(f"[Twilio] Call to {to} failed: {type(e).__name__}: {e}")
            raise CarrierRejectedError("Failed to initiate call", {"message": str(e)}) from e
        print(f"[Twilio] Placed call {call.sid} to {to} (status={call.status})")
        return PlacedCall(provider_call_id=call.sid, status=str(call.status))

    def fetch_call(self, provider_call_id: str) -> dict:
        """Live call status straight from Twilio (not from our records)."""
        if not self.configured_for_status:
            raise ProviderNotConfiguredError(self.missing_for_status)
        try:
            call = self._get_client().calls(provider_call_id).fetch()
        except TwilioRestException as e:
            print(f"[Twilio] Status lookup for {provider_call_id} failed: {e.status} {e.msg}")
            raise CarrierRejectedError("Failed to retrieve call status", _carrier_details(e)) from e
        except _TRANSPORT_ERRORS as e:
            print(f"[Twilio] Status lookup for {provider_call_id} failed: {type(e).__name__}: {e}")
            raise CarrierRejectedError("Failed to retrieve call status", {"message": str(e)}) from e

        duration = call.duration
        return {
            "status": str(call.status) if call.status is not None else None,
            "durationSeconds": int(duration) if duration not in (None, "") else None,
            "direction": call.direction,
            "from": call.from_,
            "to": call.to,
            "createdAt": _iso(call.date_created),
            "updatedAt": _iso(call.date_updated),
        }
