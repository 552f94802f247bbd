"""
Centralized config for the emergency call backend.
Loads Twilio credentials, the public base URL and MongoDB settings from the
environment once; no secrets in code. The resulting Settings object is passed
explicitly to the services that need it.
"""
import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

# Credential field name (as reported to the client) → Settings attribute
CALL_CREDENTIALS = {
    "accountSid": "twilio_account_sid",
    "authToken": "twilio_auth_token",
    "phoneNumber": "twilio_phone_number",
}
STATUS_CREDENTIALS = ("accountSid", "authToken")


@dataclass(frozen=True)
class Settings:
    twilio_account_sid: Optional[str] = None
    twilio_auth_token: Optional[str] = None
    twilio_phone_number: Optional[str] = None
    public_base_url: Optional[str] = None  # Falls back to the request origin
    mongodb_uri: Optional[str] = None
    mongodb_db: str = "healthmatch"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            twilio_account_sid=os.getenv("TWILIO_ACCOUNT_SID") or None,
            twilio_auth_token=os.getenv("TWILIO_AUTH_TOKEN") or None,
            twilio_phone_number=os.getenv("TWILIO_PHONE_NUMBER") or None,
            public_base_url=os.getenv("PUBLIC_BASE_URL") or None,
            mongodb_uri=os.getenv("MONGODB_URI") or None,
            mongodb_db=os.getenv("MONGODB_DB", "healthmatch"),
        )

    def missing_credentials(self, fields=tuple(CALL_CREDENTIALS)) -> dict:
        """Map each requested credential to True when it is absent."""
        return {name: not getattr(self, CALL_CREDENTIALS[name]) for name in fields}
