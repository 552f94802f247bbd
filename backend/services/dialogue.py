"""
TwiML for each intake step.

Every prompt is a speech <Gather> that posts to the NEXT step, followed by a
"didn't hear anything" line and a <Redirect> back to the CURRENT step, so a
carrier-side timeout simply asks again.
"""

from urllib.parse import urlencode

from twilio.twiml.voice_response import Gather, VoiceResponse

VOICE = "Polly.Joanna"
GATHER_TIMEOUT_SECONDS = 5

DIALOGUE_PATH = "/voice/call"
SYMPTOMS_PATH = "/voice/collect-symptoms"
SEVERITY_PATH = "/voice/collect-severity"
LOCATION_PATH = "/voice/collect-location"

NO_INPUT_LINE = "I didn't hear anything. Let's try again."


def _prompt(intro: str, question: str, action: str, retry: str) -> str:
    response = VoiceResponse()
    if intro:
        response.say(intro, voice=VOICE)
    gather = Gather(
        input="speech",
        timeout=GATHER_TIMEOUT_SECONDS,
        action=action,
        method="POST",
    )
    gather.say(question, voice=VOICE)
    response.append(gather)
    response.say(NO_INPUT_LINE, voice=VOICE)
    response.redirect(retry, method="POST")
    return str(response)


def greeting(patient_name: str, user_id: str) -> str:
    retry = f"{DIALOGUE_PATH}?{urlencode({'patientName': patient_name, 'userId': user_id or ''})}"
    return _prompt(
        f"Hello {patient_name}, this is the HealthMatch emergency medical assistant. "
        "We've received your emergency call request. "
        "I'll be gathering some important information about your medical situation.",
        "Please describe your symptoms or medical emergency in detail.",
        action=SYMPTOMS_PATH,
        retry=retry,
    )


def severity_prompt() -> str:
    return _prompt(
        "Thank you for describing your symptoms. "
        "Now, I need to understand the severity of your condition.",
        "On a scale from low to critical, how severe is your condition? "
        "Please say low, medium, high, or critical.",
        action=SEVERITY_PATH,
        retry=SYMPTOMS_PATH,
    )


def location_prompt() -> str:
    return _prompt(
        "Thank you for providing your severity level. Now, I need to know your location.",
        "Please state your current address or location so we can send help.",
        action=LOCATION_PATH,
        retry=SEVERITY_PATH,
    )


def closing() -> str:
    response = VoiceResponse()
    response.say(
        "Thank you for providing your location. We have recorded all your information "
        "and will find the nearest available doctor for you. Medical assistance will be "
        "coordinated based on your condition. Please stay on the line for further "
        "instructions or hang up if you need to prepare for emergency services.",
        voice=VOICE,
    )
    response.pause(length=2)
    response.say(
        "If this is a life-threatening emergency, please dial 911 directly. "
        "Thank you for using our emergency service.",
        voice=VOICE,
    )
    response.hangup()
    return str(response)


def technical_difficulty(what: str = "your information") -> str:
    """Last-resort TwiML: apologise, point to 911, end the call cleanly."""
    response = VoiceResponse()
    response.say(
        f"I'm sorry, we're experiencing technical difficulties processing {what}. "
        "Please hang up and dial 911 directly if this is a medical emergency.",
        voice=VOICE,
    )
    response.hangup()
    return str(response)


def empty_ack() -> str:
    return str(VoiceResponse())
