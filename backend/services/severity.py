"""
Severity classifier: maps a caller utterance to low / medium / high / critical.

Pure keyword containment, checked in strict priority order. The first level
with a matching keyword wins, so "bad but moderate" is high, not medium.
"""

NO_MATCH_SEVERITY = "low"       # Classifier fallback when no keyword matches
SEVERITY_BEFORE_SPEECH = "medium"  # Default used before any severity speech arrives

SEVERITY_LEVELS = ("low", "medium", "high", "critical")

# Highest priority first
SEVERITY_KEYWORDS = (
    ("critical", ("critical", "severe", "very bad", "emergency")),
    ("high", ("high", "bad", "serious")),
    ("medium", ("medium", "moderate")),
)


def classify_severity(utterance: str) -> str:
    """Return the severity level for *utterance*; never None."""
    text = (utterance or "").lower()
    for level, keywords in SEVERITY_KEYWORDS:
        if any(keyword in text for keyword in keywords):
            return level
    return NO_MATCH_SEVERITY
