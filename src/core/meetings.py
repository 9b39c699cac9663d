"""
Meeting text classification.
"""

import re

from core.config import (
    DEFAULT_MEETING_TYPE,
    INTAKE_KEYWORDS,
    MEETING_PATTERN,
    MEETING_TYPE_LABELS,
    SEFT_KEYWORDS,
)
from models.events import MeetingKind

_MEETING_RE = re.compile(MEETING_PATTERN)


def is_patient_meeting(text: str | None) -> bool:
    """Check if text reads as 'meeting with <person>'."""
    if not text:
        return False
    return _MEETING_RE.match(text) is not None


def extract_patient_name(text: str | None) -> str | None:
    """Extract the person's name from 'meeting with <person>' text."""
    if not text:
        return None
    match = _MEETING_RE.match(text)
    if not match:
        return None
    return match.group("name").strip() or None


def classify_meeting(text: str | None) -> str | None:
    """
    Classify meeting text as regular, intake or SEFT.

    Returns None when the text is not a patient meeting.
    """
    if not is_patient_meeting(text):
        return None
    lowered = text.lower()
    if any(keyword in lowered for keyword in SEFT_KEYWORDS):
        return MeetingKind.SEFT
    if any(keyword in lowered for keyword in INTAKE_KEYWORDS):
        return MeetingKind.INTAKE
    return MeetingKind.REGULAR


def infer_meeting_type(text: str | None) -> str:
    """Guess Zoom / Phone / In-Person from free text."""
    if text:
        if MEETING_TYPE_LABELS["Zoom"] in text or "zoom" in text.lower():
            return "Zoom"
        if MEETING_TYPE_LABELS["Phone"] in text:
            return "Phone"
    return DEFAULT_MEETING_TYPE


def meeting_summary(patient_name: str) -> str:
    """Canonical meeting text for a patient."""
    return f"פגישה עם {patient_name}"


def meeting_type_label(meeting_type: str | None) -> str:
    """Hebrew label for a meeting type, falling back to the raw value."""
    if not meeting_type:
        return "לא צוין"
    return MEETING_TYPE_LABELS.get(meeting_type, meeting_type)
