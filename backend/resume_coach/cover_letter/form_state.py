import re
import logging
from enum import Enum
from typing import Callable, Dict, List

from pydantic import BaseModel, ConfigDict

logger = logging.getLogger(__name__)


class Tone(str, Enum):
    PROFESSIONAL = 'professional'
    ENTHUSIASTIC = 'enthusiastic'
    CONFIDENT = 'confident'
    HUMBLE = 'humble'


TONE_DESCRIPTIONS = {
    Tone.PROFESSIONAL: 'Balanced and formal',
    Tone.ENTHUSIASTIC: 'Energetic and passionate',
    Tone.CONFIDENT: 'Strong and assertive',
    Tone.HUMBLE: 'Modest and grateful',
}

SECTIONS = {
    '1': 'Personal Information',
    '2': 'Job Details',
    '3': 'Generated Cover Letter',
}

MAX_CHARS = {
    'job_description': 5000,
    'relevant_experience': 1500,
}

FIELD_TOOLTIPS = {
    'full_name': "Enter your full legal name as it should appear on the letter",
    'email': "Use a professional email address",
    'phone': "Include country code if applying internationally",
    'company_name': "Use the official company name",
    'job_title': "Use the exact title from the job posting",
    'job_description': "Paste the complete job description to help AI analyze requirements",
    'relevant_experience': "Focus on achievements that match job requirements",
    'recipient_name': "Find this on the job posting or company website",
    'recipient_title': "Include their professional title if known",
    'company_address': "Use the official company address from their website",
    'tone': "Choose a tone that matches the company culture",
}

EMAIL_PATTERN = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')
PHONE_PATTERN = re.compile(r'^[\d\s+()-]{10,}$')


class FormData(BaseModel):
    """The cover letter authoring record. Immutable; edits produce a new copy."""
    model_config = ConfigDict(frozen=True)

    full_name: str = ""
    email: str = ""
    phone: str = ""
    company_name: str = ""
    job_title: str = ""
    job_description: str = ""
    relevant_experience: str = ""
    recipient_name: str = ""
    recipient_title: str = ""
    company_address: str = ""
    tone: Tone = Tone.PROFESSIONAL

    def has_content(self) -> bool:
        """True once any field other than the tone has been filled in."""
        return any(
            getattr(self, field) != ""
            for field in FormData.model_fields
            if field != 'tone'
        )


FORM_FIELDS = tuple(FormData.model_fields)

ChangeListener = Callable[[FormData, bool], None]


def validate_form(data: FormData) -> Dict[str, str]:
    """Field-level validation messages. An empty dict means the form is valid."""
    errors: Dict[str, str] = {}

    if len(data.full_name.strip()) < 2:
        errors['full_name'] = 'Name must be at least 2 characters'

    if data.email and not EMAIL_PATTERN.match(data.email):
        errors['email'] = 'Please enter a valid email address'

    if data.phone and not PHONE_PATTERN.match(data.phone):
        errors['phone'] = 'Please enter a valid phone number'

    return errors


class FormStateStore:
    """
    Holds the current FormData and applies single-field updates.

    Listeners are called with (data, restored) after every accepted change;
    restored is True when the whole record was swapped in (load, undo, redo).
    """

    def __init__(self, initial: FormData = None):
        self._data = initial or FormData()
        self._listeners: List[ChangeListener] = []

    @property
    def data(self) -> FormData:
        return self._data

    def on_change(self, listener: ChangeListener) -> None:
        self._listeners.append(listener)

    def update(self, field: str, value) -> bool:
        """
        Replace one field. Returns False, leaving the state untouched, when the
        value is over the field's character limit or is not a known tone.
        """
        if field not in FORM_FIELDS:
            raise KeyError(f"Unknown form field: {field}")

        if field == 'tone':
            try:
                value = Tone(value)
            except ValueError:
                logger.warning(f"Ignoring unknown tone: {value!r}")
                return False
        else:
            value = "" if value is None else str(value)
            limit = MAX_CHARS.get(field)
            if limit is not None and len(value) > limit:
                logger.debug(f"Rejected update to {field}: {len(value)} characters exceeds {limit}")
                return False

        self._data = self._data.model_copy(update={field: value})
        self._notify(restored=False)
        return True

    def replace(self, data: FormData, restored: bool = True) -> None:
        self._data = data
        self._notify(restored=restored)

    def _notify(self, restored: bool) -> None:
        for listener in self._listeners:
            listener(self._data, restored)
