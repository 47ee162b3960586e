from dataclasses import dataclass
from typing import Dict

from resume_coach.cover_letter.form_state import FormData

REQUIRED_FIELDS = ('full_name', 'company_name', 'job_title', 'job_description')

SECTION_FIELDS = {
    '1': ('full_name',),
    '2': ('company_name', 'job_title', 'job_description'),
}


@dataclass(frozen=True)
class FormProgress:
    sections: Dict[str, bool]
    percent: float

    @property
    def is_complete(self) -> bool:
        return all(self.sections.values())


def is_filled(data: FormData, field: str) -> bool:
    return len(getattr(data, field).strip()) > 0


def compute_progress(data: FormData) -> FormProgress:
    completed = [field for field in REQUIRED_FIELDS if is_filled(data, field)]
    return FormProgress(
        sections={
            section: all(is_filled(data, field) for field in fields)
            for section, fields in SECTION_FIELDS.items()
        },
        percent=len(completed) / len(REQUIRED_FIELDS) * 100,
    )
