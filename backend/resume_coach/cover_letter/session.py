import asyncio
import re
import logging
from datetime import datetime
from typing import Any, Dict, Optional, Protocol

from resume_coach.cover_letter.ai_bridge import AIRequestBridge, GENERATE_LETTER_COST, GenerationClient, KeywordAnalysis
from resume_coach.cover_letter.autosave import AUTOSAVE_DELAY_SECONDS, AutosaveTimer
from resume_coach.cover_letter.credits_gate import CreditsGate
from resume_coach.cover_letter.errors import CreditLedgerError, FormStoreError
from resume_coach.cover_letter.form_state import FORM_FIELDS, SECTIONS, FormData, FormStateStore, validate_form
from resume_coach.cover_letter.history import FormHistory
from resume_coach.cover_letter.notifier import Notifier, LoggingNotifier
from resume_coach.cover_letter.progress import FormProgress, compute_progress

logger = logging.getLogger(__name__)


class FormStore(Protocol):
    """Remote persistence for cover letter records."""

    async def save(
        self,
        form_id: Optional[str],
        data: FormData,
        cover_letter: Optional[str],
        status: Optional[str] = None,
    ) -> str: ...

    async def load(self, form_id: str) -> Dict[str, Any]: ...

    async def delete(self, form_id: str) -> None: ...


class CoverLetterSession:
    """
    One cover letter authoring session.

    Ties the form state to its undo history, progress, validation, autosave
    and the paid AI actions. Field edits must happen inside a running event
    loop because every change restarts the autosave countdown.
    """

    def __init__(
        self,
        form_store: FormStore,
        generation_client: GenerationClient,
        credits_gate: CreditsGate,
        notifier: Notifier = None,
        form_id: Optional[str] = None,
        initial: Optional[FormData] = None,
        autosave_delay: float = AUTOSAVE_DELAY_SECONDS,
        refund_on_failure: bool = False,
    ):
        self.form_store = form_store
        self.credits_gate = credits_gate
        self.notifier = notifier or LoggingNotifier()
        self.bridge = AIRequestBridge(
            generation_client, credits_gate, self.notifier, refund_on_failure=refund_on_failure
        )

        # Editing an existing record skips the credit check on entry.
        self.editing_form_id = form_id
        self.form_id = form_id
        self.status = 'draft'
        self.cover_letter = ""
        self.keyword_analysis = KeywordAnalysis()
        self.last_saved: Optional[datetime] = None
        self.active_section = '1'
        # Saves run one at a time; later saves reuse the first insert's id.
        self._save_lock = asyncio.Lock()

        self.store = FormStateStore(initial)
        self.history = FormHistory()
        self.progress: FormProgress = compute_progress(self.store.data)
        self.validation_errors: Dict[str, str] = validate_form(self.store.data)
        if self.store.data.has_content():
            self.history.record(self.store.data)

        self.autosave = AutosaveTimer(
            save=self.save,
            should_save=self._should_autosave,
            delay=autosave_delay,
            on_error=self._autosave_failed,
        )
        self.store.on_change(self._on_form_change)

    @property
    def user_id(self) -> Optional[str]:
        return self.credits_gate.user_id

    @property
    def data(self) -> FormData:
        return self.store.data

    # --- Lifecycle ---

    async def start(self) -> bool:
        """Load the credit balance and, when editing, the stored record."""
        if not self.user_id:
            self.notifier.error('Please sign in to save your progress')
            return False

        try:
            await self.credits_gate.refresh()
        except CreditLedgerError as e:
            logger.warning(f"Could not load credit balance: {e}")

        if self.form_id:
            return await self.load(self.form_id)
        return True

    async def load(self, form_id: str) -> bool:
        try:
            record = await self.form_store.load(form_id)
        except FormStoreError as e:
            logger.error(f"Failed to load cover letter {form_id}: {e}")
            self.notifier.error(f"Failed to load saved data: {e}")
            return False

        data = FormData(**{field: record.get(field) or FormData.model_fields[field].default for field in FORM_FIELDS})
        self.form_id = record.get('id', form_id)
        self.cover_letter = record.get('cover_letter') or ""
        self.status = record.get('status') or 'draft'

        self.history.clear()
        self.store.replace(data, restored=True)
        if data.has_content():
            self.history.record(data)

        self.notifier.success('Loaded cover letter for editing')
        return True

    async def aclose(self) -> None:
        await self.autosave.aclose()

    # --- Editing ---

    def update_field(self, field: str, value) -> bool:
        return self.store.update(field, value)

    def set_cover_letter(self, text: str) -> None:
        self.cover_letter = text or ""
        self.autosave.touch()

    def undo(self) -> bool:
        snapshot = self.history.undo()
        if snapshot is None:
            return False
        self.store.replace(snapshot.data, restored=True)
        return True

    def redo(self) -> bool:
        snapshot = self.history.redo()
        if snapshot is None:
            return False
        self.store.replace(snapshot.data, restored=True)
        return True

    def move_to_next_section(self) -> str:
        current = int(self.active_section)
        if current < len(SECTIONS):
            self.active_section = str(current + 1)
        return self.active_section

    def has_unsaved_work(self) -> bool:
        """True when leaving now would lose something the user typed or generated."""
        return bool(self.store.data.full_name or self.cover_letter)

    def export_filename(self) -> str:
        company = re.sub(r"\s+", "-", self.store.data.company_name.lower())
        return f"cover-letter-{company}.txt"

    # --- Persistence ---

    async def save(self, status: Optional[str] = None) -> bool:
        """
        Upsert the current state. Without a status the stored status is left
        as it is, which is what autosave relies on.
        """
        if not self.user_id:
            self.notifier.error('Please sign in to save your progress')
            return False

        async with self._save_lock:
            try:
                self.form_id = await self.form_store.save(
                    self.form_id, self.store.data, self.cover_letter, status
                )
            except FormStoreError as e:
                logger.error(f"Failed to save cover letter: {e}")
                self.notifier.error(f"Failed to save data: {e}")
                return False

        self.last_saved = datetime.now()
        if status:
            self.status = status
            self.notifier.success(
                'Cover letter saved as completed' if status == 'completed' else 'Cover letter saved as draft'
            )
        logger.info(f"Saved cover letter {self.form_id}")
        return True

    async def save_as_completed(self) -> bool:
        return await self.save('completed')

    async def clear(self) -> bool:
        self.autosave.cancel()
        async with self._save_lock:
            if self.form_id:
                try:
                    await self.form_store.delete(self.form_id)
                except FormStoreError as e:
                    logger.error(f"Failed to clear form: {e}")
                    self.notifier.error('Failed to clear form')
                    return False
            self.form_id = None

        self.editing_form_id = None
        self.status = 'draft'
        self.cover_letter = ""
        self.keyword_analysis = KeywordAnalysis()
        self.active_section = '1'
        self.store.replace(FormData(), restored=True)
        self.history.clear()
        self.notifier.success('Form cleared')
        return True

    # --- AI actions ---

    def check_auth_and_limits(self) -> bool:
        if not self.user_id:
            self.notifier.error('Please sign in to use this feature')
            return False

        if self.editing_form_id:
            return True

        if not self.credits_gate.can_afford(GENERATE_LETTER_COST):
            self.notifier.error(
                f"You need {GENERATE_LETTER_COST} credits to generate a cover letter. "
                "Buy more credits to continue."
            )
            return False
        return True

    async def analyze_job_description(self) -> Optional[KeywordAnalysis]:
        if not self.check_auth_and_limits():
            return None

        job_description = self.store.data.job_description
        if not job_description.strip():
            self.notifier.error('Please fill in the job description first')
            return None

        analysis = await self.bridge.analyze(job_description)
        if analysis is None:
            return None

        self.keyword_analysis = analysis
        self.notifier.success('Job description analyzed successfully')
        return analysis

    async def generate_cover_letter(self) -> Optional[str]:
        if not self.check_auth_and_limits():
            return None

        letter = await self.bridge.generate(self.store.data, self.keyword_analysis)
        if letter is None:
            return None

        self.set_cover_letter(letter)
        await self.save()
        self.notifier.success('Cover letter generated successfully!')
        self.active_section = '3'
        return letter

    async def regenerate(self) -> Optional[str]:
        self.set_cover_letter("")
        return await self.generate_cover_letter()

    async def suggest_experience(self) -> Optional[str]:
        data = self.store.data
        if not data.job_description:
            self.notifier.error('Please fill in the job description first')
            return None

        suggestions = await self.bridge.suggest_experience(data.job_description)
        if suggestions is None:
            return None

        if data.relevant_experience:
            updated = f"{data.relevant_experience}\n\nSuggested points:\n{suggestions}"
        else:
            updated = f"Suggested points:\n{suggestions}"

        if not self.store.update('relevant_experience', updated):
            self.notifier.error('Suggestions would exceed the experience length limit')
            return None

        self.notifier.success('Added AI suggestions to your experience')
        return suggestions

    # --- Internals ---

    def _on_form_change(self, data: FormData, restored: bool) -> None:
        self.progress = compute_progress(data)
        self.validation_errors = validate_form(data)
        if not restored and data.has_content():
            self.history.record(data)
        self.autosave.touch()

    def _should_autosave(self) -> bool:
        return bool(self.user_id) and bool(self.store.data.full_name)

    def _autosave_failed(self, error: Exception) -> None:
        self.notifier.error(f"Failed to save data: {error}")
