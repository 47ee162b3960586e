import re
import json
import logging
from enum import Enum
from typing import Annotated, Any, Awaitable, Callable, Dict, List, Optional, Protocol, TypeVar

from pydantic import BaseModel, ConfigDict, Field, StrictStr, ValidationError

from resume_coach.pricing import CREDIT_COSTS
from resume_coach.cover_letter.credits_gate import CreditsGate
from resume_coach.cover_letter.errors import AnalysisFormatError, CoverLetterError, GenerationError
from resume_coach.cover_letter.form_state import FormData
from resume_coach.cover_letter.notifier import Notifier, LoggingNotifier
from resume_coach.cover_letter.prompts import (
    build_analysis_prompt,
    build_cover_letter_prompt,
    build_experience_prompt,
)

logger = logging.getLogger(__name__)

T = TypeVar('T')

CREDIT_CATEGORY = 'cover-letter'
ANALYZE_JOB_COST = CREDIT_COSTS['COVER_LETTER']['ANALYZE_JOB']
GENERATE_LETTER_COST = CREDIT_COSTS['COVER_LETTER']['GENERATE_LETTER']


class GenerationClient(Protocol):
    async def generate(self, prompt: Dict[str, Any], prompt_type: str) -> str: ...


class ActionState(str, Enum):
    IDLE = 'idle'
    CHECKING_CREDITS = 'checking_credits'
    DECLINED = 'declined'
    SPENDING = 'spending'
    SPEND_FAILED = 'spend_failed'
    SPENT = 'spent'
    REQUESTING = 'requesting'
    REQUEST_FAILED = 'request_failed'
    SUCCESS = 'success'


class KeywordAnalysis(BaseModel):
    model_config = ConfigDict(frozen=True)

    keywords: List[str] = []
    skills: List[str] = []
    suggestions: List[str] = []

    @property
    def is_empty(self) -> bool:
        return not (self.keywords or self.skills or self.suggestions)


class _StrictAnalysis(BaseModel):
    keywords: Annotated[List[StrictStr], Field(min_length=5, max_length=5)]
    skills: Annotated[List[StrictStr], Field(min_length=5, max_length=5)]
    suggestions: Annotated[List[StrictStr], Field(min_length=3, max_length=3)]


def clean_analysis_text(text: str) -> str:
    """Strip code fences and markdown emphasis and keep the outermost JSON object."""
    cleaned = re.sub(r"```(?:json)?", "", text.strip())
    cleaned = cleaned.replace("**", "")
    start = cleaned.find("{")
    end = cleaned.rfind("}")
    if start == -1 or end < start:
        raise AnalysisFormatError("Failed to process analysis results", "No JSON object in response")
    return cleaned[start:end + 1].strip()


def parse_analysis(text: str) -> KeywordAnalysis:
    """Parse a model response into exactly 5 keywords, 5 skills and 3 suggestions."""
    cleaned = clean_analysis_text(text)
    try:
        payload = json.loads(cleaned)
    except json.JSONDecodeError:
        try:
            payload = json.loads(cleaned.replace("'", '"'))
        except json.JSONDecodeError as e:
            logger.error(f"Failed to parse analysis: {e}\nCleaned result: {cleaned}")
            raise AnalysisFormatError("Failed to process analysis results", str(e))

    if not isinstance(payload, dict):
        raise AnalysisFormatError("Failed to process analysis results", "Invalid analysis format")

    try:
        strict = _StrictAnalysis.model_validate(payload)
    except ValidationError as e:
        logger.error(f"Invalid analysis format: {e}")
        raise AnalysisFormatError("Failed to process analysis results", "Invalid analysis format")

    return KeywordAnalysis(**strict.model_dump())


class AIRequestBridge:
    """
    Runs AI actions: check the cached balance, spend, call the generation
    endpoint, parse. No automatic retries; a failed action is re-triggered by
    the user.
    """

    def __init__(
        self,
        generation_client: GenerationClient,
        credits_gate: CreditsGate,
        notifier: Notifier = None,
        refund_on_failure: bool = False,
    ):
        self.generation_client = generation_client
        self.credits_gate = credits_gate
        self.notifier = notifier or LoggingNotifier()
        self.refund_on_failure = refund_on_failure
        self.state = ActionState.IDLE
        self.last_outcome: Optional[ActionState] = None
        self.state_log: List[ActionState] = []
        self._busy = set()

    def is_busy(self, action: str) -> bool:
        return action in self._busy

    async def analyze(self, job_description: str) -> Optional[KeywordAnalysis]:
        async def request():
            text = await self.generation_client.generate(build_analysis_prompt(job_description), 'analyze-job')
            return parse_analysis(text)

        return await self._run_paid(
            'analyze',
            ANALYZE_JOB_COST,
            'Analyze Job Description',
            f"You need {ANALYZE_JOB_COST} credits to analyze a job description.",
            request,
        )

    async def generate(self, data: FormData, analysis: KeywordAnalysis = None) -> Optional[str]:
        analysis = analysis or KeywordAnalysis()

        async def request():
            text = await self.generation_client.generate(build_cover_letter_prompt(data, analysis), 'generate')
            if not text:
                raise GenerationError('No cover letter generated')
            return text

        return await self._run_paid(
            'generate',
            GENERATE_LETTER_COST,
            f"Generate cover letter for {data.job_title} at {data.company_name}",
            f"You need {GENERATE_LETTER_COST} credits to generate a cover letter.",
            request,
        )

    async def suggest_experience(self, job_description: str) -> Optional[str]:
        """Free action; returns bullet suggestions for the experience field."""
        if self.is_busy('suggest'):
            return None
        self._busy.add('suggest')
        try:
            text = await self.generation_client.generate(build_experience_prompt(job_description), 'generate')
            if not text:
                raise GenerationError('Failed to generate suggestions')
            return text
        except CoverLetterError as e:
            logger.error(f"Error generating experience suggestions: {e}")
            self.notifier.error('Failed to generate suggestions')
            return None
        finally:
            self._busy.discard('suggest')

    async def _run_paid(
        self,
        action: str,
        cost: int,
        description: str,
        declined_message: str,
        request: Callable[[], Awaitable[T]],
    ) -> Optional[T]:
        if self.is_busy(action):
            logger.info(f"Ignoring '{action}' while a previous request is in flight.")
            return None

        self._busy.add(action)
        self.state_log = []
        try:
            return await self._run_paid_action(cost, description, declined_message, request)
        finally:
            self._busy.discard(action)
            self._enter(ActionState.IDLE)

    async def _run_paid_action(self, cost, description, declined_message, request):
        self._enter(ActionState.CHECKING_CREDITS)
        if not self.credits_gate.can_afford(cost):
            self.notifier.error(declined_message)
            self._finish(ActionState.DECLINED)
            return None

        self._enter(ActionState.SPENDING)
        if not await self.credits_gate.spend(cost, CREDIT_CATEGORY, description):
            self._finish(ActionState.SPEND_FAILED)
            return None
        self._enter(ActionState.SPENT)

        self._enter(ActionState.REQUESTING)
        try:
            result = await request()
        except CoverLetterError as e:
            logger.error(f"AI request '{description}' failed after spending {cost} credits: {e}")
            self.notifier.error(str(e))
            if self.refund_on_failure:
                await self.credits_gate.refund(cost, f"Refund: {description} failed")
            self._finish(ActionState.REQUEST_FAILED)
            return None

        self._finish(ActionState.SUCCESS)
        return result

    def _enter(self, state: ActionState) -> None:
        self.state = state
        self.state_log.append(state)

    def _finish(self, outcome: ActionState) -> None:
        self._enter(outcome)
        self.last_outcome = outcome
