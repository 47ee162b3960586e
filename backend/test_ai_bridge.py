import json

import pytest

from conftest import FakeGenerationClient
from resume_coach.cover_letter.ai_bridge import (
    ActionState,
    AIRequestBridge,
    KeywordAnalysis,
    clean_analysis_text,
    parse_analysis,
)
from resume_coach.cover_letter.credits_gate import CreditsGate
from resume_coach.cover_letter.errors import AnalysisFormatError, GenerationError
from resume_coach.cover_letter.form_state import FormData, Tone

VALID_ANALYSIS = {
    "keywords": ["Python", "FastAPI", "PostgreSQL", "REST", "CI/CD"],
    "skills": ["API design", "Testing", "SQL", "Docker", "Communication"],
    "suggestions": ["Led a migration", "Cut latency by 40%", "Mentored two engineers"],
}

DATA = FormData(
    full_name="Ada Lovelace",
    company_name="Acme",
    job_title="Backend Engineer",
    job_description="Build APIs in Python.",
    tone=Tone.CONFIDENT,
)


def make_bridge(ledger, notifier, *responses, balance=50, refund_on_failure=False):
    client = FakeGenerationClient(*responses)
    gate = CreditsGate(ledger, 'user-1', notifier, balance=balance)
    return AIRequestBridge(client, gate, notifier, refund_on_failure=refund_on_failure), client


# --- Analysis parsing ---

def test_parse_analysis_accepts_fenced_markdown():
    text = "Here you go:\n```json\n" + json.dumps(VALID_ANALYSIS) + "\n```\nGood luck!"
    analysis = parse_analysis(text)
    assert analysis.keywords == VALID_ANALYSIS["keywords"]
    assert analysis.suggestions[2] == "Mentored two engineers"


def test_parse_analysis_retries_with_single_quotes_swapped():
    text = json.dumps(VALID_ANALYSIS).replace('"', "'")
    assert parse_analysis(text).skills == VALID_ANALYSIS["skills"]


def test_parse_analysis_keeps_apostrophes_in_valid_json():
    payload = dict(VALID_ANALYSIS, suggestions=["Owned the team's API", "b", "c"])
    assert parse_analysis(json.dumps(payload)).suggestions[0] == "Owned the team's API"


@pytest.mark.parametrize("payload", [
    dict(VALID_ANALYSIS, keywords=VALID_ANALYSIS["keywords"][:4]),
    dict(VALID_ANALYSIS, suggestions=VALID_ANALYSIS["suggestions"] + ["extra"]),
    dict(VALID_ANALYSIS, skills=[1, 2, 3, 4, 5]),
    {"keywords": VALID_ANALYSIS["keywords"], "skills": VALID_ANALYSIS["skills"]},
])
def test_parse_analysis_rejects_wrong_shape(payload):
    with pytest.raises(AnalysisFormatError):
        parse_analysis(json.dumps(payload))


def test_clean_analysis_text_requires_an_object():
    with pytest.raises(AnalysisFormatError):
        clean_analysis_text("no json here")


# --- Paid actions ---

async def test_analyze_spends_then_parses(ledger, notifier):
    bridge, client = make_bridge(ledger, notifier, json.dumps(VALID_ANALYSIS))

    analysis = await bridge.analyze(DATA.job_description)

    assert analysis == KeywordAnalysis(**VALID_ANALYSIS)
    assert ledger.spends == [(2, 'cover-letter', 'Analyze Job Description')]
    assert client.calls[0][1] == 'analyze-job'
    assert client.calls[0][0]["content"]["job_description"] == DATA.job_description
    assert bridge.state_log == [
        ActionState.CHECKING_CREDITS,
        ActionState.SPENDING,
        ActionState.SPENT,
        ActionState.REQUESTING,
        ActionState.SUCCESS,
        ActionState.IDLE,
    ]


async def test_declined_action_makes_no_external_call(ledger, notifier):
    bridge, client = make_bridge(ledger, notifier, "unused", balance=1)

    assert await bridge.analyze(DATA.job_description) is None

    assert client.calls == []
    assert ledger.spends == []
    assert bridge.last_outcome is ActionState.DECLINED
    assert notifier.errors == ["You need 2 credits to analyze a job description."]


async def test_spend_failure_aborts_before_request(ledger, notifier):
    ledger.decline = True
    bridge, client = make_bridge(ledger, notifier, "unused")

    assert await bridge.generate(DATA) is None

    assert client.calls == []
    assert bridge.last_outcome is ActionState.SPEND_FAILED
    assert bridge.state is ActionState.IDLE


async def test_bad_analysis_shape_is_charged_and_reported(ledger, notifier):
    bridge, _ = make_bridge(ledger, notifier, '{"keywords": []}')

    assert await bridge.analyze(DATA.job_description) is None

    assert ledger.balance == 48
    assert ledger.refunds == []
    assert bridge.last_outcome is ActionState.REQUEST_FAILED
    assert notifier.errors[-1] == "Invalid analysis format"


async def test_generate_builds_prompt_from_form_and_analysis(ledger, notifier):
    bridge, client = make_bridge(ledger, notifier, "Dear Hiring Manager, ...")
    analysis = KeywordAnalysis(**VALID_ANALYSIS)

    letter = await bridge.generate(DATA, analysis)

    assert letter == "Dear Hiring Manager, ..."
    prompt, prompt_type = client.calls[0]
    assert prompt_type == 'generate'
    content = prompt["content"]
    assert content["company_name"] == "Acme"
    assert content["keyword_analysis"] == VALID_ANALYSIS
    assert "Use a confident tone" in content["context"]
    assert "  • FastAPI" in content["context"]
    assert "(appropriate general greeting)" in content["context"]
    assert ledger.spends == [(4, 'cover-letter', 'Generate cover letter for Backend Engineer at Acme')]


async def test_generation_failure_keeps_charge_by_default(ledger, notifier):
    bridge, _ = make_bridge(ledger, notifier, GenerationError("Failed to process AI request", "Generation failed: quota"))

    assert await bridge.generate(DATA) is None

    assert ledger.balance == 46
    assert ledger.refunds == []
    assert notifier.errors[-1] == "Generation failed: quota"


async def test_generation_failure_refunds_when_enabled(ledger, notifier):
    bridge, _ = make_bridge(ledger, notifier, "", refund_on_failure=True)

    assert await bridge.generate(DATA) is None

    assert ledger.balance == 50
    assert ledger.refunds == [('user-1', 4, 'Refund: Generate cover letter for Backend Engineer at Acme failed')]
    assert bridge.credits_gate.balance == 50


async def test_reentrant_call_is_dropped(ledger, notifier):
    bridge, client = make_bridge(ledger, notifier, "letter")
    bridge._busy.add('generate')

    assert await bridge.generate(DATA) is None
    assert client.calls == []
    assert ledger.spends == []


async def test_suggest_experience_is_free(ledger, notifier):
    bridge, client = make_bridge(ledger, notifier, "- Shipped X\n- Improved Y")

    assert await bridge.suggest_experience(DATA.job_description) == "- Shipped X\n- Improved Y"
    assert ledger.spends == []
    assert client.calls[0][0]["content"]["job_description"] == DATA.job_description


async def test_suggest_experience_failure_is_reported(ledger, notifier):
    bridge, _ = make_bridge(ledger, notifier, GenerationError("Failed to process AI request"))
    assert await bridge.suggest_experience(DATA.job_description) is None
    assert notifier.errors == ['Failed to generate suggestions']
