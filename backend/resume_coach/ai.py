import os
import json
import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from langchain_google_genai import ChatGoogleGenerativeAI
from langchain_core.prompts import ChatPromptTemplate
from langchain_core.output_parsers import StrOutputParser
from opentelemetry import trace

from resume_coach.dependencies import get_current_active_user
from resume_coach.models_db import User

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)
router = APIRouter()

GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.0-flash")

BASE_PROMPT = """Act as a professional resume writer. Generate ONLY the actual content to be used in the resume. Do not provide explanations, suggestions, or instructions.

Input Content:
{content}

Requirements:
1. Return only the final content
2. Content should be ready to use directly in the resume
3. No explanations or meta-commentary
4. No bullet points or formatting
5. Just the plain text content

Generate the content for: """

ANALYZE_JOB_PROMPT = """You are an ATS (Applicant Tracking System) expert. Analyze the job description below.

Input Content:
{content}

Respond with ONLY a JSON object, no markdown and no commentary, of exactly this shape:
{{"keywords": [5 strings], "skills": [5 strings], "suggestions": [3 strings]}}

- keywords: the 5 most important ATS keywords or phrases
- skills: the 5 most important required skills
- suggestions: 3 concrete experience points the applicant should mention"""

PROMPT_ENDINGS = {
    'improve': "an improved version that is more professional and impactful.",
    'analyze': "optimized content based on the job description.",
    'suggest': "an improved version of this resume section.",
}


class AIRequest(BaseModel):
    prompt: Any = None
    type: Optional[str] = None


def generate_prompt(prompt_type: Optional[str], content: Any) -> str:
    """Wrap the caller's content in the instructions for the requested prompt type."""
    serialized = content if isinstance(content, str) else json.dumps(content)
    if prompt_type == 'analyze-job':
        return ANALYZE_JOB_PROMPT.format(content=serialized)
    ending = PROMPT_ENDINGS.get(prompt_type, "professional resume content.")
    return BASE_PROMPT.format(content=serialized) + ending


def create_generation_chain():
    """Sets up the prompt -> Gemini -> text chain."""
    prompt = ChatPromptTemplate.from_template("{prompt}")
    llm = ChatGoogleGenerativeAI(
        model=GEMINI_MODEL,
        google_api_key=os.getenv("GOOGLE_AI_API_KEY"),
        temperature=0.7,
        top_k=1,
        top_p=0.8,
        max_output_tokens=1000,
    )
    return prompt | llm | StrOutputParser()


@router.post("/ai")
async def generate_content(
    request: AIRequest,
    db_user: User = Depends(get_current_active_user),
):
    """
    Runs a single text generation. Returns {result} or {error, details}.
    """
    if not request.prompt:
        return JSONResponse(status_code=400, content={"error": "Prompt is required"})

    formatted_prompt = generate_prompt(request.type, request.prompt)
    try:
        with tracer.start_as_current_span("ai.generate") as span:
            span.set_attribute("ai.prompt_type", request.type or "default")
            span.set_attribute("ai.model", GEMINI_MODEL)
            chain = create_generation_chain()
            text = await chain.ainvoke({"prompt": formatted_prompt})
    except Exception as e:
        logger.error(f"AI generation failed for user {db_user.id}: {e}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "error": "Failed to process AI request",
                "details": f"Generation failed: {e}",
            },
        )

    logger.info(f"Generated {len(text)} characters ({request.type or 'default'}) for user {db_user.id}")
    return {"result": text}
