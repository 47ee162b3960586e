from typing import Any, Dict

from resume_coach.cover_letter.form_state import FormData

ANALYZE_JOB_CONTEXT = (
    "Extract exactly 5 ATS keywords, 5 required skills and 3 experience suggestions "
    "from this job description."
)

EXPERIENCE_SUGGESTIONS_CONTEXT = (
    "Based on this job description, suggest 3-4 relevant experiences or achievements that would be "
    "compelling for this role. Format them as bullet points and focus on specific, measurable "
    "accomplishments that match the job requirements."
)


def _bullets(items) -> str:
    return "\n".join(f"  • {item}" for item in items)


def _optional_line(label: str, value: str) -> str:
    return f"- {label}: {value}\n" if value else ""


def build_cover_letter_context(data: FormData, analysis) -> str:
    if data.recipient_name:
        greeting = f'to "{data.recipient_name}"'
        recipient = data.recipient_name + (f", {data.recipient_title}" if data.recipient_title else "")
    else:
        greeting = "(appropriate general greeting)"
        recipient = ""

    experience = f"Relevant Experience:\n{data.relevant_experience}" if data.relevant_experience else ""

    return (
        f"Generate a professional cover letter for a {data.job_title} position at {data.company_name}.\n"
        "\n"
        "Style and Tone:\n"
        f"- Use a {data.tone.value} tone\n"
        "- Format as a proper business letter with date and addresses\n"
        "- Make it concise but impactful (250-350 words)\n"
        "- Use natural, conversational language while maintaining professionalism\n"
        "- Begin paragraphs with strong action verbs\n"
        "- Keep paragraphs concise (3-4 sentences maximum)\n"
        "\n"
        "ATS Optimization:\n"
        "- Use standard section headings\n"
        "- Start with a strong opening mentioning the exact job title and company name\n"
        "- Include a dedicated skills section highlighting the following required skills:\n"
        f"{_bullets(analysis.skills)}\n"
        "- Naturally incorporate these key terms throughout the letter:\n"
        f"{_bullets(analysis.keywords)}\n"
        "- Include these specific experience points:\n"
        f"{_bullets(analysis.suggestions)}\n"
        "- Use both full terms and acronyms where applicable\n"
        "- Place important keywords in context within achievements\n"
        "- Use standard formatting without special characters\n"
        "\n"
        "Structure:\n"
        "1. Professional Header with contact details\n"
        "2. Date and recipient's information\n"
        f"3. Formal greeting {greeting}\n"
        "4. Strong opening paragraph mentioning position and company\n"
        "5. Skills section highlighting relevant abilities\n"
        "6. Experience paragraphs demonstrating achievements\n"
        "7. Closing paragraph with call to action\n"
        "8. Professional signature\n"
        "\n"
        "Use the following information:\n"
        f"- Applicant Name: {data.full_name}\n"
        f"- Job Title: {data.job_title}\n"
        f"- Company: {data.company_name}\n"
        f"{_optional_line('Recipient', recipient)}"
        f"{_optional_line('Company Address', data.company_address)}"
        f"{_optional_line('Email', data.email)}"
        f"{_optional_line('Phone', data.phone)}"
        "\n"
        "Job Description:\n"
        f"{data.job_description}\n"
        "\n"
        f"{experience}\n"
        "\n"
        "Additional Requirements:\n"
        "- Quantify achievements with specific metrics where possible\n"
        "- Demonstrate cultural fit while maintaining professionalism\n"
        "- Avoid generic phrases and focus on specific, relevant experience\n"
        "- Ensure all key terms are used naturally in context"
    )


def build_cover_letter_prompt(data: FormData, analysis) -> Dict[str, Any]:
    return {
        "content": {
            **data.model_dump(mode="json"),
            "keyword_analysis": analysis.model_dump(),
            "context": build_cover_letter_context(data, analysis),
        }
    }


def build_analysis_prompt(job_description: str) -> Dict[str, Any]:
    return {
        "content": {
            "job_description": job_description,
            "context": ANALYZE_JOB_CONTEXT,
        }
    }


def build_experience_prompt(job_description: str) -> Dict[str, Any]:
    return {
        "content": {
            "job_description": job_description,
            "context": EXPERIENCE_SUGGESTIONS_CONTEXT,
        }
    }
