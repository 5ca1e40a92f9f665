from typing import Optional

import structlog
from openai import AsyncOpenAI

from errors import EvaluationProviderError
from settings import get_settings

logger = structlog.get_logger(__name__)

# Load settings
settings = get_settings()

# --- Application Info for OpenRouter ---
APP_NAME = "HireScore"
APP_URL = "https://hirescore.app"

# --- Initialize OpenAI client to use OpenRouter ---
client = AsyncOpenAI(
    base_url="https://openrouter.ai/api/v1",
    api_key=settings.openrouter_api_key,
    default_headers={
        "HTTP-Referer": APP_URL,
        "X-Title": APP_NAME,
    },
    # Retries would stretch a single evaluation past its time budget
    max_retries=0,
)

# --- Model Configuration ---
MODEL_CONFIG = {
    "application_evaluation": {
        "model": settings.evaluation_model,
        "temperature": 0.7,
        "top_p": 1,
        "max_tokens": 2048,
    },
}

# --- Structured Output Example ---
EVALUATION_OUTPUT_EXAMPLE = """{
  "resumeScore": <number 0-10>,
  "coverLetterScore": <number 0-10 or null if no cover letter>,
  "overallScore": <number 0-10>,
  "strengths": ["strength1", "strength2", "strength3"],
  "improvements": ["improvement1", "improvement2"],
  "tips": ["tip1", "tip2", "tip3"],
  "feedback": "Detailed paragraph explaining the evaluation and recommendations"
}"""

EVALUATION_SYSTEM_PROMPT = """You are an AI hiring assistant designed to evaluate job applications fairly and objectively.

BASIC INSTRUCTIONS:
- Evaluate the candidate's resume and cover letter against the job requirements
- Rate the resume and cover letter out of 10 (where 10 is excellent, 5 is average, 1 is poor)
- Focus solely on professional qualifications, skills, experience, and job fit
- Do not consider or mention: name, age, gender, race, location, or any demographic information
- Provide constructive and actionable feedback

EVALUATION CRITERIA:
1. Resume (0-10): relevant experience and skills, education and certifications,
   career progression and achievements, clarity and presentation, match with job requirements.
2. Cover Letter (0-10): if provided, understanding of the role and company, communication
   skills and writing quality, enthusiasm and motivation, personalization and relevance,
   professional tone.
3. Overall Score (0-10): weighted average considering job fit.

REQUIRED OUTPUT FORMAT:
Return a single JSON object in exactly this shape:
{example}

Provide only valid JSON, no additional text.""".format(example=EVALUATION_OUTPUT_EXAMPLE)


def build_evaluation_prompt(
    job_title: str,
    job_description: str,
    resume_text: str,
    cover_letter: Optional[str] = None,
) -> str:
    """Render the user prompt for one application. Same inputs, same prompt."""
    if cover_letter:
        cover_letter_block = f"Cover Letter:\n{cover_letter}"
    else:
        cover_letter_block = "No cover letter provided."

    return f"""JOB INFORMATION:
Position: {job_title}
Job Description: {job_description}

CANDIDATE MATERIALS:
Resume/CV Content:
{resume_text}

{cover_letter_block}"""


async def call_llm(
    system_prompt: str,
    user_prompt: str,
    model_config: dict,
) -> str:
    """Call the LLM and return the raw text of the first choice."""

    messages = [
        {"role": "system", "content": system_prompt},
        {"role": "user", "content": user_prompt},
    ]

    response = await client.chat.completions.create(
        messages=messages,
        **model_config,
    )
    if not response.choices:
        raise EvaluationProviderError("Model returned no choices")
    message = response.choices[0].message
    return (message.content if message else None) or ""


async def call_llm_for_application_evaluation(
    job_title: str,
    job_description: str,
    resume_text: str,
    cover_letter: Optional[str] = None,
) -> str:
    """Ask the model to score an application; returns the unparsed reply."""

    user_prompt = build_evaluation_prompt(job_title, job_description, resume_text, cover_letter)

    logger.info(
        "Sending application to model for evaluation",
        model=MODEL_CONFIG["application_evaluation"]["model"],
        prompt_length=len(user_prompt),
    )
    text = await call_llm(
        system_prompt=EVALUATION_SYSTEM_PROMPT,
        user_prompt=user_prompt,
        model_config=MODEL_CONFIG["application_evaluation"],
    )
    logger.info("Received model evaluation", response_preview=text[:200])
    return text
