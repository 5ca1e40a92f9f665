"""Candidate email notifications for application status changes.

Delivery is best effort and at most once: ``notify_status_change`` reports
whether the mail provider accepted the message, and
``dispatch_status_notification`` is the detached variant scheduled after a
response has been sent, which only ever logs failures.
"""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import httpx
import structlog
from jinja2 import Environment, FileSystemLoader, StrictUndefined, select_autoescape

from models import ApplicationStatus
from settings import get_settings

logger = structlog.get_logger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"
SEND_TIMEOUT_SECONDS = 10.0

TEMPLATE_DIR = Path(__file__).resolve().parent / "templates" / "email"

templates = Environment(
    loader=FileSystemLoader(str(TEMPLATE_DIR)),
    autoescape=select_autoescape(enabled_extensions=("html",), default_for_string=False),
    undefined=StrictUndefined,
    trim_blocks=True,
    lstrip_blocks=True,
)


@dataclass(frozen=True)
class StatusTemplate:
    subject: str
    message: str
    color: str
    next_steps: Optional[str] = None


STATUS_TEMPLATES = {
    ApplicationStatus.PENDING: StatusTemplate(
        subject="Application Received - Thank You for Applying",
        message="Your application has been received and is being reviewed by our team.",
        color="#f59e0b",
    ),
    ApplicationStatus.REVIEWING: StatusTemplate(
        subject="Application Under Review",
        message="Great news! Your application is currently being reviewed by our hiring team.",
        color="#3b82f6",
    ),
    ApplicationStatus.INTERVIEWED: StatusTemplate(
        subject="Interview Scheduled - Next Steps",
        message="Congratulations! You have progressed to the interview stage.",
        color="#8b5cf6",
        next_steps=(
            "Next Steps: Our team will reach out to schedule your interview. "
            "Please keep an eye on your email."
        ),
    ),
    ApplicationStatus.HIRED: StatusTemplate(
        subject="Congratulations - Job Offer!",
        message="Excellent news! We are pleased to offer you the position.",
        color="#10b981",
        next_steps=(
            "Next Steps: Our HR team will contact you within 24-48 hours "
            "with offer details and next steps."
        ),
    ),
    ApplicationStatus.REJECTED: StatusTemplate(
        subject="Application Update",
        message=(
            "Thank you for your interest. While we have decided to move forward with other "
            "candidates, we encourage you to apply for future positions."
        ),
        color="#ef4444",
        next_steps=(
            "We appreciate the time you invested in the application process. Please consider "
            "applying for future opportunities that match your skills and experience."
        ),
    ),
}

_missing = set(ApplicationStatus) - set(STATUS_TEMPLATES)
if _missing:
    raise RuntimeError(f"No email template for statuses: {sorted(s.value for s in _missing)}")


@dataclass(frozen=True)
class RenderedEmail:
    subject: str
    html: str
    text: str


def template_for(status: ApplicationStatus) -> StatusTemplate:
    return STATUS_TEMPLATES[status]


def render_status_email(
    candidate_name: str,
    job_title: str,
    company_name: Optional[str],
    status: ApplicationStatus,
    application_id: int,
) -> RenderedEmail:
    template = template_for(status)
    context = {
        "subject": template.subject,
        "message": template.message,
        "color": template.color,
        "next_steps": template.next_steps,
        "candidate_name": candidate_name,
        "job_title": job_title,
        "company_name": company_name,
        "status_label": status.value.capitalize(),
        "signature": company_name or "The Hiring Team",
        "application_id": application_id,
    }
    return RenderedEmail(
        subject=template.subject,
        html=templates.get_template("status_update.html").render(context),
        text=templates.get_template("status_update.txt").render(context),
    )


async def send_email(
    to: str,
    subject: str,
    html: str,
    text: str,
    client: Optional[httpx.AsyncClient] = None,
) -> bool:
    """Hand one message to the Resend API. True means accepted, not delivered."""
    settings = get_settings()
    payload = {
        "from": settings.mail_from,
        "to": [to],
        "subject": subject,
        "html": html,
        "text": text,
    }
    headers = {"Authorization": f"Bearer {settings.resend_api_key}"}

    owns_client = client is None
    if owns_client:
        client = httpx.AsyncClient(timeout=SEND_TIMEOUT_SECONDS)
    try:
        response = await client.post(RESEND_API_URL, json=payload, headers=headers)
        response.raise_for_status()
    except httpx.HTTPStatusError as exc:
        logger.error(
            "Mail provider rejected message",
            status_code=exc.response.status_code,
            body=exc.response.text[:500],
        )
        return False
    except httpx.HTTPError as exc:
        logger.error("Failed to reach mail provider", error=str(exc))
        return False
    finally:
        if owns_client:
            await client.aclose()

    logger.info("Email accepted by mail provider", status_code=response.status_code)
    return True


async def notify_status_change(
    candidate_name: str,
    candidate_email: str,
    job_title: str,
    company_name: Optional[str],
    new_status: ApplicationStatus,
    job_id: int,
    application_id: int,
) -> bool:
    """Email the candidate about their application's new status."""
    email = render_status_email(
        candidate_name=candidate_name,
        job_title=job_title,
        company_name=company_name,
        status=new_status,
        application_id=application_id,
    )
    logger.info(
        "Sending status update email",
        application_id=application_id,
        job_id=job_id,
        status=new_status.value,
    )
    return await send_email(
        to=candidate_email,
        subject=email.subject,
        html=email.html,
        text=email.text,
    )


async def dispatch_status_notification(**kwargs) -> None:
    """Background-task entry point: run notify_status_change, log, never raise."""
    try:
        accepted = await notify_status_change(**kwargs)
    except Exception:
        logger.exception(
            "Status notification crashed",
            application_id=kwargs.get("application_id"),
        )
        return
    if not accepted:
        logger.warning(
            "Status notification not delivered",
            application_id=kwargs.get("application_id"),
        )
