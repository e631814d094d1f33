"""Outcome email templates for terminal application statuses."""

from dataclasses import dataclass
from html import escape
from typing import Optional

from database.models.applications import ApplicationStatus


@dataclass(frozen=True)
class OutcomeNotice:
    to: str
    subject: str
    body_html: str
    from_name: str


_WRAPPER = (
    '<div style="font-family: Arial, sans-serif; max-width: 600px; '
    'margin: 0 auto; padding: 20px;">{content}</div>'
)


def _offered_body(job_title: str, company: str) -> str:
    return _WRAPPER.format(content=f"""
  <h2 style="color: #10b981;">Congratulations!</h2>
  <p>Dear Candidate,</p>
  <p>We are pleased to inform you that you have been <strong>shortlisted for the next round</strong>
  for the position of <strong>{job_title}</strong> at <strong>{company}</strong>.</p>
  <p>Your application and AI screening interview impressed us, and we would like to move forward
  with you in our hiring process.</p>
  <p><strong>Next Steps:</strong></p>
  <ul>
    <li>Our team will contact you shortly with further details</li>
    <li>Please keep an eye on your email for interview scheduling</li>
  </ul>
  <p>We look forward to speaking with you soon!</p>
  <p>Best regards,<br/><strong>{company} Hiring Team</strong></p>
""")


def _rejected_body(job_title: str, company: str) -> str:
    return _WRAPPER.format(content=f"""
  <h2 style="color: #6b7280;">Application Update</h2>
  <p>Dear Candidate,</p>
  <p>Thank you for your interest in the <strong>{job_title}</strong> position at
  <strong>{company}</strong> and for taking the time to complete our application process.</p>
  <p>After careful consideration of your application and qualifications, we have decided to move
  forward with other candidates whose experience more closely matches our current needs.</p>
  <p>We appreciate the time and effort you invested in applying, and we encourage you to explore
  other opportunities with us in the future.</p>
  <p>We wish you the very best in your job search and career endeavors.</p>
  <p>Best regards,<br/><strong>{company} Hiring Team</strong></p>
""")


def render_outcome_notice(
    status: ApplicationStatus,
    candidate_email: str,
    job_title: str,
    company_name: str,
) -> Optional[OutcomeNotice]:
    """Build the email for a terminal status; None for every other status."""
    title = escape(job_title)
    company = escape(company_name)

    if status is ApplicationStatus.OFFERED:
        subject = f"Congratulations! You've been shortlisted at {company_name}"
        body = _offered_body(title, company)
    elif status is ApplicationStatus.REJECTED:
        subject = f"Update on your application at {company_name}"
        body = _rejected_body(title, company)
    else:
        return None

    return OutcomeNotice(
        to=candidate_email,
        subject=subject,
        body_html=body,
        from_name=f"{company_name} Hiring",
    )
