import logging
import os
import smtplib
from email.message import EmailMessage
from email.utils import formataddr
from html import escape

from .config import APP_NAME, APP_URL, OFFER_TTL_DAYS

logger = logging.getLogger(__name__)

SMTP_HOST = os.getenv("EMAIL_HOST", "smtp.gmail.com")
SMTP_PORT = int(os.getenv("EMAIL_PORT", "587"))
SMTP_USER = os.getenv("EMAIL_USER")
SMTP_PASSWORD = os.getenv("EMAIL_PASSWORD")
DEFAULT_SENDER = os.getenv("EMAIL_SENDER", SMTP_USER or "noreply@example.com")
DEFAULT_SENDER_NAME = os.getenv("EMAIL_SENDER_NAME", APP_NAME)

def send_email(
    to: str,
    subject: str,
    body: str,
    html_body: str | None = None,
    attachments: list | None = None,
    sender_name: str | None = None,
    reply_to: str | None = None,
):
    attachments = attachments or []
    display_name = (sender_name or DEFAULT_SENDER_NAME).strip()
    from_value = formataddr((display_name, DEFAULT_SENDER)) if display_name else DEFAULT_SENDER
    if not (SMTP_USER and SMTP_PASSWORD):
        logger.info(
            "EMAIL (stub) from=%s to=%s reply_to=%s subject=%r attachments=%d\n%s",
            from_value, to, reply_to or "(not set)", subject, len(attachments), body,
        )
        return
    msg = EmailMessage()
    msg["From"] = from_value
    if reply_to:
        msg["Reply-To"] = reply_to
    msg["To"] = to
    msg["Subject"] = subject
    msg.set_content(body or "")
    if html_body:
        msg.add_alternative(html_body, subtype="html")
    for attachment in attachments:
        if not attachment:
            continue
        content = attachment.get("content")
        if content is None:
            continue
        msg.add_attachment(
            content,
            maintype=attachment.get("maintype", "application"),
            subtype=attachment.get("subtype", "octet-stream"),
            filename=attachment.get("filename") or "attachment",
        )
    with smtplib.SMTP(SMTP_HOST, SMTP_PORT) as smtp:
        smtp.starttls()
        smtp.login(SMTP_USER, SMTP_PASSWORD)
        smtp.send_message(msg)

def notify(func, *args, **kwargs):
    """Run a notification, logging and swallowing any failure.

    Scheduled through BackgroundTasks so it never affects the response.
    """
    try:
        func(*args, **kwargs)
    except Exception:
        logger.exception("notification %s failed", getattr(func, "__name__", func))

def _render(greeting_name: str, heading: str, paragraphs: list, action_url: str | None = None, action_label: str | None = None) -> str:
    body = "\n".join(
        f'<p style="font-size: 14px; color: #1e293b; line-height: 1.5;">{p}</p>' for p in paragraphs
    )
    button = ""
    if action_url:
        link_html = escape(action_url)
        button = f"""
      <div style="margin: 24px 0;">
        <a href="{link_html}" style="display: inline-block; background: #2563eb; color: #fff; padding: 12px 24px; border-radius: 999px; text-decoration: none; font-weight: 600;">
          {escape(action_label or "Open")}
        </a>
      </div>"""
    return f"""
<html>
  <body style="font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', sans-serif; background: #f5f6f8; padding: 24px;">
    <div style="max-width: 520px; margin: 0 auto; background: #ffffff; border-radius: 12px; padding: 24px; box-shadow: 0 10px 25px rgba(15,23,42,0.08);">
      <h2 style="margin-top: 0; font-size: 20px; color: #0f172a;">{escape(heading)}</h2>
      <p style="font-size: 14px; color: #1e293b;">Hi {escape(greeting_name)},</p>
      {body}{button}
      <p style="font-size: 12px; color: #64748b;">This is an automated message from {escape(APP_NAME)}. Please do not reply.</p>
    </div>
  </body>
</html>
"""

def send_verification_email(user):
    link = f"{APP_URL}/verify-email?token={user.verify_token}"
    subject = "Verify your email address"
    text = f"Thank you for registering with {APP_NAME}. Verify your email address: {link}\n"
    html = _render(user.first_name, subject, [f"Thank you for registering with {escape(APP_NAME)}. Please verify your email address."], link, "Verify Email")
    send_email(user.email, subject, text, html_body=html)

def send_password_reset_email(user, token: str):
    link = f"{APP_URL}/reset-password?token={token}"
    subject = "Reset your password"
    text = f"You requested a password reset. This link expires in 24 hours: {link}\n"
    html = _render(user.first_name, subject, ["You requested a password reset. This link will expire in 24 hours."], link, "Reset Password")
    send_email(user.email, subject, text, html_body=html)

def send_offer_notification(developer, investor, offer, project):
    subject = f"New Investment Offer for {project.title}"
    amount = f"${offer.offer_amount:,.2f}"
    text = (
        f"You have received a new investment offer for {project.title}.\n"
        f"Investor: {investor.full_name}\nAmount: {amount}\n"
        f"The offer expires in {OFFER_TTL_DAYS} days unless you respond.\n"
    )
    html = _render(developer.first_name, "New investment offer", [
        f"You have received a new investment offer for <strong>{escape(project.title)}</strong>.",
        f"Investor: {escape(investor.full_name)}<br />Amount: {escape(amount)}",
    ], f"{APP_URL}/developer/offers", "View Offer")
    send_email(developer.email, subject, text, html_body=html)

def send_offer_response_notification(investor, offer, project, accepted: bool):
    status_word = "accepted" if accepted else "declined"
    next_step = (
        "You can now proceed to sign the term sheet."
        if accepted
        else "You may continue exploring other investment opportunities on our platform."
    )
    subject = f"Your offer for {project.title} has been {status_word}"
    text = f"Your investment offer for {project.title} has been {status_word}.\n{next_step}\n"
    paragraphs = [f"Your investment offer for <strong>{escape(project.title)}</strong> has been <strong>{status_word}</strong>.", escape(next_step)]
    if offer.response_notes:
        paragraphs.append(f"Notes from the founder: {escape(offer.response_notes)}")
    html = _render(investor.first_name, subject, paragraphs, f"{APP_URL}/investor/offers", "View Details")
    send_email(investor.email, subject, text, html_body=html)

def send_project_review_notification(developer, project, approved: bool):
    if approved:
        subject = "Your project has been approved"
        text = f"Your project {project.title} has been approved and is now visible to investors.\n"
        paragraphs = [f"Congratulations! <strong>{escape(project.title)}</strong> has been approved and is now visible to investors."]
    else:
        subject = "Your project requires changes"
        text = f"Your project {project.title} requires changes.\nFeedback: {project.rejection_reason}\n"
        paragraphs = [
            f"Your project <strong>{escape(project.title)}</strong> requires some changes before it can be published.",
            f"Feedback: {escape(project.rejection_reason or '')}",
            "Please update your project and resubmit for review.",
        ]
    html = _render(developer.first_name, subject, paragraphs, f"{APP_URL}/developer/projects", "View Project")
    send_email(developer.email, subject, text, html_body=html)

def send_term_sheet_completed_notification(recipient, project, pdf_bytes: bytes | None = None, sha_final: str | None = None):
    subject = f"SAFE Agreement Completed for {project.title}"
    sha_line = f"Final SHA256: {sha_final}" if sha_final else ""
    text = f"The SAFE term sheet for {project.title} has been fully signed by both parties.\n{sha_line}\n"
    html = _render(recipient.first_name, "SAFE agreement completed", [
        f"The SAFE term sheet for <strong>{escape(project.title)}</strong> has been fully signed by both parties.",
        escape(sha_line) if sha_line else "You can download the signed document from your dashboard.",
    ], f"{APP_URL}/termsheets", "View Term Sheet")
    attachments = []
    if pdf_bytes:
        attachments.append({
            "filename": f"{project.title} - SAFE.pdf",
            "content": pdf_bytes,
            "maintype": "application",
            "subtype": "pdf",
        })
    send_email(recipient.email, subject, text, html_body=html, attachments=attachments)
