"""
Outbound email: renders the RFP invitation and sends it over SMTP.
"""

import json
import logging
import os
import smtplib
from datetime import datetime
from email.message import EmailMessage
from email.utils import formataddr, make_msgid
from pathlib import Path
from typing import Any, Dict, Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape

logger = logging.getLogger(__name__)

SMTP_HOST = os.environ.get('MAIL_HOST', 'smtp.gmail.com')
SMTP_PORT = int(os.environ.get('MAIL_PORT', '587'))
SMTP_USER = os.environ.get('MAIL_USER', '')
SMTP_PASSWORD = os.environ.get('MAIL_PASSWORD', '')
SMTP_TIMEOUT = int(os.environ.get('MAIL_TIMEOUT', '30'))
FROM_NAME = os.environ.get('MAIL_FROM_NAME', 'Procurement Team')
FROM_ADDRESS = os.environ.get('MAIL_FROM_ADDRESS') or SMTP_USER

# src/services/mailer.py -> src/templates/
TEMPLATES_DIR = Path(__file__).parent.parent / 'templates'

_jinja_env = Environment(
    loader=FileSystemLoader(str(TEMPLATES_DIR)),
    autoescape=select_autoescape(['html']),
)


def rfp_subject(title: str, rfp_id: str) -> str:
    """Subject line carrying the tag the correlator looks for."""
    return f"RFP: {title} [ID: {rfp_id}]"


def _format_budget(budget: Optional[float]) -> str:
    if budget is None:
        return 'Not specified'
    return f"${budget:,.2f}"


def _format_deadline(deadline: Any) -> str:
    if not deadline:
        return 'Not specified'
    if isinstance(deadline, str):
        try:
            deadline = datetime.fromisoformat(deadline)
        except ValueError:
            return deadline
    return deadline.strftime('%B %d, %Y')


def format_rfp_email(rfp: Dict[str, Any]) -> str:
    """
    Render the HTML invitation for an RFP.

    Args:
        rfp: RFP as returned by RFP.to_dict()

    Returns:
        str: HTML body
    """
    requirements = rfp.get('requirements') or {}
    items = [
        item if isinstance(item, str) else json.dumps(item, default=str)
        for item in requirements.get('items') or []
    ]
    specifications = requirements.get('specifications')

    template = _jinja_env.get_template('rfp_email.html')
    return template.render(
        rfp_id=rfp.get('id', ''),
        title=rfp.get('title', ''),
        description=rfp.get('description', ''),
        budget=_format_budget(rfp.get('budget')),
        deadline=_format_deadline(rfp.get('deadline')),
        items=items,
        specifications=json.dumps(specifications, indent=2, default=str) if specifications else '',
        delivery_terms=requirements.get('deliveryTerms'),
        payment_terms=requirements.get('paymentTerms'),
        warranty_requirements=requirements.get('warrantyRequirements'),
    )


def send_html_email(to: str, subject: str, html_body: str) -> str:
    """
    Send an HTML email via SMTP.

    Port 465 uses implicit SSL; any other port upgrades with STARTTLS.

    Args:
        to: Recipient address
        subject: Subject line
        html_body: HTML content

    Returns:
        str: The Message-ID of the sent email

    Raises:
        smtplib.SMTPException: If the server rejects the message
        OSError: If the server cannot be reached
    """
    message = EmailMessage()
    message['From'] = formataddr((FROM_NAME, FROM_ADDRESS))
    message['To'] = to
    message['Subject'] = subject
    message['Message-ID'] = make_msgid()
    message.set_content("This message requires an HTML-capable email client.")
    message.add_alternative(html_body, subtype='html')

    logger.info(f"Sending email via {SMTP_HOST}:{SMTP_PORT} to {to}: {subject}")

    if SMTP_PORT == 465:
        smtp = smtplib.SMTP_SSL(SMTP_HOST, SMTP_PORT, timeout=SMTP_TIMEOUT)
    else:
        smtp = smtplib.SMTP(SMTP_HOST, SMTP_PORT, timeout=SMTP_TIMEOUT)

    with smtp:
        if SMTP_PORT != 465:
            smtp.starttls()
        if SMTP_USER:
            smtp.login(SMTP_USER, SMTP_PASSWORD)
        smtp.send_message(message)

    logger.info(f"Email sent to {to}")
    return message['Message-ID']


def send_rfp_email(to: str, rfp: Dict[str, Any]) -> Dict[str, str]:
    """
    Render and send an RFP invitation.

    Returns:
        Dict with subject, body and from_address, for the outbound email log
    """
    subject = rfp_subject(rfp.get('title', ''), rfp.get('id', ''))
    body = format_rfp_email(rfp)
    send_html_email(to, subject, body)
    return {
        'subject': subject,
        'body': body,
        'from_address': FROM_ADDRESS,
    }
